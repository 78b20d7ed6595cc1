from __future__ import annotations
import asyncio
import base64
import io
import logging
import time
from typing import Any, Optional, Tuple

from PIL import Image, ImageGrab
from zendriver import cdp

from .config import cfg

# installs a capture-phase mousemove listener once per document and returns the last point
_POINTER_PROBE_JS = """(() => {
  if (!window.__cursortrail) {
    window.__cursortrail = {x: 0, y: 0};
    window.addEventListener('mousemove', (e) => {
      window.__cursortrail.x = e.clientX;
      window.__cursortrail.y = e.clientY;
    }, {capture: true, passive: true});
  }
  return {x: window.__cursortrail.x, y: window.__cursortrail.y};
})()"""


class PointerBackend:
    """Collaborator interface: pointer I/O plus frame capture for one display.

    Positions are logical (what set_position accepts); frames are physical.
    """

    async def screen_size(self) -> Tuple[int, int]:
        """Logical extent addressed by get_position/set_position."""
        raise NotImplementedError

    async def frame_size(self) -> Tuple[int, int]:
        """Physical pixel extent of a captured frame."""
        raise NotImplementedError

    async def get_position(self) -> Tuple[float, float]:
        raise NotImplementedError

    async def set_position(self, x: float, y: float) -> None:
        raise NotImplementedError

    async def capture(self) -> Image.Image:
        raise NotImplementedError


class DesktopBackend(PointerBackend):
    """Primary display through pyautogui (pointer) and Pillow's ImageGrab (frames)."""

    def __init__(self, *, fail_safe: bool = True):
        # pyautogui connects to the display server on import
        import pyautogui

        self._gui = pyautogui
        self._gui.FAILSAFE = fail_safe

    async def screen_size(self) -> Tuple[int, int]:
        width, height = await asyncio.to_thread(self._gui.size)
        return int(width), int(height)

    async def frame_size(self) -> Tuple[int, int]:
        frame = await self.capture()
        return frame.size

    async def get_position(self) -> Tuple[float, float]:
        x, y = await asyncio.to_thread(self._gui.position)
        return float(x), float(y)

    async def set_position(self, x: float, y: float) -> None:
        # _pause=False: pyautogui otherwise sleeps PAUSE seconds after every call
        await asyncio.to_thread(
            self._gui.moveTo, int(round(x)), int(round(y)), _pause=False
        )

    async def capture(self) -> Image.Image:
        return await asyncio.to_thread(ImageGrab.grab)


def _unwrap_zendriver_value(possibly_wrapped: Any) -> Any:
    """Normalize zendriver responses into plain dicts or values."""
    value = possibly_wrapped
    if isinstance(value, tuple):
        value = value[0] if value else {}
    for method_name in ("to_json", "to_dict", "dict"):
        method = getattr(value, method_name, None)
        if callable(method):
            try:
                return method()
            except Exception:
                pass
    return value or {}


def _remote_value(resp: Any) -> Any:
    """Pull `.value` out of a Runtime.evaluate response (RemoteObject or dict)."""
    if isinstance(resp, tuple):
        resp = resp[0] if resp else {}
    res = resp.get("result", resp) if isinstance(resp, dict) else resp
    if isinstance(res, dict):
        return res.get("value")
    return getattr(res, "value", None)


class BrowserBackend(PointerBackend):
    """A zendriver page as the display.

    Logical space is the CSS layout viewport; physical space is the pixel grid
    of Page.captureScreenshot, i.e. CSS pixels times devicePixelRatio.
    """

    def __init__(
        self,
        page,
        *,
        timeout_seconds: float = cfg.VIEWPORT_TIMEOUT_S,
        poll_interval_seconds: float = cfg.VIEWPORT_POLL_INTERVAL_S,
    ):
        self.page = page
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._send_lock = asyncio.Lock()

    async def _layout_viewport(self) -> Tuple[int, int]:
        raw = await self.page.send(cdp.page.get_layout_metrics())
        if isinstance(raw, tuple):
            raw = raw[0] if raw else {}
        layout = raw.get("layoutViewport") if isinstance(raw, dict) else None
        layout = layout or getattr(raw, "layoutViewport", None) or raw

        def _val(obj: Any, name: str) -> int:
            try:
                if isinstance(obj, dict):
                    return int(float(obj.get(name, 0)))
                return int(float(getattr(obj, name, 0)))
            except (TypeError, ValueError):
                return 0

        w = _val(layout, "clientWidth") or _val(layout, "client_width")
        h = _val(layout, "clientHeight") or _val(layout, "client_height")
        return w, h

    async def _inner_size(self) -> Tuple[int, int]:
        val = await self._evaluate("({w: window.innerWidth || 0, h: window.innerHeight || 0})")
        if not isinstance(val, dict):
            return 0, 0
        return int(val.get("w", 0)), int(val.get("h", 0))

    async def _evaluate(self, expression: str) -> Any:
        resp = await self.page.send(
            cdp.runtime.evaluate(
                expression=expression,
                return_by_value=True,
                await_promise=False,
            )
        )
        return _remote_value(resp)

    async def screen_size(self) -> Tuple[int, int]:
        """Layout viewport size, polled until the page reports a non-zero size."""
        start = time.perf_counter()
        last_error: Optional[BaseException] = None
        while (time.perf_counter() - start) < self.timeout_seconds:
            try:
                w, h = await self._layout_viewport()
                if w > 0 and h > 0:
                    return w, h
            except Exception as exc:
                last_error = exc

            try:
                w2, h2 = await self._inner_size()
                if w2 > 0 and h2 > 0:
                    return w2, h2
            except Exception as exc:
                last_error = exc

            await asyncio.sleep(self.poll_interval_seconds)

        raise TimeoutError(
            f"Viewport did not become ready within {self.timeout_seconds:.2f}s"
            + (f" last error: {last_error!r}" if last_error else "")
        )

    async def frame_size(self) -> Tuple[int, int]:
        frame = await self.capture()
        return frame.size

    async def get_position(self) -> Tuple[float, float]:
        val = await self._evaluate(_POINTER_PROBE_JS)
        if not isinstance(val, dict) or "x" not in val or "y" not in val:
            raise RuntimeError(f"pointer probe returned {val!r}")
        return float(val["x"]), float(val["y"])

    async def set_position(self, x: float, y: float) -> None:
        """Dispatch one mouseMoved event, retrying transient CDP failures."""
        last_err: Optional[BaseException] = None
        async with self._send_lock:
            for attempt in range(cfg.CDP_SEND_RETRIES):
                try:
                    task = asyncio.create_task(
                        self.page.send(
                            cdp.input_.dispatch_mouse_event(
                                type_="mouseMoved", x=float(x), y=float(y)
                            )
                        )
                    )
                    await asyncio.wait_for(
                        asyncio.shield(task), timeout=cfg.CDP_SEND_TIMEOUT_S
                    )
                    return
                except asyncio.TimeoutError:
                    logging.getLogger(__name__).debug(
                        "mouseMoved pending >%.0f ms; letting it finish in background",
                        cfg.CDP_SEND_TIMEOUT_S * 1000.0,
                    )
                    return
                except Exception as exc:
                    last_err = exc
                await asyncio.sleep(0.02)
        raise RuntimeError(f"mouseMoved send failed at ({x:.2f}, {y:.2f})") from last_err

    async def capture(self) -> Image.Image:
        resp = await self.page.send(cdp.page.capture_screenshot(format_="png"))
        data = _unwrap_zendriver_value(resp)
        if isinstance(data, dict):
            data = data.get("data", "")
        if not isinstance(data, (str, bytes)) or not data:
            raise RuntimeError("captureScreenshot returned no image data")
        image = Image.open(io.BytesIO(base64.b64decode(data)))
        image.load()
        return image
