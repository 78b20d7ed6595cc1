from __future__ import annotations
import io
import logging
import time
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageDraw

from .config import vcfg


def annotate_frame(
    frame: Image.Image,
    x: float,
    y: float,
    *,
    color: Tuple[int, int, int] = vcfg.CROSSHAIR_COLOR,
    arm_length: int = vcfg.CROSSHAIR_ARM_PX,
    thickness: int = vcfg.CROSSHAIR_THICKNESS_PX,
) -> Image.Image:
    """Return an RGB copy of `frame` with a crosshair centred on physical (x, y).

    The caller's frame is left untouched; the crosshair may fall partly or
    entirely off-frame, in which case PIL just clips it.
    """
    image = frame.convert("RGB") if frame.mode != "RGB" else frame.copy()
    draw = ImageDraw.Draw(image)
    cx, cy = int(round(x)), int(round(y))
    half = max(1, thickness) // 2
    # horizontal arm
    draw.rectangle(
        [cx - arm_length, cy - half, cx + arm_length, cy + half], fill=color
    )
    # vertical arm
    draw.rectangle(
        [cx - half, cy - arm_length, cx + half, cy + arm_length], fill=color
    )
    return image


def shrink_frame(frame: Image.Image, max_edge: int) -> Image.Image:
    """Downscale so the longer edge is at most `max_edge` (0 disables)."""
    if max_edge <= 0 or max(frame.size) <= max_edge:
        return frame
    ratio = max_edge / float(max(frame.size))
    size = (max(1, int(frame.size[0] * ratio)), max(1, int(frame.size[1] * ratio)))
    return frame.resize(size, Image.LANCZOS)


def encode_png(frame: Image.Image) -> bytes:
    buf = io.BytesIO()
    frame.save(buf, format="PNG")
    return buf.getvalue()


def save_debug_frame(
    data: bytes,
    directory: Union[str, Path],
    x: float,
    y: float,
    when: Optional[float] = None,
) -> Path:
    """Write an encoded frame as debug_x{X}_y{Y}_t{unix}.png under `directory`."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = int(when if when is not None else time.time())
    path = directory / f"debug_x{int(round(x))}_y{int(round(y))}_t{stamp}.png"
    path.write_bytes(data)
    logging.getLogger(__name__).debug("Saved debug frame %s", path)
    return path
