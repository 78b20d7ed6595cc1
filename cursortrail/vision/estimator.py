from __future__ import annotations
import asyncio
import base64
import logging
import re
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .config import vcfg

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)$")


def parse_estimate(text: Any) -> Optional[Tuple[float, float]]:
    """Parse a model reply of the form 'x,y' into two floats.

    Anything else (prose, one number, three numbers, an empty reply) is
    treated as no estimate.
    """
    if not isinstance(text, str):
        return None
    parts = [p.strip() for p in text.strip().strip("()[]").split(",")]
    if len(parts) != 2 or not all(_NUMBER.match(p) for p in parts):
        return None
    return float(parts[0]), float(parts[1])


def _first_text(body: Dict[str, Any]) -> Optional[str]:
    candidates = body.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            return part["text"]
    return None


class Estimator:
    """Vision call returning a point in the pixel grid of the image it was sent."""

    async def estimate(self, image_png: bytes, prompt: str) -> Optional[Tuple[float, float]]:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class GeminiEstimator(Estimator):
    """Gemini generateContent over aiohttp.

    Every failure (HTTP error, timeout, empty or unparsable reply) is logged
    and reported as no estimate; nothing here raises into the sampler.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = vcfg.MODEL,
        endpoint: str = vcfg.ENDPOINT,
        timeout: float = vcfg.REQUEST_TIMEOUT_S,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_key = api_key
        self.url = endpoint.format(model=model)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return an aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this estimator created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "GeminiEstimator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _payload(self, image_png: bytes, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": "image/png",
                                "data": base64.b64encode(image_png).decode("ascii"),
                            }
                        },
                    ]
                }
            ]
        }

    async def estimate(self, image_png: bytes, prompt: str = vcfg.PROMPT) -> Optional[Tuple[float, float]]:
        try:
            session = await self._get_session()
            async with session.post(
                self.url,
                json=self._payload(image_png, prompt),
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning("Gemini returned %d: %s", resp.status, body[:200])
                    return None
                data = await resp.json()
        except asyncio.TimeoutError:
            logger.warning("Gemini call timed out after %.1fs", self.timeout.total or 0.0)
            return None
        except (aiohttp.ClientError, ValueError) as exc:
            logger.warning("Gemini call failed: %s", exc)
            return None

        text = _first_text(data) if isinstance(data, dict) else None
        point = parse_estimate(text)
        if point is None:
            logger.warning("Unusable Gemini reply: %r", text)
        return point
