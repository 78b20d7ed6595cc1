from __future__ import annotations
from .pointer import (
    Player,
    Sampler,
    ScreenGeometry,
    Space,
    load_recording,
    open_log,
    play_file,
    record,
)
from .pointer.backends import BrowserBackend, DesktopBackend
from .vision import GeminiEstimator

__all__ = [
    "Player",
    "Sampler",
    "ScreenGeometry",
    "Space",
    "load_recording",
    "open_log",
    "play_file",
    "record",
    "BrowserBackend",
    "DesktopBackend",
    "GeminiEstimator",
]
