from __future__ import annotations
import ctypes
import math
import platform
from typing import Sequence, Tuple


class HiResTimer:
    """Context manager to request 1ms Windows system timer resolution.

    Sampling and playback both sleep towards absolute due times; on Windows the
    default 15.6ms timer granularity would otherwise show up as jitter.
    On other platforms, it is a no-op.
    """

    def __enter__(self):
        if ctypes and platform.system() == "Windows":
            ctypes.windll.winmm.timeBeginPeriod(1)
        return self

    def __exit__(self, exc_type, exc, tb):
        if ctypes and platform.system() == "Windows":
            ctypes.windll.winmm.timeEndPeriod(1)


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Restrict value to [min_val, max_val]."""
    return max(min_val, min(max_val, value))


def quantile(values: Sequence[float], q: float) -> float:
    """Linear-interpolated quantile (0..1). Returns 0.0 for no data."""
    if not values:
        return 0.0
    q = clamp(float(q), 0.0, 1.0)
    data = sorted(values)
    idx = q * (len(data) - 1)
    lo = int(math.floor(idx))
    hi = int(math.ceil(idx))
    if lo == hi:
        return data[lo]
    frac = idx - lo
    return data[lo] * (1 - frac) + data[hi] * frac


def parse_size(text: str) -> Tuple[int, int]:
    """Parse a 'WIDTHxHEIGHT' string into an (int, int) pair."""
    parts = str(text).lower().replace(" ", "").split("x")
    if len(parts) != 2:
        raise ValueError(f"expected WIDTHxHEIGHT, got {text!r}")
    return int(parts[0]), int(parts[1])
