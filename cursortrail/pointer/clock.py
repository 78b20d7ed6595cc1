from __future__ import annotations
import asyncio
import time


class MonotonicClock:
    """Wall-time source backed by time.perf_counter and asyncio.sleep."""

    def now(self) -> float:
        """Seconds on a monotonic, high-resolution timeline."""
        return time.perf_counter()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


class VirtualClock:
    """Deterministic clock for tests.

    sleep() jumps time forward instead of waiting, and advance() lets a fake
    collaborator simulate work that takes wall time (a slow pointer read, a
    stalled positioning command).
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self.sleeps = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += max(0.0, float(seconds))

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        # yield so background tasks get scheduled, like a real sleep would
        await asyncio.sleep(0)
