"""
Shared fixtures for the cursortrail test suite.

Everything runs against in-memory fakes: no display, no browser and no
network access are needed.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import pytest
from PIL import Image

from cursortrail.pointer.backends import PointerBackend
from cursortrail.pointer.clock import VirtualClock
from cursortrail.pointer.geometry import ScreenGeometry


class FakeBackend(PointerBackend):
    """Scripted pointer + capture collaborator.

    positions: returned by successive get_position() calls (the last one
    repeats). An Exception instance in the list is raised instead.
    on_read: optional hook called with the read index before returning,
    used to advance a VirtualClock or cancel a sampler mid-run.
    """

    def __init__(
        self,
        logical: Tuple[int, int] = (1920, 1080),
        physical: Optional[Tuple[int, int]] = None,
        positions: Sequence = ((100, 200),),
        on_read: Optional[Callable[[int], None]] = None,
        on_move: Optional[Callable[[int], None]] = None,
    ):
        self.logical = logical
        self.physical = physical or logical
        self.positions = list(positions)
        self.on_read = on_read
        self.on_move = on_move
        self.reads = 0
        self.moves: List[Tuple[float, float]] = []
        self.captures = 0

    async def screen_size(self):
        return self.logical

    async def frame_size(self):
        return self.physical

    async def get_position(self):
        index = self.reads
        self.reads += 1
        if self.on_read is not None:
            self.on_read(index)
        item = self.positions[min(index, len(self.positions) - 1)]
        if isinstance(item, Exception):
            raise item
        return item

    async def set_position(self, x, y):
        self.moves.append((x, y))
        if self.on_move is not None:
            self.on_move(len(self.moves) - 1)

    async def capture(self):
        self.captures += 1
        return Image.new("RGB", self.physical, (0, 0, 0))


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def geometry_1080p():
    return ScreenGeometry((1920, 1080), (1920, 1080))


@pytest.fixture
def geometry_retina():
    """1440x900 logical points on a 2880x1800 pixel panel."""
    return ScreenGeometry((1440, 900), (2880, 1800))


@pytest.fixture
def fake_backend_cls():
    return FakeBackend
