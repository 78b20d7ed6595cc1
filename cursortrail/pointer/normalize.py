"""Pure conversions between coordinate spaces.

Nothing here clamps: a pointer parked beyond an edge, or an estimate taken
from a differently sized frame, converts like any in-range point. Consumers
(the player, the renderer) decide whether to clamp.
"""

from __future__ import annotations
from typing import Tuple

from .geometry import Position, ScreenGeometry, Space


def to_unit(position: Position, geometry: ScreenGeometry) -> Position:
    """Express any position in unit-normalized space."""
    if position.space is Space.UNIT:
        return position
    u, v = geometry.to_unit(position.x, position.y, position.space)
    return Position(u, v, Space.UNIT)


def from_unit(position: Position, target: Space, geometry: ScreenGeometry) -> Position:
    """Project a unit-normalized position onto `target` space."""
    if position.space is not Space.UNIT:
        raise ValueError(f"expected a unit-normalized position, got {position.space.value}")
    x, y = geometry.from_unit(position.x, position.y, target)
    return Position(x, y, target)


def convert(position: Position, target: Space, geometry: ScreenGeometry) -> Position:
    """Convert a tagged position into `target` space."""
    target = Space.parse(target)
    source = position.space
    if source is target:
        return position
    # logical <-> physical goes through the scale factors directly so a
    # same-machine round trip never picks up unit-space rounding
    if source is Space.LOGICAL and target is Space.PHYSICAL:
        return Position(*geometry.to_physical(position.x, position.y), Space.PHYSICAL)
    if source is Space.PHYSICAL and target is Space.LOGICAL:
        return Position(*geometry.to_logical(position.x, position.y), Space.LOGICAL)
    return from_unit(to_unit(position, geometry), target, geometry)


def rescale(
    position: Position,
    source_geometry: ScreenGeometry,
    target_geometry: ScreenGeometry,
    target: Space = Space.LOGICAL,
) -> Position:
    """Move a position recorded on one screen onto another screen."""
    return from_unit(to_unit(position, source_geometry), Space.parse(target), target_geometry)


def from_frame(x: float, y: float, frame_size: Tuple[int, int]) -> Position:
    """Normalize a point reported against an image of `frame_size` pixels.

    Vision estimates come back in the pixel grid of whatever image was sent,
    which may have been downscaled from the physical capture.
    """
    width, height = frame_size
    if width <= 0 or height <= 0:
        raise ValueError(f"frame size must be positive, got {width}x{height}")
    return Position(x / width, y / height, Space.UNIT)
