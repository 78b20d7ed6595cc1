from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import Any, Tuple

Size = Tuple[int, int]


class GeometryUnavailable(RuntimeError):
    """Raised when the screen or frame size cannot be determined."""

    pass


class Space(str, enum.Enum):
    """Coordinate space a position is expressed in.

    The value doubles as the column tag in the durable log header.
    """

    LOGICAL = "logical"  # what the pointer primitive addresses
    PHYSICAL = "physical"  # pixel grid of a captured frame
    UNIT = "norm"  # [0,1] on both axes, resolution independent

    @classmethod
    def parse(cls, value: Any) -> "Space":
        """Accept a Space, its tag, or its name ('unit', 'LOGICAL', ...)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for space in cls:
            if text in (space.value, space.name.lower()):
                return space
        raise ValueError(f"unknown coordinate space: {value!r}")


@dataclass(frozen=True)
class Position:
    """A coordinate pair tagged with the space it was produced in."""

    x: float
    y: float
    space: Space

    def as_tuple(self) -> Tuple[float, float]:
        return self.x, self.y


def _checked_size(value: Any, label: str) -> Size:
    try:
        width, height = value
        width, height = int(width), int(height)
    except (TypeError, ValueError) as exc:
        raise GeometryUnavailable(f"{label} size is not a (width, height) pair: {value!r}") from exc
    if width <= 0 or height <= 0:
        raise GeometryUnavailable(f"{label} size must be positive, got {width}x{height}")
    return width, height


@dataclass(frozen=True)
class ScreenGeometry:
    """Logical (input) and physical (capture) extents of one display.

    All transforms are affine with no clamping, so points outside the display
    rectangle convert like any other. Round trips are exact up to float
    rounding; for dimensions in the low thousands the drift is on the order of
    1e-12 units, so an integer-rounded round trip is off by at most one unit.
    """

    logical_size: Size
    physical_size: Size

    def __post_init__(self) -> None:
        object.__setattr__(self, "logical_size", _checked_size(self.logical_size, "logical"))
        object.__setattr__(self, "physical_size", _checked_size(self.physical_size, "physical"))

    @property
    def scale(self) -> Tuple[float, float]:
        """(sx, sy) = physical / logical."""
        return (
            self.physical_size[0] / self.logical_size[0],
            self.physical_size[1] / self.logical_size[1],
        )

    @property
    def inverse_scale(self) -> Tuple[float, float]:
        """(1/sx, 1/sy) = logical / physical."""
        return (
            self.logical_size[0] / self.physical_size[0],
            self.logical_size[1] / self.physical_size[1],
        )

    def size_of(self, space: Space) -> Tuple[float, float]:
        """Extent of the display in the given space."""
        space = Space.parse(space)
        if space is Space.LOGICAL:
            return float(self.logical_size[0]), float(self.logical_size[1])
        if space is Space.PHYSICAL:
            return float(self.physical_size[0]), float(self.physical_size[1])
        return 1.0, 1.0

    def to_physical(self, x: float, y: float) -> Tuple[float, float]:
        sx, sy = self.scale
        return x * sx, y * sy

    def to_logical(self, x: float, y: float) -> Tuple[float, float]:
        ix, iy = self.inverse_scale
        return x * ix, y * iy

    def to_unit(self, x: float, y: float, space: Space) -> Tuple[float, float]:
        width, height = self.size_of(space)
        return x / width, y / height

    def from_unit(self, u: float, v: float, space: Space) -> Tuple[float, float]:
        width, height = self.size_of(space)
        return u * width, v * height


async def resolve_geometry(backend) -> ScreenGeometry:
    """Query a pointer backend once for its logical and physical sizes.

    Raises GeometryUnavailable when either size cannot be read or is not
    strictly positive; this is fatal for recording and playback alike.
    """
    logger = logging.getLogger(__name__)
    try:
        logical = await backend.screen_size()
        physical = await backend.frame_size()
    except GeometryUnavailable:
        raise
    except Exception as exc:
        raise GeometryUnavailable(f"could not query screen geometry: {exc}") from exc

    geometry = ScreenGeometry(logical, physical)
    sx, sy = geometry.scale
    logger.info(
        "Logical (pointer) %d x %d, physical (capture) %d x %d, scale x=%.2f y=%.2f",
        geometry.logical_size[0],
        geometry.logical_size[1],
        geometry.physical_size[0],
        geometry.physical_size[1],
        sx,
        sy,
    )
    return geometry
