from __future__ import annotations
import math
from typing import List, Optional, Sequence, Tuple

from ..utils import quantile
from .geometry import ScreenGeometry, Space
from .normalize import convert
from .recorder import Recording


def logical_path(
    recording: Recording, geometry: Optional[ScreenGeometry] = None
) -> List[Tuple[int, float, float]]:
    """(offset_ms, x, y) triples in logical space.

    Unit and physical recordings need a geometry to be projected; logical
    recordings pass through unchanged.
    """
    if recording.space is not Space.LOGICAL and geometry is None:
        raise ValueError(f"a geometry is required for {recording.space.value} recordings")
    out = []
    for sample in recording:
        pos = sample.position
        if pos.space is not Space.LOGICAL:
            pos = convert(pos, Space.LOGICAL, geometry)
        out.append((sample.offset_ms, pos.x, pos.y))
    return out


def segment_speeds(path: Sequence[Tuple[int, float, float]]) -> List[float]:
    """Per-step speed in logical px/ms; dt is floored at 1 ms."""
    speeds: List[float] = []
    for i in range(1, len(path)):
        t0, x0, y0 = path[i - 1]
        t1, x1, y1 = path[i]
        dt_ms = max(1.0, float(t1 - t0))
        speeds.append(math.hypot(x1 - x0, y1 - y0) / dt_ms)
    return speeds


def summarize_speeds(recording: Recording, geometry: Optional[ScreenGeometry] = None) -> str:
    """Summarize pointer speed between consecutive samples.

    Reports average, p95, max, total path length and sample count.
    """
    path = logical_path(recording, geometry)
    if len(path) < 2:
        return "No move data"
    speeds = segment_speeds(path)
    n = len(speeds)
    average = sum(speeds) / n
    distance = sum(
        math.hypot(path[i][1] - path[i - 1][1], path[i][2] - path[i - 1][2])
        for i in range(1, len(path))
    )
    return (
        f"speed px/ms: avg={average:.3f}, p95={quantile(speeds, 0.95):.3f}, "
        f"max={max(speeds):.3f}, path={distance:.0f}px, samples={len(path)}"
    )


def summarize_estimates(reports) -> str:
    """Summarize vision-estimate error (unit space, fraction of the screen)."""
    errors = [r.error for r in reports]
    if not errors:
        return "No estimates"
    mean = sum(errors) / len(errors)
    return (
        f"estimate error (unit): mean={mean:.4f}, p95={quantile(errors, 0.95):.4f}, "
        f"max={max(errors):.4f}, estimates={len(errors)}"
    )
