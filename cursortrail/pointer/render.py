from __future__ import annotations
import asyncio
import logging
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from ..utils import clamp, quantile
from .analysis import logical_path, segment_speeds
from .config import cfg
from .geometry import ScreenGeometry, Space
from .normalize import from_unit
from .recorder import Recording


def _speed_to_rgb(speed, v_min, v_max):
    """
    Map speed to RGB:
      - slow  => blue (0, 120, 255)
      - mid   => green (60, 205, 60)
      - fast  => red  (255, 60, 60)
    Uses two-segment interpolation: blue->green->red.
    """
    if v_max <= v_min:
        t = 0.0
    else:
        t = (speed - v_min) / (v_max - v_min)
    t = clamp(t, 0.0, 1.0)

    if t <= 0.5:
        u = t / 0.5
        lo, hi = (0, 120, 255), (60, 205, 60)
    else:
        u = (t - 0.5) / 0.5
        lo, hi = (60, 205, 60), (255, 60, 60)
    return tuple(int(a + (b - a) * u) for a, b in zip(lo, hi))


def render_trajectory(
    recording: Recording,
    geometry: ScreenGeometry,
    *,
    estimates: Sequence = (),
    background_color: Tuple[int, int, int] = (12, 12, 14),
    path_line_width: int = 2,
    canvas_margin: int = 20,
    annotate: bool = True,
) -> Image.Image:
    """Draw a recording in logical space, coloring each sample by the speed
    of the segment that led to it. Vision estimates (EstimateReport) are
    drawn as orange crosses joined to their ground truth.
    """
    viewport_width, viewport_height = geometry.logical_size
    canvas_width = viewport_width + canvas_margin * 2 + 80  # extra room for legend
    canvas_height = viewport_height + canvas_margin * 2
    image = Image.new("RGB", (canvas_width, canvas_height), background_color)
    draw = ImageDraw.Draw(image)

    path = logical_path(recording, geometry)
    if len(path) < 2:
        if annotate:
            draw.text(
                (canvas_margin, canvas_margin),
                "Not enough samples",
                fill=(180, 180, 180),
            )
        return image

    def to_canvas(x, y):
        x = canvas_margin + clamp(x, 0.0, viewport_width - 1.0)
        y = canvas_margin + clamp(y, 0.0, viewport_height - 1.0)
        return x, y

    speeds = segment_speeds(path)
    v_min = cfg.MIN_SPEED_PX_PER_MS
    v_max = max(cfg.MAX_SPEED_PX_PER_MS, v_min + 1e-6)

    for i, speed in enumerate(speeds, start=1):
        color = _speed_to_rgb(speed, v_min, v_max)
        draw.line(
            [to_canvas(*path[i - 1][1:]), to_canvas(*path[i][1:])],
            fill=color,
            width=path_line_width,
        )
        px, py = to_canvas(*path[i][1:])
        r = max(2, path_line_width + 1)
        draw.ellipse([px - r, py - r, px + r, py + r], fill=color)

    sx, sy = to_canvas(*path[0][1:])
    draw.ellipse([sx - 6, sy - 6, sx + 6, sy + 6], outline=(255, 255, 255), width=2)

    for report in estimates:
        tx, ty = to_canvas(*from_unit(report.truth, Space.LOGICAL, geometry).as_tuple())
        ex, ey = to_canvas(*from_unit(report.estimate, Space.LOGICAL, geometry).as_tuple())
        draw.line([(tx, ty), (ex, ey)], fill=(255, 140, 40), width=1)
        draw.line([(ex - 5, ey), (ex + 5, ey)], fill=(255, 200, 80), width=2)
        draw.line([(ex, ey - 5), (ex, ey + 5)], fill=(255, 200, 80), width=2)

    legend_left = canvas_margin + viewport_width + 20
    legend_top = canvas_margin
    legend_height = max(80, viewport_height - 40)
    legend_width = 18
    for i in range(legend_height):
        t = i / max(1, legend_height - 1)
        color = _speed_to_rgb(v_max - t * (v_max - v_min), v_min, v_max)
        draw.line(
            [(legend_left, legend_top + i), (legend_left + legend_width, legend_top + i)],
            fill=color,
            width=1,
        )
    draw.rectangle(
        [
            legend_left - 1,
            legend_top - 1,
            legend_left + legend_width + 1,
            legend_top + legend_height + 1,
        ],
        outline=(200, 200, 200),
        width=1,
    )

    if annotate:
        summary = (
            f"Samples: {len(path)} | {recording.duration_ms} ms | speed px/ms "
            f"p50 {quantile(speeds, 0.50):.3f} | p95 {quantile(speeds, 0.95):.3f} "
            f"| max {max(speeds):.3f}"
        )
        draw.text(
            (canvas_margin, canvas_height - canvas_margin - 14),
            summary,
            fill=(200, 200, 200),
        )
    return image


async def save_trajectory_jpeg(
    recording: Recording,
    geometry: ScreenGeometry,
    outfile: str = "mouse_trajectory.jpg",
    *,
    estimates: Optional[Sequence] = None,
    **render_kwargs,
) -> str:
    """Render a recording to a JPEG on a worker thread; returns the path."""

    def _render() -> str:
        image = render_trajectory(
            recording, geometry, estimates=estimates or (), **render_kwargs
        )
        image.save(outfile, format="JPEG", quality=92, optimize=True)
        return outfile

    outfile_path = await asyncio.to_thread(_render)
    logging.getLogger(__name__).info("Trajectory saved to %s", outfile_path)
    return outfile_path
