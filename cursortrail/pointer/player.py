from __future__ import annotations
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from ..utils import clamp
from .clock import MonotonicClock
from .config import cfg
from .geometry import Position, ScreenGeometry, Space, resolve_geometry
from .normalize import convert, rescale
from .recorder import Recording, Sample

logger = logging.getLogger(__name__)


class MalformedLog(ValueError):
    """Raised when a log cannot be interpreted as a whole."""

    pass


def space_from_header(
    header: Sequence[str], assume_space: Optional[Union[Space, str]] = None
) -> Space:
    """Read the coordinate space a log's header declares.

    Untagged legacy headers ('timestamp,x,y') only load when the caller
    names the space; guessing from value ranges is not attempted.
    """
    cols = [c.strip().lower() for c in header]
    if len(cols) != 3:
        raise MalformedLog(f"expected 3 header columns, got {len(cols)}: {header!r}")
    if cols[0] != cfg.TIMESTAMP_COLUMN:
        raise MalformedLog(f"first column must be {cfg.TIMESTAMP_COLUMN!r}, got {header[0]!r}")

    assumed = Space.parse(assume_space) if assume_space is not None else None
    if cols[1:] == ["x", "y"]:
        if assumed is None:
            raise MalformedLog(
                "log header does not name its coordinate space; "
                "pass assume_space to load an untagged log"
            )
        return assumed

    for space in Space:
        if cols[1:] == [f"{space.value}_x", f"{space.value}_y"]:
            if assumed is not None and assumed is not space:
                raise MalformedLog(
                    f"log is tagged {space.value} but {assumed.value} was assumed"
                )
            return space
    raise MalformedLog(f"unrecognised coordinate columns: {header[1:]!r}")


def load_recording(
    path: Union[str, Path], *, assume_space: Optional[Union[Space, str]] = None
) -> Recording:
    """Read a log back into a Recording.

    Bad rows (wrong field count, unparsable numbers, offsets that do not
    increase) are skipped one by one with a warning each. MalformedLog is
    raised only when the file, its header, or every row is unusable.
    """
    path = Path(path)
    try:
        fh = open(path, newline="", encoding="utf-8")
    except OSError as exc:
        raise MalformedLog(f"cannot read {path}: {exc}") from exc

    with fh:
        reader = csv.reader(fh)
        try:
            header = next(reader, None)
        except csv.Error as exc:
            raise MalformedLog(f"{path}: unreadable header: {exc}") from exc
        if header is None:
            raise MalformedLog(f"{path} is empty")
        recording = Recording(space_from_header(header, assume_space))

        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                recording.skipped_rows += 1
                logger.warning("%s:%d: skipping unreadable row: %s", path, reader.line_num, exc)
                continue
            if not row:
                continue
            if len(row) != 3:
                recording.skipped_rows += 1
                logger.warning("%s:%d: skipping malformed row %r", path, reader.line_num, row)
                continue
            try:
                offset_ms = int(row[0])
                x = float(row[1])
                y = float(row[2])
                recording.append(Sample(offset_ms, Position(x, y, recording.space)))
            except ValueError as exc:
                recording.skipped_rows += 1
                logger.warning("%s:%d: skipping row %r: %s", path, reader.line_num, row, exc)

    if not recording.samples:
        raise MalformedLog(f"{path} contains no usable samples")
    logger.info(
        "Loaded %d %s samples from %s (%d rows skipped)",
        len(recording),
        recording.space.value,
        path,
        recording.skipped_rows,
    )
    return recording


@dataclass
class PlaybackReport:
    """What a playback actually did."""

    moves: List[Tuple[int, int]] = field(default_factory=list)
    elapsed_s: float = 0.0
    geometry: Optional[ScreenGeometry] = None


class Player:
    """Replays a Recording through a pointer backend.

    Each move is issued at start + (offset - first_offset), measured against
    the clock at the time of the wait, so a slow positioning command delays
    only itself. Moves are issued strictly in order, one at a time.
    """

    def __init__(self, backend, *, clock=None, clamp_to_screen: bool = cfg.CLAMP_PLAYBACK):
        self.backend = backend
        self.clock = clock or MonotonicClock()
        self.clamp_to_screen = clamp_to_screen

    def _target(
        self,
        position: Position,
        geometry: ScreenGeometry,
        source_geometry: Optional[ScreenGeometry],
    ) -> Tuple[int, int]:
        if source_geometry is not None and position.space is not Space.UNIT:
            logical = rescale(position, source_geometry, geometry, Space.LOGICAL)
        else:
            logical = convert(position, Space.LOGICAL, geometry)
        x, y = logical.x, logical.y
        if self.clamp_to_screen:
            width, height = geometry.logical_size
            x = clamp(x, 0.0, width - 1.0)
            y = clamp(y, 0.0, height - 1.0)
        return int(round(x)), int(round(y))

    async def play(
        self,
        recording: Recording,
        *,
        source_geometry: Optional[ScreenGeometry] = None,
        geometry: Optional[ScreenGeometry] = None,
    ) -> PlaybackReport:
        """Drive the pointer through `recording` on the current screen.

        `source_geometry` is the recording machine's geometry; it only matters
        for logical/physical logs, which otherwise replay as absolute
        coordinates on the current screen.
        """
        if geometry is None:
            geometry = await resolve_geometry(self.backend)
        report = PlaybackReport(geometry=geometry)
        if not recording.samples:
            logger.warning("Nothing to play")
            return report
        if recording.space is not Space.UNIT and source_geometry is None:
            logger.info(
                "Replaying %s coordinates as-is; pass the recording geometry to rescale",
                recording.space.value,
            )

        first_offset = recording.samples[0].offset_ms
        start = self.clock.now()
        logger.info("Starting playback of %d samples", len(recording))
        for index, sample in enumerate(recording.samples):
            if index:
                due = (sample.offset_ms - first_offset) / 1000.0
                delay = due - (self.clock.now() - start)
                if delay > cfg.MIN_SLEEP_S:
                    await self.clock.sleep(delay)
            x, y = self._target(sample.position, geometry, source_geometry)
            logger.debug(
                "Moving to (%d, %d) (recorded %s %.4f,%.4f)",
                x,
                y,
                sample.space.value,
                sample.position.x,
                sample.position.y,
            )
            await self.backend.set_position(x, y)
            report.moves.append((x, y))

        report.elapsed_s = self.clock.now() - start
        logger.info("Playback finished: %d moves in %.3fs", len(report.moves), report.elapsed_s)
        return report


async def play_file(
    backend,
    path: Union[str, Path],
    *,
    assume_space: Optional[Union[Space, str]] = None,
    source_geometry: Optional[ScreenGeometry] = None,
    **player_kwargs,
) -> PlaybackReport:
    """Load `path` and play it back on `backend`."""
    recording = load_recording(path, assume_space=assume_space)
    return await Player(backend, **player_kwargs).play(recording, source_geometry=source_geometry)
