from __future__ import annotations
import csv
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .config import cfg
from .geometry import Position, Space


class RecordingClosed(RuntimeError):
    """Raised when appending to a log that has already been closed."""

    pass


@dataclass(frozen=True)
class Sample:
    """One timestamped pointer observation.

    Attributes:
        offset_ms (int): Milliseconds since the recording started (measured, not assumed).
        position (Position): Primary pointer position, tagged with its space.
        estimate (Position | None): Vision estimate in the same space, attached
            to the in-memory copy once it arrives. Never persisted to the log.
    """

    offset_ms: int
    position: Position
    estimate: Optional[Position] = None

    @property
    def space(self) -> Space:
        return self.position.space


@dataclass
class Recording:
    """Ordered samples sharing one coordinate space.

    Responsibilities:
      - Keeps samples in append order.
      - Rejects samples from another space and non-increasing offsets.
      - Remembers how many rows were dropped when it was loaded from disk.
    """

    space: Space
    samples: List[Sample] = field(default_factory=list)
    skipped_rows: int = 0

    def append(self, sample: Sample) -> None:
        """Append a sample, rejecting mixed spaces and out-of-order offsets."""
        self.check(sample)
        self.samples.append(sample)

    def check(self, sample: Sample) -> None:
        """Raise ValueError if `sample` cannot be appended next."""
        if sample.space is not self.space:
            raise ValueError(
                f"sample in {sample.space.value} space cannot join a {self.space.value} recording"
            )
        if sample.offset_ms < 0:
            raise ValueError(f"offset must be non-negative, got {sample.offset_ms}")
        if self.samples and sample.offset_ms <= self.samples[-1].offset_ms:
            raise ValueError(
                f"offset {sample.offset_ms} ms does not follow {self.samples[-1].offset_ms} ms"
            )

    @property
    def duration_ms(self) -> int:
        """Span between the first and last sample."""
        if not self.samples:
            return 0
        return self.samples[-1].offset_ms - self.samples[0].offset_ms

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)


def header_for(space: Space) -> List[str]:
    """Column names for a log in `space`, e.g. ['timestamp', 'norm_x', 'norm_y']."""
    tag = Space.parse(space).value
    return [cfg.TIMESTAMP_COLUMN, f"{tag}_x", f"{tag}_y"]


def format_coordinate(value: float, space: Space) -> str:
    if space is Space.UNIT:
        return f"{value:.{cfg.UNIT_DECIMALS}f}"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.{cfg.PIXEL_DECIMALS}f}".rstrip("0").rstrip(".")


class LogWriter:
    """Append-only CSV log of samples in one coordinate space.

    The header is written once on open. Each append is flushed straight away,
    so a killed process loses at most the row being written. Appended samples
    are mirrored in `recording` for analysis after the run.
    """

    def __init__(self, path: Union[str, Path], space: Space):
        self.path = Path(path)
        self.space = Space.parse(space)
        self.recording = Recording(self.space)
        self._fh = open(self.path, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh)
        self._writer.writerow(header_for(self.space))
        self._fh.flush()
        logging.getLogger(__name__).info(
            "Recording %s coordinates to %s", self.space.value, self.path
        )

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def __len__(self) -> int:
        return len(self.recording)

    def append(self, sample: Sample) -> None:
        """Validate, write and flush one sample."""
        if self.closed:
            raise RecordingClosed(f"log {self.path} is closed")
        self.recording.check(sample)
        self._writer.writerow(
            [
                str(int(sample.offset_ms)),
                format_coordinate(sample.position.x, self.space),
                format_coordinate(sample.position.y, self.space),
            ]
        )
        self._fh.flush()
        self.recording.samples.append(sample)

    def attach_estimate(self, offset_ms: int, estimate: Position) -> bool:
        """Attach a late estimate to the in-memory sample taken at `offset_ms`.

        The file is left alone. Returns False if no such sample exists.
        """
        if estimate.space is not self.space:
            raise ValueError(
                f"estimate in {estimate.space.value} space cannot join a {self.space.value} log"
            )
        samples = self.recording.samples
        for index in range(len(samples) - 1, -1, -1):
            if samples[index].offset_ms == offset_ms:
                samples[index] = replace(samples[index], estimate=estimate)
                return True
            if samples[index].offset_ms < offset_ms:
                break
        return False

    def close(self) -> None:
        if self.closed:
            return
        self._fh.flush()
        self._fh.close()
        logger = logging.getLogger(__name__)
        if not self.recording.samples:
            logger.warning("Closed %s without any samples", self.path)
        else:
            logger.info("Closed %s with %d samples", self.path, len(self.recording))

    def __enter__(self) -> "LogWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_log(path: Union[str, Path], space: Space = Space.UNIT) -> LogWriter:
    """Create (truncate) a log at `path` for samples in `space`."""
    return LogWriter(path, space)
