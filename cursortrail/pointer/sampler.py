from __future__ import annotations
import asyncio
import enum
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from ..vision import frames
from ..vision.config import vcfg
from .config import cfg
from .clock import MonotonicClock
from .geometry import Position, ScreenGeometry, Space, resolve_geometry
from .normalize import convert, from_frame, to_unit
from .recorder import LogWriter, Sample, open_log

logger = logging.getLogger(__name__)


class SamplerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EstimateReport:
    """Ground truth next to the vision estimate for one tick, both unit-normalized."""

    offset_ms: int
    truth: Position
    estimate: Position

    @property
    def error(self) -> float:
        """Euclidean distance in unit space."""
        return math.hypot(self.estimate.x - self.truth.x, self.estimate.y - self.truth.y)


DoneCallback = Callable[[SamplerState], None]


class Sampler:
    """Fixed-period pointer sampler feeding a LogWriter.

    Slot k is due at k * period after start (slot 0 fires immediately) and
    only slots due strictly before `duration` fire, so period=1000,
    duration=5000 gives offsets 0, 1000, 2000, 3000, 4000. Offsets are the
    measured elapsed time at the start of each tick. If a tick overruns, the
    next due slot fires late (once) and any slots that elapsed entirely
    during the overrun are folded into it. The run itself lasts until the
    deadline, not just until the last tick.

    Estimator jobs (capture, annotate, encode, estimate) run as separate
    tasks; the job from the previous tick is cancelled when the next tick
    fires or the run ends. Their results land in `reports` and on the
    in-memory samples, never in the log file.
    """

    def __init__(
        self,
        backend,
        writer: LogWriter,
        geometry: ScreenGeometry,
        *,
        clock=None,
        estimator=None,
        prompt: str = vcfg.PROMPT,
        max_frame_edge: int = vcfg.MAX_FRAME_EDGE,
        debug_frames_dir=vcfg.DEBUG_FRAMES_DIR,
        on_done: Optional[DoneCallback] = None,
    ):
        self.backend = backend
        self.writer = writer
        self.geometry = geometry
        self.clock = clock or MonotonicClock()
        self.estimator = estimator
        self.prompt = prompt
        self.max_frame_edge = max_frame_edge
        self.debug_frames_dir = debug_frames_dir
        self.on_done = on_done

        self.state = SamplerState.IDLE
        self.ticks = 0
        self.skipped_ticks = 0
        self.abandoned_estimates = 0
        self.reports: List[EstimateReport] = []

        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Task] = None
        # created in start() so it binds to the loop that runs the sampler
        self._stop: Optional[asyncio.Event] = None
        self._cancel_requested = False
        self._notified = False

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def start(
        self,
        period_ms: int = cfg.DEFAULT_PERIOD_MS,
        duration_ms: int = cfg.DEFAULT_DURATION_MS,
    ) -> asyncio.Task:
        """Arm the tick loop and deadline. Must be called from a running loop."""
        if self.state is not SamplerState.IDLE:
            raise RuntimeError(f"sampler already {self.state.value}")
        if period_ms <= 0 or duration_ms <= 0:
            raise ValueError("period and duration must be positive")
        self.state = SamplerState.RUNNING
        self._stop = asyncio.Event()
        if self._cancel_requested:
            self._stop.set()
        self._task = asyncio.create_task(
            self._run(period_ms / 1000.0, duration_ms / 1000.0)
        )
        logger.info(
            "Sampling every %d ms for %d ms (%s space)",
            period_ms,
            duration_ms,
            self.writer.space.value,
        )
        return self._task

    def cancel(self) -> None:
        """Stop issuing ticks; an append already in progress still completes."""
        self._cancel_requested = True
        if self._stop is not None:
            self._stop.set()

    async def wait(self) -> SamplerState:
        if self._task is None:
            return self.state
        return await self._task

    async def run(
        self,
        period_ms: int = cfg.DEFAULT_PERIOD_MS,
        duration_ms: int = cfg.DEFAULT_DURATION_MS,
    ) -> SamplerState:
        """start() and wait() in one call."""
        self.start(period_ms, duration_ms)
        return await self.wait()

    def _finish(self, state: SamplerState) -> None:
        self.state = state
        if self._notified:
            return
        self._notified = True
        logger.info(
            "Recording %s: %d samples, %d skipped ticks, %d estimates",
            state.value,
            len(self.writer),
            self.skipped_ticks,
            len(self.reports),
        )
        if self.on_done is not None:
            try:
                self.on_done(state)
            except Exception:
                logger.warning("on_done callback failed", exc_info=True)

    # -----------------------------
    # Timer loop
    # -----------------------------
    async def _sleep_or_stop(self, seconds: float) -> bool:
        """Sleep on the clock; return True if cancel() was called meanwhile."""
        if self._stop.is_set():
            return True
        sleeper = asyncio.ensure_future(self.clock.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()
        return self._stop.is_set()

    async def _run(self, period: float, duration: float) -> SamplerState:
        start = self.clock.now()
        last_offset: Optional[int] = None
        slot = 0
        final = SamplerState.FINISHED
        try:
            while True:
                due = slot * period
                if due >= duration:
                    break
                elapsed = self.clock.now() - start
                if elapsed >= duration:
                    break
                if due > elapsed:
                    if await self._sleep_or_stop(due - elapsed):
                        final = SamplerState.CANCELLED
                        break
                    if self.clock.now() - start >= duration:
                        break
                elif self._stop.is_set():
                    final = SamplerState.CANCELLED
                    break

                last_offset = await self._tick(start, last_offset)

                after = self.clock.now() - start
                slot = max(slot + 1, int(after // period))

            # no slot left: hold the window open until the deadline so the
            # last estimate gets its full period and cancel() still counts
            if final is SamplerState.FINISHED:
                remaining = duration - (self.clock.now() - start)
                if remaining > 0 and await self._sleep_or_stop(remaining):
                    final = SamplerState.CANCELLED
        except asyncio.CancelledError:
            final = SamplerState.CANCELLED
            raise
        finally:
            if self._pending is not None and not self._pending.done():
                self._pending.cancel()
                self.abandoned_estimates += 1
            self._finish(final)
        return final

    async def _tick(self, start: float, last_offset: Optional[int]) -> Optional[int]:
        self.ticks += 1
        offset_ms = int(round((self.clock.now() - start) * 1000.0))
        if last_offset is not None and offset_ms <= last_offset:
            offset_ms = last_offset + 1

        try:
            x, y = await self.backend.get_position()
        except Exception:
            self.skipped_ticks += 1
            logger.warning("Pointer read failed at %d ms; skipping tick", offset_ms, exc_info=True)
            return last_offset

        logical = Position(float(x), float(y), Space.LOGICAL)
        sample = Sample(offset_ms, convert(logical, self.writer.space, self.geometry))
        self.writer.append(sample)
        logger.debug("t=%d ms pointer (%.1f, %.1f)", offset_ms, logical.x, logical.y)

        if self.estimator is not None:
            self._launch_estimate(offset_ms, logical)
        return offset_ms

    # -----------------------------
    # Estimator path (off the critical path)
    # -----------------------------
    def _launch_estimate(self, offset_ms: int, logical: Position) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            self.abandoned_estimates += 1
            logger.debug("Abandoned estimate still pending at %d ms", offset_ms)
        self._pending = asyncio.create_task(self._estimate_job(offset_ms, logical))

    async def _estimate_job(self, offset_ms: int, logical: Position) -> Optional[EstimateReport]:
        physical = convert(logical, Space.PHYSICAL, self.geometry)
        try:
            frame = await self.backend.capture()
        except Exception:
            logger.warning("Screen capture failed at %d ms", offset_ms, exc_info=True)
            return None

        try:
            encoded, sent_size = await asyncio.to_thread(
                self._prepare_frame, frame, physical.x, physical.y
            )
        except Exception:
            logger.warning("Frame encoding failed at %d ms", offset_ms, exc_info=True)
            return None

        if self.debug_frames_dir:
            try:
                frames.save_debug_frame(
                    encoded, self.debug_frames_dir, physical.x, physical.y, time.time()
                )
            except OSError:
                logger.warning("Could not save debug frame", exc_info=True)

        try:
            point = await self.estimator.estimate(encoded, self.prompt)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Estimator failed at %d ms", offset_ms, exc_info=True)
            return None

        if point is None:
            logger.info("No estimate at %d ms", offset_ms)
            return None

        truth = to_unit(logical, self.geometry)
        estimate = from_frame(point[0], point[1], sent_size)
        report = EstimateReport(offset_ms, truth, estimate)
        self.reports.append(report)
        self.writer.attach_estimate(
            offset_ms, convert(estimate, self.writer.space, self.geometry)
        )
        logger.info(
            "Ground truth: (%.4f, %.4f) vs estimate: (%.4f, %.4f) [raw %s,%s] error=%.4f",
            truth.x,
            truth.y,
            estimate.x,
            estimate.y,
            point[0],
            point[1],
            report.error,
        )
        return report

    def _prepare_frame(
        self, frame, x: float, y: float
    ) -> Tuple[bytes, Tuple[int, int]]:
        annotated = frames.annotate_frame(frame, x, y)
        sent = frames.shrink_frame(annotated, self.max_frame_edge)
        return frames.encode_png(sent), sent.size


async def record(
    backend,
    path,
    *,
    space: Union[Space, str] = cfg.DEFAULT_SPACE,
    period_ms: int = cfg.DEFAULT_PERIOD_MS,
    duration_ms: int = cfg.DEFAULT_DURATION_MS,
    geometry: Optional[ScreenGeometry] = None,
    **sampler_kwargs,
) -> Sampler:
    """Resolve geometry, open the log, sample until the deadline, close the log.

    Geometry and log errors surface before the first tick. The log is closed
    even if the run is cancelled or fails, so every appended row survives.
    """
    if geometry is None:
        geometry = await resolve_geometry(backend)
    writer = open_log(path, Space.parse(space))
    sampler = Sampler(backend, writer, geometry, **sampler_kwargs)
    try:
        await sampler.run(period_ms, duration_ms)
    finally:
        writer.close()
    return sampler
