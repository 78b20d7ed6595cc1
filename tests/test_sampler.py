"""Test sampler: fixed-period pointer sampling."""

import asyncio
import csv
import time

import pytest

from cursortrail.pointer.clock import MonotonicClock, VirtualClock
from cursortrail.pointer.geometry import ScreenGeometry, Space
from cursortrail.pointer.recorder import open_log
from cursortrail.pointer.sampler import Sampler, SamplerState, record
from cursortrail.vision.estimator import Estimator


def _body(path):
    with open(path, newline="") as fh:
        return list(csv.reader(fh))[1:]


class HangingEstimator(Estimator):
    """Never answers; every call has to be abandoned."""

    def __init__(self):
        self.calls = 0
        self.cancelled = 0

    async def estimate(self, image_png, prompt):
        self.calls += 1
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


class FixedEstimator(Estimator):
    def __init__(self, point):
        self.point = point
        self.images = []

    async def estimate(self, image_png, prompt):
        self.images.append(image_png)
        return self.point


class SlowEstimator(FixedEstimator):
    def __init__(self, point, delay):
        super().__init__(point)
        self.delay = delay

    async def estimate(self, image_png, prompt):
        await asyncio.sleep(self.delay)
        return await super().estimate(image_png, prompt)


class TestTickSchedule:
    @pytest.mark.asyncio
    async def test_five_samples_at_fixed_offsets(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        backend = fake_backend_cls(positions=[(0, 0), (192, 108), (960, 540), (1919, 1079), (10, 10)])
        path = tmp_path / "log.csv"
        sampler = await record(
            backend, path, space=Space.LOGICAL, period_ms=1000, duration_ms=5000,
            geometry=geometry_1080p, clock=clock,
        )
        assert sampler.state is SamplerState.FINISHED
        assert [int(r[0]) for r in _body(path)] == [0, 1000, 2000, 3000, 4000]
        assert _body(path)[2] == ["2000", "960", "540"]

    @pytest.mark.asyncio
    async def test_unit_space_log(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        backend = fake_backend_cls(positions=[(960, 540)])
        path = tmp_path / "log.csv"
        await record(
            backend, path, space="norm", period_ms=1000, duration_ms=2000,
            geometry=geometry_1080p, clock=clock,
        )
        assert _body(path) == [["0", "0.50000000", "0.50000000"], ["1000", "0.50000000", "0.50000000"]]

    @pytest.mark.asyncio
    async def test_timestamps_are_measured_after_overrun(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        def slow_first_read(index):
            if index == 0:
                clock.advance(2.5)

        backend = fake_backend_cls(on_read=slow_first_read)
        path = tmp_path / "log.csv"
        sampler = await record(
            backend, path, period_ms=1000, duration_ms=5000,
            geometry=geometry_1080p, clock=clock,
        )
        offsets = [int(r[0]) for r in _body(path)]
        # slot 1 elapsed during the overrun, slot 2 fires late, then back on schedule
        assert offsets == [0, 2500, 3000, 4000]
        assert sampler.ticks == 4

    @pytest.mark.asyncio
    async def test_read_failure_skips_tick_only(self, tmp_path, fake_backend_cls, clock, geometry_1080p, caplog):
        backend = fake_backend_cls(positions=[(1, 1), OSError("gone"), (3, 3), (4, 4), (5, 5)])
        path = tmp_path / "log.csv"
        sampler = await record(
            backend, path, space=Space.LOGICAL, period_ms=1000, duration_ms=5000,
            geometry=geometry_1080p, clock=clock,
        )
        assert [r[0] for r in _body(path)] == ["0", "2000", "3000", "4000"]
        assert sampler.skipped_ticks == 1
        assert sampler.state is SamplerState.FINISHED
        assert any("Pointer read failed" in r.getMessage() for r in caplog.records)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_cancel_stops_ticks_and_keeps_rows(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        states = []
        holder = {}

        def cancel_on_third(index):
            if index == 2:
                holder["sampler"].cancel()

        backend = fake_backend_cls(on_read=cancel_on_third)
        path = tmp_path / "log.csv"
        log = open_log(path)
        sampler = Sampler(backend, log, geometry_1080p, clock=clock, on_done=states.append)
        holder["sampler"] = sampler
        state = await sampler.run(1000, 10_000)
        log.close()
        assert state is SamplerState.CANCELLED
        # the tick that observed cancel() still completes its append
        assert [r[0] for r in _body(path)] == ["0", "1000", "2000"]
        assert states == [SamplerState.CANCELLED]

    @pytest.mark.asyncio
    async def test_done_callback_fires_once(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        states = []
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock, on_done=states.append)
        await sampler.run(1000, 3000)
        sampler.cancel()
        log.close()
        assert states == [SamplerState.FINISHED]
        assert sampler.state is SamplerState.FINISHED

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock)
        await sampler.run(1000, 2000)
        with pytest.raises(RuntimeError):
            sampler.start(1000, 2000)
        log.close()

    @pytest.mark.asyncio
    async def test_run_lasts_until_deadline(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        states = []
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock, on_done=states.append)
        await sampler.run(1000, 5000)
        log.close()
        assert len(log) == 5
        # last tick at 4000 ms, then the window is held open to 5000 ms
        assert clock.now() == pytest.approx(5.0)
        assert clock.sleeps[-1] == pytest.approx(1.0)
        assert states == [SamplerState.FINISHED]

    @pytest.mark.asyncio
    async def test_cancel_after_last_tick(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        holder = {}

        def cancel_on_last(index):
            if index == 4:
                holder["sampler"].cancel()

        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(on_read=cancel_on_last), log, geometry_1080p, clock=clock)
        holder["sampler"] = sampler
        state = await sampler.run(1000, 5000)
        log.close()
        assert state is SamplerState.CANCELLED
        assert len(log) == 5
        assert clock.now() == pytest.approx(4.0)

    def test_built_outside_event_loop(self, tmp_path, fake_backend_cls, geometry_1080p):
        clock = VirtualClock()
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock)
        state = asyncio.run(sampler.run(1000, 3000))
        log.close()
        assert state is SamplerState.FINISHED
        assert len(log) == 3

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock)
        sampler.cancel()
        state = await sampler.run(1000, 3000)
        log.close()
        assert state is SamplerState.CANCELLED
        assert len(log) == 0

    @pytest.mark.asyncio
    async def test_rejects_non_positive_period(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        log = open_log(tmp_path / "log.csv")
        sampler = Sampler(fake_backend_cls(), log, geometry_1080p, clock=clock)
        with pytest.raises(ValueError):
            sampler.start(0, 2000)
        assert sampler.state is SamplerState.IDLE
        log.close()


class TestEstimatorPath:
    @pytest.mark.asyncio
    async def test_hanging_estimator_changes_nothing(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        estimator = HangingEstimator()
        plain_path = tmp_path / "plain.csv"
        with_path = tmp_path / "with.csv"
        positions = [(10 * i, 5 * i) for i in range(6)]

        await record(
            fake_backend_cls(positions=positions), plain_path, period_ms=1000,
            duration_ms=5000, geometry=geometry_1080p, clock=clock,
        )
        with_clock = type(clock)()
        sampler = await record(
            fake_backend_cls(positions=positions), with_path, period_ms=1000,
            duration_ms=5000, geometry=geometry_1080p, clock=with_clock,
            estimator=estimator,
        )
        await asyncio.sleep(0)

        assert _body(with_path) == _body(plain_path)
        assert len(_body(with_path)) == 5
        assert sampler.reports == []
        # one job per tick, each abandoned at the next tick or at the deadline;
        # the last one is only dropped once the full window has elapsed
        assert sampler.abandoned_estimates == 5
        assert with_clock.now() == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_estimates_are_reported_not_logged(self, tmp_path, fake_backend_cls):
        # 2x panel, frame shrunk to 160x100 before upload; the model answers
        # in the grid of the image it was actually sent
        geometry = ScreenGeometry((160, 100), (320, 200))
        estimator = FixedEstimator((80.0, 50.0))
        backend = fake_backend_cls(logical=(160, 100), physical=(320, 200), positions=[(80, 50)])
        path = tmp_path / "log.csv"
        sampler = await record(
            backend, path, period_ms=200, duration_ms=600,
            geometry=geometry, clock=MonotonicClock(), estimator=estimator,
            max_frame_edge=160,
        )
        assert len(_body(path)) == 3
        assert all(r[1:] == ["0.50000000", "0.50000000"] for r in _body(path))
        assert sampler.reports, "expected at least one finished estimate"
        report = sampler.reports[0]
        assert report.truth.as_tuple() == pytest.approx((0.5, 0.5))
        assert report.estimate.as_tuple() == pytest.approx((0.5, 0.5))
        assert report.error == pytest.approx(0.0)
        assert estimator.images[0][:8] == b"\x89PNG\r\n\x1a\n"

    @pytest.mark.asyncio
    async def test_quick_estimator_reports_every_tick(self, tmp_path, fake_backend_cls):
        estimator = SlowEstimator((32.0, 24.0), delay=0.05)
        backend = fake_backend_cls(logical=(64, 48), physical=(128, 96), positions=[(16, 12)])
        path = tmp_path / "log.csv"
        started = time.perf_counter()
        sampler = await record(
            backend, path, space=Space.LOGICAL, period_ms=200, duration_ms=600,
            geometry=ScreenGeometry((64, 48), (128, 96)), clock=MonotonicClock(),
            estimator=estimator,
        )
        elapsed = time.perf_counter() - started

        assert 0.55 <= elapsed < 0.9
        assert len(sampler.reports) == 3
        assert sampler.abandoned_estimates == 0
        # estimates ride on the in-memory samples only
        estimates = [s.estimate for s in sampler.writer.recording]
        assert [e.as_tuple() for e in estimates] == [pytest.approx((16.0, 12.0))] * 3
        assert all(e.space is Space.LOGICAL for e in estimates)
        assert [r[1:] for r in _body(path)] == [["16", "12"]] * 3

    @pytest.mark.asyncio
    async def test_capture_failure_is_soft(self, tmp_path, fake_backend_cls, clock, geometry_1080p):
        backend = fake_backend_cls()

        async def broken_capture():
            raise OSError("capture denied")

        backend.capture = broken_capture
        estimator = FixedEstimator((1.0, 1.0))
        path = tmp_path / "log.csv"
        sampler = await record(
            backend, path, period_ms=1000, duration_ms=3000,
            geometry=geometry_1080p, clock=clock, estimator=estimator,
        )
        assert len(_body(path)) == 3
        assert sampler.state is SamplerState.FINISHED
        assert estimator.images == []

    @pytest.mark.asyncio
    async def test_debug_frames_saved(self, tmp_path, fake_backend_cls):
        frames_dir = tmp_path / "frames"
        backend = fake_backend_cls(logical=(64, 48), physical=(128, 96), positions=[(16, 12)])
        await record(
            backend, tmp_path / "log.csv", period_ms=200, duration_ms=400,
            geometry=ScreenGeometry((64, 48), (128, 96)), clock=MonotonicClock(),
            estimator=FixedEstimator((32.0, 24.0)), debug_frames_dir=frames_dir,
        )
        # named after the physical crosshair position
        assert list(frames_dir.glob("debug_x32_y24_t*.png"))
