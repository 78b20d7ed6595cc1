from __future__ import annotations
import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import List, Optional

import zendriver

from .pointer.analysis import summarize_estimates, summarize_speeds
from .pointer.backends import BrowserBackend, DesktopBackend
from .pointer.config import cfg
from .pointer.geometry import GeometryUnavailable, ScreenGeometry, resolve_geometry
from .pointer.player import MalformedLog, Player, load_recording
from .pointer.recorder import open_log
from .pointer.render import save_trajectory_jpeg
from .pointer.sampler import Sampler
from .settings import ConfigError, PlayConfig, RecordConfig, load_play_config, load_record_config
from .utils import HiResTimer
from .vision.config import vcfg
from .vision.estimator import GeminiEstimator

logger = logging.getLogger("cursortrail")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cursortrail",
        description="Record and replay pointer trajectories.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("record", help="sample the pointer into a log")
    rec.add_argument("--out", default=cfg.LOG_PATH, help="log file to write")
    rec.add_argument("--duration", type=int, default=cfg.DEFAULT_DURATION_MS, help="ms")
    rec.add_argument("--period", type=int, default=cfg.DEFAULT_PERIOD_MS, help="ms")
    rec.add_argument(
        "--space",
        default=cfg.DEFAULT_SPACE,
        choices=["norm", "unit", "logical", "physical"],
        help="coordinate space written to the log",
    )
    rec.add_argument(
        "--estimate",
        action="store_true",
        help=f"cross-check each sample with Gemini (needs {vcfg.API_KEY_ENV})",
    )
    rec.add_argument("--model", default=None, help="Gemini model name")
    rec.add_argument("--max-frame-edge", type=int, default=vcfg.MAX_FRAME_EDGE)
    rec.add_argument("--debug-frames", default=None, help="directory for annotated frames")
    rec.add_argument("--render", default=None, help="also save a trajectory JPEG")
    rec.add_argument("--browser", default=None, metavar="URL", help="record inside a browser page")

    play = sub.add_parser("play", help="replay a log")
    play.add_argument("log", nargs="?", default=cfg.LOG_PATH)
    play.add_argument(
        "--assume-space",
        default=None,
        choices=["norm", "unit", "logical", "physical"],
        help="space of a legacy log whose header carries no tag",
    )
    play.add_argument("--no-clamp", action="store_true", help="allow off-screen targets")
    play.add_argument("--source-logical", default=None, metavar="WxH")
    play.add_argument("--source-physical", default=None, metavar="WxH")
    play.add_argument("--browser", default=None, metavar="URL", help="replay inside a browser page")
    return parser


@contextlib.asynccontextmanager
async def _open_backend(url: Optional[str]):
    if not url:
        yield DesktopBackend()
        return
    browser = await zendriver.start()
    try:
        page = await browser.get(url)
        yield BrowserBackend(page)
    finally:
        await browser.stop()


async def run_record(conf: RecordConfig) -> int:
    async with _open_backend(conf.browser_url) as backend:
        geometry = await resolve_geometry(backend)
        estimator = GeminiEstimator(conf.api_key, model=conf.model) if conf.estimate else None
        writer = open_log(conf.out_path, conf.space)
        sampler = Sampler(
            backend,
            writer,
            geometry,
            estimator=estimator,
            max_frame_edge=conf.max_frame_edge,
            debug_frames_dir=conf.debug_frames_dir,
        )
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, sampler.cancel)
        try:
            with HiResTimer():
                await sampler.run(conf.period_ms, conf.duration_ms)
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
            writer.close()
            if estimator is not None:
                await estimator.close()

        print(summarize_speeds(writer.recording, geometry))
        if sampler.reports or conf.estimate:
            print(summarize_estimates(sampler.reports))
        if conf.render_path and writer.recording.samples:
            await save_trajectory_jpeg(
                writer.recording, geometry, str(conf.render_path), estimates=sampler.reports
            )
    return 0


async def run_play(conf: PlayConfig) -> int:
    recording = load_recording(conf.log_path, assume_space=conf.assume_space)
    source = None
    if conf.source_logical:
        source = ScreenGeometry(conf.source_logical, conf.source_physical)
    async with _open_backend(conf.browser_url) as backend:
        with HiResTimer():
            await Player(backend, clamp_to_screen=conf.clamp).play(
                recording, source_geometry=source
            )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "record":
            return asyncio.run(run_record(load_record_config(args)))
        return asyncio.run(run_play(load_play_config(args)))
    except (ConfigError, GeometryUnavailable, MalformedLog) as exc:
        logger.error("%s", exc)
        return 2
    except OSError as exc:
        logger.error("I/O error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
