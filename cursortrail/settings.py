"""Runtime configuration assembled from command-line arguments and the environment."""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .pointer.config import cfg
from .pointer.geometry import Space
from .utils import parse_size
from .vision.config import vcfg


class ConfigError(ValueError):
    """Invalid or incomplete configuration; fatal before any sampling starts."""

    pass


def require_api_key(env: Optional[Mapping[str, str]] = None, name: str = vcfg.API_KEY_ENV) -> str:
    """Return the estimator credential or raise ConfigError if it is unset."""
    env = os.environ if env is None else env
    key = (env.get(name) or "").strip()
    if not key:
        raise ConfigError(f"{name} environment variable not set")
    return key


def _positive_ms(value, label: str) -> int:
    try:
        ms = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer number of milliseconds") from exc
    if ms <= 0:
        raise ConfigError(f"{label} must be positive, got {ms}")
    return ms


@dataclass(frozen=True)
class RecordConfig:
    out_path: Path
    space: Space = Space.UNIT
    period_ms: int = cfg.DEFAULT_PERIOD_MS
    duration_ms: int = cfg.DEFAULT_DURATION_MS
    estimate: bool = False
    api_key: Optional[str] = None
    model: str = vcfg.MODEL
    max_frame_edge: int = vcfg.MAX_FRAME_EDGE
    debug_frames_dir: Optional[Path] = None
    render_path: Optional[Path] = None
    browser_url: Optional[str] = None


@dataclass(frozen=True)
class PlayConfig:
    log_path: Path
    assume_space: Optional[Space] = None
    clamp: bool = cfg.CLAMP_PLAYBACK
    source_logical: Optional[Tuple[int, int]] = None
    source_physical: Optional[Tuple[int, int]] = None
    browser_url: Optional[str] = None


def load_record_config(args, env: Optional[Mapping[str, str]] = None) -> RecordConfig:
    """Validate `record` arguments; the credential is required only with --estimate."""
    if env is None:
        load_dotenv()
        env = os.environ
    try:
        space = Space.parse(args.space)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    period_ms = _positive_ms(args.period, "period")
    duration_ms = _positive_ms(args.duration, "duration")
    if period_ms > duration_ms:
        raise ConfigError(f"period {period_ms} ms exceeds duration {duration_ms} ms")
    api_key = require_api_key(env) if args.estimate else None
    return RecordConfig(
        out_path=Path(args.out),
        space=space,
        period_ms=period_ms,
        duration_ms=duration_ms,
        estimate=bool(args.estimate),
        api_key=api_key,
        model=args.model or vcfg.MODEL,
        max_frame_edge=int(args.max_frame_edge or 0),
        debug_frames_dir=Path(args.debug_frames) if args.debug_frames else None,
        render_path=Path(args.render) if args.render else None,
        browser_url=args.browser,
    )


def load_play_config(args) -> PlayConfig:
    try:
        assume = Space.parse(args.assume_space) if args.assume_space else None
        source_logical = parse_size(args.source_logical) if args.source_logical else None
        source_physical = parse_size(args.source_physical) if args.source_physical else None
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    if source_physical is not None and source_logical is None:
        raise ConfigError("--source-physical needs --source-logical")
    return PlayConfig(
        log_path=Path(args.log),
        assume_space=assume,
        clamp=not args.no_clamp,
        source_logical=source_logical,
        source_physical=source_physical or source_logical,
        browser_url=args.browser,
    )
