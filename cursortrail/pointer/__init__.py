from .geometry import (
    GeometryUnavailable,
    Position,
    ScreenGeometry,
    Space,
    resolve_geometry,
)
from .normalize import convert, from_frame, from_unit, rescale, to_unit
from .recorder import LogWriter, Recording, RecordingClosed, Sample, open_log
from .sampler import EstimateReport, Sampler, SamplerState, record
from .player import MalformedLog, PlaybackReport, Player, load_recording, play_file
from .analysis import summarize_estimates, summarize_speeds
from .render import save_trajectory_jpeg

__all__ = [
    "GeometryUnavailable",
    "Position",
    "ScreenGeometry",
    "Space",
    "resolve_geometry",
    "convert",
    "from_frame",
    "from_unit",
    "rescale",
    "to_unit",
    "LogWriter",
    "Recording",
    "RecordingClosed",
    "Sample",
    "open_log",
    "EstimateReport",
    "Sampler",
    "SamplerState",
    "record",
    "MalformedLog",
    "PlaybackReport",
    "Player",
    "load_recording",
    "play_file",
    "summarize_estimates",
    "summarize_speeds",
    "save_trajectory_jpeg",
]
