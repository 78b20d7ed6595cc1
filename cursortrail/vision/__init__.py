from .estimator import Estimator, GeminiEstimator, parse_estimate
from .frames import annotate_frame, encode_png, save_debug_frame, shrink_frame

__all__ = [
    "Estimator",
    "GeminiEstimator",
    "parse_estimate",
    "annotate_frame",
    "encode_png",
    "save_debug_frame",
    "shrink_frame",
]
