from __future__ import annotations


class cfg:
    """Recording / playback tuning"""

    # --- Sampling ---
    DEFAULT_PERIOD_MS = 1000
    DEFAULT_DURATION_MS = 10_000

    # --- Log format ---
    LOG_PATH = "mouse_movements.csv"
    TIMESTAMP_COLUMN = "timestamp"
    DEFAULT_SPACE = "norm"  # unit-normalized logs replay on any screen
    UNIT_DECIMALS = 8
    PIXEL_DECIMALS = 3

    # --- Playback ---
    CLAMP_PLAYBACK = True  # keep replayed points inside the current screen
    MIN_SLEEP_S = 0.0005  # waits shorter than this are skipped

    # --- Browser backend (zendriver) ---
    VIEWPORT_TIMEOUT_S = 1.5
    VIEWPORT_POLL_INTERVAL_S = 0.05
    CDP_SEND_TIMEOUT_S = 0.10
    CDP_SEND_RETRIES = 3

    # --- Trajectory rendering ---
    MIN_SPEED_PX_PER_MS = 0.0
    MAX_SPEED_PX_PER_MS = 2.0
