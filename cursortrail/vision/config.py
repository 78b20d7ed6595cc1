from __future__ import annotations
from typing import Tuple


class vcfg:
    # --- Credential / endpoint ---
    API_KEY_ENV = "GEMINI_API_KEY"
    MODEL = "gemini-2.0-flash"
    ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    REQUEST_TIMEOUT_S = 8.0

    PROMPT = (
        "This screenshot has an artificial red crosshair marker drawn on it. "
        "Your task is to ignore all other UI elements and find this red crosshair. "
        "Return only the center x,y coordinates of the crosshair in the format x,y."
    )

    # --- Crosshair marker drawn at the ground-truth position ---
    CROSSHAIR_COLOR: Tuple[int, int, int] = (255, 0, 0)
    CROSSHAIR_ARM_PX = 15  # out from the center
    CROSSHAIR_THICKNESS_PX = 3

    # --- Upload ---
    MAX_FRAME_EDGE = 0  # 0 = send the physical frame as captured
    DEBUG_FRAMES_DIR = None  # set to a directory to keep every annotated frame
