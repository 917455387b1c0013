# src/config.py
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Config:
    video_path: str
    output_path: str

    # Initial box as (top, left, bottom, right) in pixel coords of the first frame.
    # Use pick_roi.py to get one.
    bbox: Tuple[float, float, float, float]

    # Gauss-Newton stopping rule
    threshold: float = 0.01875
    max_iters: int = 100

    # Only process [start_seconds, stop_seconds); None = until the video ends
    start_seconds: float = 0.0
    stop_seconds: Optional[float] = None

    fps_assumed: float = 30.0
