# src/metrics.py
from dataclasses import dataclass
from typing import Optional, Tuple
import math

from bbox import BoundingBox
from tracker_ic import TrackResult


@dataclass
class TrackMetrics:
    frames: int = 0
    tracked_frames: int = 0
    converged_frames: int = 0
    failed_frames: int = 0
    total_iterations: int = 0
    center_step_sum: float = 0.0
    center_steps: int = 0

    @property
    def mean_iterations(self) -> float:
        return self.total_iterations / self.tracked_frames if self.tracked_frames else 0.0

    @property
    def mean_center_step(self) -> float:
        return self.center_step_sum / self.center_steps if self.center_steps else 0.0

    @property
    def convergence_rate(self) -> float:
        return self.converged_frames / self.tracked_frames if self.tracked_frames else 0.0


def step_distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    return math.hypot(p1[0]-p2[0], p1[1]-p2[1])


def update_metrics(m: TrackMetrics,
                   prev_box: Optional[BoundingBox],
                   result: Optional[TrackResult]) -> None:
    """Fold one frame into the metrics; result is None when tracking failed."""
    m.frames += 1

    if result is None:
        m.failed_frames += 1
        return

    m.tracked_frames += 1
    m.total_iterations += result.iterations
    if result.converged:
        m.converged_frames += 1

    if prev_box is not None:
        m.center_step_sum += step_distance(prev_box.center, result.bbox.center)
        m.center_steps += 1
