# src/bbox.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from errors import InvalidBoundingBox

ROI = Tuple[int, int, int, int]  # (x, y, w, h) OpenCV convention


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in image coordinates.
    top/bottom are rows (y), left/right are columns (x).
    """
    top: float
    left: float
    bottom: float
    right: float

    def __post_init__(self) -> None:
        # coerce numpy scalars so equality and repr stay plain
        for name in ("top", "left", "bottom", "right"):
            object.__setattr__(self, name, float(getattr(self, name)))

        if not all(math.isfinite(v) for v in self.as_tuple()):
            raise InvalidBoundingBox(f"Non-finite bounding box: {self.as_tuple()}")
        if self.right <= self.left or self.bottom <= self.top:
            raise InvalidBoundingBox(
                f"Degenerate bounding box (w={self.right - self.left}, "
                f"h={self.bottom - self.top}): {self.as_tuple()}"
            )

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> "BoundingBox":
        """ROI covering pixels x..x+w-1, y..y+h-1 (cv2.selectROI output)."""
        return cls(top=y, left=x, bottom=y + h - 1, right=x + w - 1)

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    @property
    def grid_shape(self) -> Tuple[int, int]:
        """(rows, cols) of the sampling grid laid over the box."""
        return (int(math.floor(self.height)), int(math.floor(self.width)))

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.top, self.left, self.bottom, self.right)

    def to_xywh(self) -> Tuple[float, float, float, float]:
        return (self.left, self.top, self.width + 1, self.height + 1)

    def to_int_xywh(self) -> ROI:
        x, y, w, h = self.to_xywh()
        return (int(round(x)), int(round(y)), int(round(w)), int(round(h)))

    def translated(self, dx: float, dy: float) -> "BoundingBox":
        return BoundingBox(self.top + dy, self.left + dx, self.bottom + dy, self.right + dx)

    def contains_in(self, shape: Tuple[int, ...]) -> bool:
        """True if the box lies inside an image of the given (rows, cols, ...) shape."""
        rows, cols = shape[0], shape[1]
        return (
            self.left >= 0.0
            and self.top >= 0.0
            and self.right <= cols - 1
            and self.bottom <= rows - 1
        )


def bbox_grid(bbox: BoundingBox) -> Tuple[np.ndarray, np.ndarray]:
    """
    Linearly spaced sample grid over the box, both edges inclusive.
    Spacing is width/(N-1) and height/(M-1), N=floor(width), M=floor(height).

    Returns flattened (xs, ys) in row-major order (y outer, x inner), so
    a patch sampled on it reshapes to (M, N).
    """
    rows, cols = bbox.grid_shape
    gx = np.linspace(bbox.left, bbox.right, cols, dtype=np.float64)
    gy = np.linspace(bbox.top, bbox.bottom, rows, dtype=np.float64)
    xs, ys = np.meshgrid(gx, gy)
    return xs.ravel(), ys.ravel()
