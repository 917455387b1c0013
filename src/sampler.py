# src/sampler.py
"""
Bilinear sub-pixel sampling with BORDER_REFLECT_101 borders.

Every fractional-coordinate read in the tracker goes through
sample_points(): template crops, gradient crops and the warped patch.
"""
from __future__ import annotations

from typing import Union

import numpy as np

from bbox import BoundingBox, bbox_grid

ArrayLike = Union[float, np.ndarray]

# storage types we know how to read; everything is widened to float64 once per image
_SUPPORTED_DTYPES = (np.uint8, np.uint16, np.float32, np.float64)


def as_float_image(image: np.ndarray) -> np.ndarray:
    """Validate a single-channel image and return it as float64 (no copy if already float64)."""
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim != 2:
        raise ValueError(f"Expected a single-channel 2D image, got shape {image.shape}")
    if image.dtype.type not in _SUPPORTED_DTYPES:
        raise TypeError(f"Unsupported image dtype: {image.dtype}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError(f"Empty image: {image.shape}")
    return image.astype(np.float64, copy=False)


def reflect101(index: np.ndarray, size: int) -> np.ndarray:
    """
    Map integer indices into [0, size) mirroring about the edge pixel
    without repeating it: -1 -> 1, size -> size-2 (OpenCV BORDER_REFLECT_101).
    """
    index = np.asarray(index, dtype=np.int64)
    if size == 1:
        return np.zeros_like(index)
    period = 2 * (size - 1)
    index = np.abs(index) % period
    return np.where(index >= size, period - index, index)


def sample_points(image: np.ndarray, xs: ArrayLike, ys: ArrayLike) -> np.ndarray:
    """Bilinear intensity at fractional (x, y) = (column, row) positions."""
    img = as_float_image(image)
    rows, cols = img.shape

    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)

    x0 = np.floor(xs)
    y0 = np.floor(ys)
    dx = xs - x0
    dy = ys - y0

    x0i = x0.astype(np.int64)
    y0i = y0.astype(np.int64)
    xa = reflect101(x0i, cols)
    xb = reflect101(x0i + 1, cols)
    ya = reflect101(y0i, rows)
    yb = reflect101(y0i + 1, rows)

    return (
        img[ya, xa] * (1.0 - dx) * (1.0 - dy)
        + img[ya, xb] * dx * (1.0 - dy)
        + img[yb, xa] * (1.0 - dx) * dy
        + img[yb, xb] * dx * dy
    )


def sample(image: np.ndarray, x: float, y: float) -> float:
    return float(sample_points(image, x, y))


def sample_rect(image: np.ndarray, bbox: BoundingBox) -> np.ndarray:
    """Dense (floor(h), floor(w)) patch sampled on bbox_grid()."""
    xs, ys = bbox_grid(bbox)
    return sample_points(image, xs, ys).reshape(bbox.grid_shape)
