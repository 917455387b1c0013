import cv2
import numpy as np
import pytest


def make_texture(shape=(160, 200), sigma: float = 5.0, seed: int = 0) -> np.ndarray:
    """Smooth random texture in [0, 255], float64."""
    rng = np.random.default_rng(seed)
    noise = rng.normal(0.0, 1.0, shape)
    img = cv2.GaussianBlur(noise, (0, 0), sigma)
    img = (img - img.min()) / (img.max() - img.min())
    return img * 255.0


def shift_image(img: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Content at (x, y) moves to (x+dx, y+dy)."""
    return np.roll(img, shift=(dy, dx), axis=(0, 1))


@pytest.fixture
def texture() -> np.ndarray:
    return make_texture()
