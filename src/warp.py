# src/warp.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from errors import SingularSystem


def _frozen(m: np.ndarray) -> np.ndarray:
    m = np.array(m, dtype=np.float64, copy=True)
    m.setflags(write=False)
    return m


@dataclass(frozen=True)
class WarpModel:
    """
    Homogeneous 2D transform acting on (x, y) = (column, row).

    Affine parameters p0..p5 sit in the top two rows:
        [[1+p0, p2,   p4],
         [p1,   1+p3, p5],
         [0,    0,    1 ]]
    """
    matrix: np.ndarray

    def __post_init__(self) -> None:
        m = np.asarray(self.matrix, dtype=np.float64)
        if m.shape != (3, 3):
            raise ValueError(f"Warp matrix must be 3x3, got {m.shape}")
        object.__setattr__(self, "matrix", _frozen(m))

    @classmethod
    def identity(cls) -> "WarpModel":
        return cls(np.eye(3, dtype=np.float64))

    @classmethod
    def from_params(cls, p: Sequence[float]) -> "WarpModel":
        p = np.asarray(p, dtype=np.float64).ravel()
        if p.shape != (6,):
            raise ValueError(f"Affine warp needs 6 parameters, got {p.shape[0]}")
        return cls(
            np.array(
                [
                    [1.0 + p[0], p[2], p[4]],
                    [p[1], 1.0 + p[3], p[5]],
                    [0.0, 0.0, 1.0],
                ],
                dtype=np.float64,
            )
        )

    @property
    def params(self) -> np.ndarray:
        m = self.matrix
        return np.array(
            [m[0, 0] - 1.0, m[1, 0], m[0, 1], m[1, 1] - 1.0, m[0, 2], m[1, 2]],
            dtype=np.float64,
        )

    def compose(self, other: "WarpModel") -> "WarpModel":
        """self · other: apply `other` first, then `self`."""
        return WarpModel(self.matrix @ other.matrix)

    def inverse(self) -> "WarpModel":
        try:
            inv = np.linalg.inv(self.matrix)
        except np.linalg.LinAlgError as exc:
            raise SingularSystem(f"Warp is not invertible: {exc}") from exc
        if not np.all(np.isfinite(inv)):
            raise SingularSystem("Warp inverse is not finite")
        return WarpModel(inv)

    def renormalized(self) -> "WarpModel":
        """Scale so m[2,2] == 1 and snap the bottom row back to [0, 0, 1]."""
        m = np.array(self.matrix)
        if m[2, 2] == 0.0:
            raise SingularSystem("Warp has a zero homogeneous scale")
        m /= m[2, 2]
        m[2, :] = (0.0, 0.0, 1.0)
        return WarpModel(m)

    def apply(self, xs, ys) -> Tuple[np.ndarray, np.ndarray]:
        """Map points through the warp, dividing by the homogeneous coordinate."""
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        m = self.matrix
        u = m[0, 0] * xs + m[0, 1] * ys + m[0, 2]
        v = m[1, 0] * xs + m[1, 1] * ys + m[1, 2]
        w = m[2, 0] * xs + m[2, 1] * ys + m[2, 2]
        return u / w, v / w

    def as_affine(self) -> np.ndarray:
        """Top two rows, the 2x3 form cv2.warpAffine expects."""
        return np.array(self.matrix[:2, :])

    def is_identity(self, atol: float = 1e-12) -> bool:
        return bool(np.allclose(self.matrix, np.eye(3), atol=atol))
