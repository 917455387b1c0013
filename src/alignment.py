# src/alignment.py
"""
Baker-Matthews inverse compositional (IC) alignment for an affine warp.

The Jacobian (steepest-descent images) and Hessian depend only on the
template and the box, so they are built once per call and reused by
every Gauss-Newton iteration; only the warp estimate changes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from bbox import BoundingBox, bbox_grid
from errors import SingularSystem
from sampler import as_float_image, sample_points
from warp import WarpModel

logger = logging.getLogger(__name__)

# error vector (N,) -> per-sample weights (N,), the diagonal of W
WeightFn = Callable[[np.ndarray], np.ndarray]

N_PARAMS = 6


class RefineStatus(Enum):
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"  # hit max_iters, best warp still returned


@dataclass
class ICParams:
    threshold: float = 0.01875     # stop once ||dp|| drops below this
    max_iters: int = 100
    # Hessians worse conditioned than this (after diagonal scaling) are singular
    max_condition: float = 1e12
    # snap the accumulated warp's bottom row back to [0, 0, 1] every iteration
    renormalize: bool = True


@dataclass(frozen=True)
class RefineOutcome:
    warp: WarpModel
    status: RefineStatus
    iterations: int
    errors: List[float] = field(default_factory=list)
    delta_norms: List[float] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is RefineStatus.CONVERGED


def image_gradients(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    x/y first derivatives over the full image, same size as the input.
    Sobel 3x3 scaled by 1/8 so the result is intensity per pixel.
    """
    img = as_float_image(image)
    gx = cv2.Sobel(img, cv2.CV_64F, 1, 0, ksize=3, scale=1.0 / 8.0,
                   borderType=cv2.BORDER_REFLECT_101)
    gy = cv2.Sobel(img, cv2.CV_64F, 0, 1, ksize=3, scale=1.0 / 8.0,
                   borderType=cv2.BORDER_REFLECT_101)
    return gx, gy


def steepest_descent(gx: np.ndarray, gy: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """
    Rows are delI · dW/dp with dW/dp = [[x, 0, y, 0, 1, 0], [0, x, 0, y, 0, 1]],
    i.e. [Ix*x, Iy*x, Ix*y, Iy*y, Ix, Iy].
    """
    return np.column_stack((gx * xs, gy * xs, gx * ys, gy * ys, gx, gy))


def build_jacobian(template: np.ndarray, bbox: BoundingBox) -> Tuple[np.ndarray, np.ndarray]:
    """
    Jacobian (floor(w)*floor(h), 6) over the box grid of the template,
    and the Gauss-Newton Hessian J^T J (6, 6).
    """
    gx_img, gy_img = image_gradients(template)
    xs, ys = bbox_grid(bbox)

    ix = sample_points(gx_img, xs, ys)
    iy = sample_points(gy_img, xs, ys)

    jac = steepest_descent(ix, iy, xs, ys)
    hessian = jac.T @ jac
    return jac, hessian


def weighted_hessian(jac: np.ndarray, weights: np.ndarray) -> np.ndarray:
    return jac.T @ (jac * weights[:, None])


def factor_hessian(hessian: np.ndarray, max_condition: float = 1e12) -> np.ndarray:
    """Lower Cholesky factor of the Hessian, or SingularSystem."""
    if hessian.shape != (N_PARAMS, N_PARAMS):
        raise SingularSystem(f"Hessian must be {N_PARAMS}x{N_PARAMS}, got {hessian.shape}")
    if not np.all(np.isfinite(hessian)):
        raise SingularSystem("Hessian has non-finite entries")

    try:
        chol = np.linalg.cholesky(hessian)
    except np.linalg.LinAlgError as exc:
        raise SingularSystem(f"Hessian is not positive definite: {exc}") from exc

    # condition of the diagonally scaled system; raw pixel coordinates in
    # the Jacobian would otherwise dominate the number
    d = np.sqrt(np.diag(hessian))
    cond = np.linalg.cond(hessian / np.outer(d, d))
    if not np.isfinite(cond) or cond > max_condition:
        raise SingularSystem(f"Hessian is ill-conditioned (cond={cond:.3g})")
    return chol


def cho_solve(chol: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve (L L^T) x = b given the lower factor L."""
    y = np.linalg.solve(chol, b)
    return np.linalg.solve(chol.T, y)


def solve_delta(hessian: np.ndarray, b: np.ndarray, max_condition: float = 1e12) -> np.ndarray:
    return cho_solve(factor_hessian(hessian, max_condition), b)


def _weights_for(weight_fn: WeightFn, error: np.ndarray) -> np.ndarray:
    w = np.asarray(weight_fn(error), dtype=np.float64).ravel()
    if w.shape != error.shape:
        raise ValueError(f"weight_fn returned {w.shape[0]} weights for {error.shape[0]} samples")
    if np.any(w < 0.0) or not np.all(np.isfinite(w)):
        raise ValueError("weight_fn must return finite, non-negative weights")
    return w


def refine(
    template: np.ndarray,
    current: np.ndarray,
    bbox: BoundingBox,
    params: Optional[ICParams] = None,
    weight_fn: Optional[WeightFn] = None,
) -> RefineOutcome:
    """
    Gauss-Newton loop. Each iteration samples `current` at the
    warp-mapped template grid (inverse mapping), forms the residual
    against the template patch, solves H dp = J^T e and composes
    W <- W · W(dp)^-1.
    """
    params = params or ICParams()
    if params.max_iters < 1:
        raise ValueError(f"max_iters must be >= 1, got {params.max_iters}")

    tmpl = as_float_image(template)
    cur = as_float_image(current)

    xs, ys = bbox_grid(bbox)
    template_patch = sample_points(tmpl, xs, ys)
    jac, hessian = build_jacobian(tmpl, bbox)

    # identity weights: factor once, reuse every iteration
    chol = None
    if weight_fn is None:
        chol = factor_hessian(hessian, params.max_condition)

    warp = WarpModel.identity()
    errors: List[float] = []
    delta_norms: List[float] = []
    status = RefineStatus.EXHAUSTED
    iteration = 0

    for iteration in range(1, params.max_iters + 1):
        wx, wy = warp.apply(xs, ys)
        warped_patch = sample_points(cur, wx, wy)
        error = warped_patch - template_patch
        errors.append(float(np.linalg.norm(error)))

        if weight_fn is None:
            b = jac.T @ error
            dp = cho_solve(chol, b)
        else:
            w = _weights_for(weight_fn, error)
            b = jac.T @ (w * error)
            dp = solve_delta(weighted_hessian(jac, w), b, params.max_condition)

        warp = warp.compose(WarpModel.from_params(dp).inverse())
        if params.renormalize:
            warp = warp.renormalized()

        dp_norm = float(np.linalg.norm(dp))
        delta_norms.append(dp_norm)
        logger.debug(f"iter {iteration}: |e|={errors[-1]:.4f} |dp|={dp_norm:.6f}")

        if dp_norm < params.threshold:
            status = RefineStatus.CONVERGED
            break

    if status is RefineStatus.EXHAUSTED:
        logger.debug(f"No convergence after {iteration} iterations (|dp|={delta_norms[-1]:.6f})")

    return RefineOutcome(
        warp=warp,
        status=status,
        iterations=iteration,
        errors=errors,
        delta_norms=delta_norms,
    )
