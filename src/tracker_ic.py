# src/tracker_ic.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Union

import cv2
import numpy as np

from alignment import ICParams, RefineStatus, WeightFn, refine
from bbox import BoundingBox
from errors import ImageSizeMismatch, TrackerNotInitialized
from sampler import as_float_image
from warp import WarpModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackResult:
    bbox: BoundingBox
    warp: WarpModel
    status: RefineStatus
    iterations: int
    errors: List[float] = field(default_factory=list)
    delta_norms: List[float] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status is RefineStatus.CONVERGED


def _to_gray(image: np.ndarray) -> np.ndarray:
    """Copy a frame into a single-channel buffer the tracker owns."""
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] in (3, 4):
        # cvtColor has no float64 path
        if image.dtype == np.float64:
            image = image.astype(np.float32)
        code = cv2.COLOR_BGR2GRAY if image.shape[2] == 3 else cv2.COLOR_BGRA2GRAY
        gray = cv2.cvtColor(image, code)
    else:
        gray = np.array(image, copy=True)
    as_float_image(gray)  # rejects unsupported dtypes/shapes
    gray.setflags(write=False)
    return gray


def _warp_bbox(warp: WarpModel, bbox: BoundingBox) -> BoundingBox:
    """Map the (left, top) and (right, bottom) corners through the warp."""
    xs, ys = warp.apply([bbox.left, bbox.right], [bbox.top, bbox.bottom])
    return BoundingBox(top=ys[0], left=xs[0], bottom=ys[1], right=xs[1])


class ImageAlignmentTracker:
    """
    Baker-Matthews inverse compositional tracker for a single box.

    Holds the box, the template image (previous frame) and the current
    image (newest frame). Each track() call demotes current -> template,
    aligns the template patch into the new frame and moves the box.
    """

    def __init__(
        self,
        image: Optional[np.ndarray] = None,
        bbox: Optional[BoundingBox] = None,
        params: Optional[ICParams] = None,
        weight_fn: Optional[WeightFn] = None,
    ) -> None:
        self.params = params or ICParams()
        self.weight_fn = weight_fn

        self._bbox: Optional[BoundingBox] = None
        self._template: Optional[np.ndarray] = None
        self._current: Optional[np.ndarray] = None
        self._last_result: Optional[TrackResult] = None

        self.initialize(image, bbox)

    def initialize(self, image: Optional[np.ndarray] = None, bbox: Optional[BoundingBox] = None) -> None:
        if image is not None:
            self.set_current_image(image)
        if bbox is not None:
            self.set_bbox(bbox)

    # --- bbox ---

    @property
    def bbox(self) -> Optional[BoundingBox]:
        return self._bbox

    def get_bbox(self) -> Optional[BoundingBox]:
        return self._bbox

    def set_bbox(
        self,
        top: Union[BoundingBox, Sequence[float], float],
        left: Optional[float] = None,
        bottom: Optional[float] = None,
        right: Optional[float] = None,
    ) -> None:
        """
        set_bbox(box), set_bbox((top, left, bottom, right)) or
        set_bbox(top, left, bottom, right).
        """
        rest = (left, bottom, right)
        if all(v is None for v in rest):
            if isinstance(top, BoundingBox):
                self._bbox = top
                return
            if isinstance(top, (tuple, list, np.ndarray)) and len(top) == 4:
                self._bbox = BoundingBox(*top)
                return
        elif all(v is not None for v in rest) and isinstance(top, (int, float, np.number)):
            self._bbox = BoundingBox(top, left, bottom, right)
            return
        raise TypeError(
            "set_bbox takes a BoundingBox, a (top, left, bottom, right) sequence "
            "or four coordinates"
        )

    # --- images ---

    def get_template_image(self) -> Optional[np.ndarray]:
        return self._template

    def set_template_image(self, image: np.ndarray) -> None:
        self._template = _to_gray(image)

    def get_current_image(self) -> Optional[np.ndarray]:
        return self._current

    def set_current_image(self, image: np.ndarray) -> None:
        self._current = _to_gray(image)

    @property
    def last_result(self) -> Optional[TrackResult]:
        return self._last_result

    # --- tracking ---

    def track(
        self,
        new_image: np.ndarray,
        threshold: Optional[float] = None,
        max_iters: Optional[int] = None,
    ) -> BoundingBox:
        return self.track_with_diagnostics(new_image, threshold, max_iters).bbox

    def track_with_diagnostics(
        self,
        new_image: np.ndarray,
        threshold: Optional[float] = None,
        max_iters: Optional[int] = None,
    ) -> TrackResult:
        """
        Align the box from the stored frame into `new_image`.
        Nothing is committed unless the whole call succeeds.
        """
        if self._current is None:
            raise TrackerNotInitialized("No frame stored; call set_current_image() or initialize() first")
        if self._bbox is None:
            raise TrackerNotInitialized("No bounding box set; call set_bbox() first")

        params = self.params
        if threshold is not None:
            params = replace(params, threshold=float(threshold))
        if max_iters is not None:
            params = replace(params, max_iters=int(max_iters))

        template = self._current
        frame = _to_gray(new_image)
        bbox = self._bbox

        if frame.shape != template.shape:
            raise ImageSizeMismatch(
                f"New frame is {frame.shape}, stored frame is {template.shape}"
            )
        if not bbox.contains_in(template.shape):
            raise ImageSizeMismatch(
                f"Box {bbox.as_tuple()} is outside the {template.shape} frame"
            )

        outcome = refine(template, frame, bbox, params, self.weight_fn)

        new_bbox = _warp_bbox(outcome.warp, bbox)
        if not new_bbox.contains_in(frame.shape):
            raise ImageSizeMismatch(
                f"Tracked box {new_bbox.as_tuple()} left the {frame.shape} frame"
            )

        result = TrackResult(
            bbox=new_bbox,
            warp=outcome.warp,
            status=outcome.status,
            iterations=outcome.iterations,
            errors=outcome.errors,
            delta_norms=outcome.delta_norms,
        )

        # commit
        self._template = template
        self._current = frame
        self._bbox = new_bbox
        self._last_result = result

        logger.debug(
            f"track: {result.status.value} in {result.iterations} iters, "
            f"box {bbox.as_tuple()} -> {new_bbox.as_tuple()}"
        )
        return result
