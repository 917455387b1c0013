import cv2
import numpy as np
import pytest

import tracker_ic
from alignment import ICParams, RefineOutcome, RefineStatus
from bbox import BoundingBox
from conftest import make_texture, shift_image
from errors import ImageSizeMismatch, InvalidBoundingBox, SingularSystem, TrackerNotInitialized
from tracker_ic import ImageAlignmentTracker
from warp import WarpModel


BOX = BoundingBox(top=50, left=60, bottom=110, right=140)


def test_set_bbox_forms():
    tracker = ImageAlignmentTracker()
    tracker.set_bbox(1, 2, 3, 4)
    assert tracker.get_bbox() == BoundingBox(1, 2, 3, 4)
    tracker.set_bbox(BOX)
    assert tracker.bbox is BOX


def test_set_bbox_accepts_a_sequence():
    tracker = ImageAlignmentTracker()
    tracker.set_bbox((1, 2, 3, 4))
    assert tracker.bbox == BoundingBox(1, 2, 3, 4)
    tracker.set_bbox([5.0, 6.0, 7.0, 8.0])
    assert tracker.bbox == BoundingBox(5, 6, 7, 8)


@pytest.mark.parametrize("args", [((1, 2, 3),), (1, 2), (BOX, 1, 2, 3), ("1234",)])
def test_set_bbox_rejects_malformed_calls(args):
    tracker = ImageAlignmentTracker(bbox=BOX)
    with pytest.raises(TypeError):
        tracker.set_bbox(*args)
    assert tracker.bbox == BOX


def test_set_bbox_rejects_degenerate_box():
    tracker = ImageAlignmentTracker(bbox=BOX)
    with pytest.raises(InvalidBoundingBox):
        tracker.set_bbox(10, 10, 10, 20)
    assert tracker.bbox == BOX


def test_images_are_copied_and_read_only(texture):
    frame = texture.copy()
    tracker = ImageAlignmentTracker(frame, BOX)
    frame[:] = 0.0
    stored = tracker.get_current_image()
    np.testing.assert_array_equal(stored, texture)
    with pytest.raises(ValueError):
        stored[0, 0] = 1.0


def test_color_frames_are_stored_gray(texture):
    bgr = cv2.cvtColor(texture.astype(np.uint8), cv2.COLOR_GRAY2BGR)
    tracker = ImageAlignmentTracker(bgr, BOX)
    assert tracker.get_current_image().shape == texture.shape


def test_track_needs_image_and_box(texture):
    with pytest.raises(TrackerNotInitialized):
        ImageAlignmentTracker(bbox=BOX).track(texture)
    with pytest.raises(TrackerNotInitialized):
        ImageAlignmentTracker(texture).track(texture)


def test_identity_tracking_keeps_box(texture):
    tracker = ImageAlignmentTracker(texture, BOX)
    box = tracker.track(texture)
    np.testing.assert_allclose(box.as_tuple(), BOX.as_tuple(), atol=1e-6)
    assert tracker.last_result.iterations == 1
    assert tracker.last_result.status is RefineStatus.CONVERGED


@pytest.mark.parametrize("dx, dy", [(2, -1), (-2, 2), (1, 3)])
def test_translation_moves_box(texture, dx, dy):
    tracker = ImageAlignmentTracker(texture, BOX)
    box = tracker.track(shift_image(texture, dx, dy), max_iters=100)
    expected = BOX.translated(dx, dy)
    np.testing.assert_allclose(box.as_tuple(), expected.as_tuple(), atol=0.1)
    assert tracker.bbox == box


def test_images_rotate_on_success(texture):
    moved = shift_image(texture, 1, 1)
    tracker = ImageAlignmentTracker(texture, BOX)
    tracker.track(moved)
    np.testing.assert_array_equal(tracker.get_template_image(), texture)
    np.testing.assert_array_equal(tracker.get_current_image(), moved)


def test_tracks_over_several_frames(texture):
    tracker = ImageAlignmentTracker(texture, BOX)
    for step in range(1, 4):
        tracker.track(shift_image(texture, step, 0))
    np.testing.assert_allclose(tracker.bbox.as_tuple(), BOX.translated(3, 0).as_tuple(), atol=0.15)


def test_small_affine_motion(texture):
    cx, cy = BOX.center
    s = 0.02
    motion = WarpModel.from_params([s, 0.0, 0.0, s, -s * cx + 1.5, -s * cy - 1.0])
    rows, cols = texture.shape
    # dst(W x) = src(x)
    moved = cv2.warpAffine(texture, motion.as_affine(), (cols, rows),
                           flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REFLECT_101)

    tracker = ImageAlignmentTracker(texture, BOX)
    result = tracker.track_with_diagnostics(moved)

    xs, ys = motion.apply([BOX.left, BOX.right], [BOX.top, BOX.bottom])
    expected = (ys[0], xs[0], ys[1], xs[1])
    assert result.converged
    np.testing.assert_allclose(result.bbox.as_tuple(), expected, atol=0.3)


def test_threshold_override(texture):
    tracker = ImageAlignmentTracker(texture, BOX, ICParams(threshold=1e-9, max_iters=3))
    result = tracker.track_with_diagnostics(shift_image(texture, 2, 0))
    assert result.iterations == 3
    assert result.status is RefineStatus.EXHAUSTED

    tracker = ImageAlignmentTracker(texture, BOX, ICParams(threshold=1e-9, max_iters=3))
    result = tracker.track_with_diagnostics(shift_image(texture, 2, 0), threshold=10.0, max_iters=50)
    assert result.converged


def test_size_mismatch_leaves_state_untouched(texture):
    tracker = ImageAlignmentTracker(texture, BOX)
    with pytest.raises(ImageSizeMismatch):
        tracker.track(texture[:100, :100])
    assert tracker.bbox == BOX
    assert tracker.get_template_image() is None
    np.testing.assert_array_equal(tracker.get_current_image(), texture)
    assert tracker.last_result is None


def test_box_outside_frame_is_rejected(texture):
    rows, cols = texture.shape
    tracker = ImageAlignmentTracker(texture, BoundingBox(10, cols - 20, 40, cols + 5))
    with pytest.raises(ImageSizeMismatch):
        tracker.track(texture)


def test_singular_system_leaves_state_untouched():
    flat = np.full((120, 160), 80, dtype=np.uint8)
    tracker = ImageAlignmentTracker(flat, BOX)
    with pytest.raises(SingularSystem):
        tracker.track(flat)
    assert tracker.bbox == BOX
    assert tracker.get_template_image() is None


def test_box_pushed_out_of_frame_leaves_state_untouched():
    tex = make_texture((120, 160))
    box = BoundingBox(30, 100, 70, 158)
    tracker = ImageAlignmentTracker(tex, box)
    with pytest.raises(ImageSizeMismatch):
        tracker.track(shift_image(tex, 3, 0))
    assert tracker.bbox == box
    assert tracker.get_template_image() is None
    np.testing.assert_array_equal(tracker.get_current_image(), tex)
    assert tracker.last_result is None


def test_degenerate_tracked_box_leaves_state_untouched(texture, monkeypatch):
    # a warp that collapses every x onto 0
    collapse = WarpModel.from_params([-1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    monkeypatch.setattr(
        tracker_ic, "refine",
        lambda *args, **kwargs: RefineOutcome(warp=collapse, status=RefineStatus.CONVERGED, iterations=1),
    )
    tracker = ImageAlignmentTracker(texture, BOX)
    with pytest.raises(InvalidBoundingBox):
        tracker.track(shift_image(texture, 1, 0))
    assert tracker.bbox == BOX
    assert tracker.get_template_image() is None
    np.testing.assert_array_equal(tracker.get_current_image(), texture)
    assert tracker.last_result is None
