# src/errors.py


class AlignmentError(Exception):
    """Base class for every failure raised by the tracker core."""


class InvalidBoundingBox(AlignmentError, ValueError):
    """Box with non-positive width/height or non-finite coordinates."""


class ImageSizeMismatch(AlignmentError):
    """New frame (or the tracked box) does not fit the stored frame geometry."""


class SingularSystem(AlignmentError):
    """Gauss-Newton system cannot be solved (textureless patch, tiny box)."""


class TrackerNotInitialized(AlignmentError):
    """track() called before an image and a box were supplied."""
