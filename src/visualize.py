import cv2
import numpy as np

from bbox import BoundingBox

def draw_bbox(frame: np.ndarray, bbox: BoundingBox, label: str = "", color: tuple[int, int, int] = (0, 0, 255), thickness: int = 2) -> None:
    x, y, w, h = bbox.to_int_xywh()
    # ROI is pixel-inclusive, cv2.rectangle corners are too
    cv2.rectangle(frame, (x, y), (x+w-1, y+h-1), color, thickness)
    if label:
        cv2.putText(frame, label, (x, y-8), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)

def draw_status(frame: np.ndarray, text: str, color: tuple[int, int, int] = (255, 255, 255)) -> None:
    cv2.putText(frame, text, (10, 24), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)

def to_bgr(frame: np.ndarray) -> np.ndarray:
    # writer always wants 3-channel BGR
    if frame.ndim == 2 or frame.shape[2] == 1:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    return frame
