import argparse

import cv2

from bbox import BoundingBox
from video_io import get_fps, open_video, seek_seconds


def pick_bbox(video_path: str, at_seconds: float = 0.0) -> BoundingBox:
    """Let the user drag a box on one frame; returns it as (top, left, bottom, right)."""
    cap = open_video(video_path)
    seek_seconds(cap, at_seconds, get_fps(cap))

    ok, frame = cap.read()
    cap.release()

    if not ok or frame is None:
        raise RuntimeError("Could not read the target frame. Try a different --at value.")

    x, y, w, h = cv2.selectROI("Select ROI", frame, fromCenter=False, showCrosshair=True)
    cv2.destroyAllWindows()
    return BoundingBox.from_xywh(x, y, w, h)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Pick the initial tracking box on a video frame")
    parser.add_argument("video", help="Video file path")
    parser.add_argument("--at", type=float, default=0.0, help="Time of the frame to pick on (seconds)")
    args = parser.parse_args()

    box = pick_bbox(args.video, args.at)
    print("BBOX (top, left, bottom, right):", box.as_tuple())
