import cv2

def open_video(path: str) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(path)
    if not cap.isOpened():
        raise RuntimeError(f"Could not open video: {path}")
    return cap

def get_fps(cap: cv2.VideoCapture, fps_fallback: float = 30.0) -> float:
    fps = cap.get(cv2.CAP_PROP_FPS)
    return fps if fps and fps > 1e-3 else fps_fallback

def get_frame_size(cap: cv2.VideoCapture) -> tuple[int, int]:
    w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    return w, h

def seek_seconds(cap: cv2.VideoCapture, seconds: float, fps: float) -> int:
    frame_idx = int(seconds * fps)
    if frame_idx > 0:
        cap.set(cv2.CAP_PROP_POS_FRAMES, frame_idx)
    return max(frame_idx, 0)

def _fourcc_for(path: str) -> int:
    # MP4 is easiest to share; AVI gets MJPG, which every OpenCV build can write
    if path.lower().endswith(".avi"):
        return cv2.VideoWriter_fourcc(*"MJPG")
    return cv2.VideoWriter_fourcc(*"mp4v")

def make_writer(path: str, fps: float, frame_size: tuple[int, int]) -> cv2.VideoWriter:
    writer = cv2.VideoWriter(path, _fourcc_for(path), fps, frame_size)
    if not writer.isOpened():
        raise RuntimeError(f"Could not open video writer: {path}")
    return writer
