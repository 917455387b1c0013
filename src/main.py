# src/main.py
from __future__ import annotations

import argparse
import logging
from typing import Optional

from alignment import ICParams
from bbox import BoundingBox
from config import Config
from errors import AlignmentError
from metrics import TrackMetrics, update_metrics
from tracker_ic import ImageAlignmentTracker, TrackResult
from video_io import open_video, get_fps, get_frame_size, make_writer, seek_seconds
from visualize import draw_bbox, draw_status, to_bgr

logger = logging.getLogger(__name__)


def run(cfg: Config) -> TrackMetrics:
    """Track cfg.bbox through the video and write an annotated copy."""
    cap = open_video(cfg.video_path)
    fps = get_fps(cap, cfg.fps_assumed)
    frame_size = get_frame_size(cap)  # (w, h)

    start_frame = seek_seconds(cap, cfg.start_seconds, fps)
    stop_frame: Optional[int] = None
    if cfg.stop_seconds is not None:
        stop_frame = int(cfg.stop_seconds * fps)
    logger.info(f"Starting at frame {start_frame} ({cfg.start_seconds:.2f}s), fps={fps:.2f}")

    writer = make_writer(cfg.output_path, fps, frame_size)

    params = ICParams(threshold=cfg.threshold, max_iters=cfg.max_iters)
    tracker: Optional[ImageAlignmentTracker] = None
    metrics = TrackMetrics()
    frame_idx = start_frame

    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break
            if stop_frame is not None and frame_idx >= stop_frame:
                break
            frame_idx += 1

            frame = to_bgr(frame)

            # first frame only primes the tracker
            if tracker is None:
                tracker = ImageAlignmentTracker(frame, BoundingBox(*cfg.bbox), params)
                draw_bbox(frame, tracker.bbox, label="INIT")
                writer.write(frame)
                continue

            prev_box = tracker.bbox
            result: Optional[TrackResult] = None
            try:
                result = tracker.track_with_diagnostics(frame)
            except AlignmentError as exc:
                # keep the last good box and restart from this frame
                logger.warning(f"Frame {frame_idx}: tracking failed ({type(exc).__name__}: {exc})")
                tracker.set_current_image(frame)

            update_metrics(metrics, prev_box, result)

            if result is not None:
                color = (0, 255, 0) if result.converged else (0, 255, 255)
                draw_bbox(frame, result.bbox, label=f"IC {result.iterations} it", color=color)
            else:
                draw_bbox(frame, tracker.bbox, label="LOST", color=(0, 0, 255))
            draw_status(frame, f"frame {frame_idx}")

            writer.write(frame)
    finally:
        cap.release()
        writer.release()

    logger.info(f"Frames: {metrics.frames}")
    logger.info(f"Tracked frames: {metrics.tracked_frames}")
    logger.info(f"Failed frames: {metrics.failed_frames}")
    logger.info(f"Convergence rate: {metrics.convergence_rate:.3f}")
    logger.info(f"Mean iterations: {metrics.mean_iterations:.2f}")
    logger.info(f"Mean box center step (pixels): {metrics.mean_center_step:.3f}")
    return metrics


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Track a box through a video with inverse compositional image alignment"
    )
    parser.add_argument("video", help="Input video path")
    parser.add_argument("--output", "-o", default="outputs/tracked.mp4", help="Annotated output video")
    parser.add_argument(
        "--bbox",
        type=float,
        nargs=4,
        required=True,
        metavar=("TOP", "LEFT", "BOTTOM", "RIGHT"),
        help="Initial box in the first processed frame (see pick_roi.py)",
    )
    parser.add_argument("--threshold", type=float, default=0.01875, help="Convergence threshold on |dp|")
    parser.add_argument("--max-iters", type=_positive_int, default=100, help="Gauss-Newton iteration limit per frame")
    parser.add_argument("--start", type=float, default=0.0, help="Start time (seconds)")
    parser.add_argument("--stop", type=float, default=None, help="Stop time (seconds)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    cfg = Config(
        video_path=args.video,
        output_path=args.output,
        bbox=tuple(args.bbox),
        threshold=args.threshold,
        max_iters=args.max_iters,
        start_seconds=args.start,
        stop_seconds=args.stop,
    )
    try:
        run(cfg)
    except (RuntimeError, AlignmentError) as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
