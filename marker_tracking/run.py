"""marker-track: run one tracking session and print its summary.

Settings come from ``--config`` (JSON or YAML) when given, then any flag
on the command line overrides the matching field.
"""

import argparse
import signal
import sys

from .config import CONVENTIONS, TrackerConfig, load_config
from .worker import TrackingWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Track ArUco markers from a camera and log their poses")
    ap.add_argument("--config", help="JSON/YAML session config")

    cam = ap.add_argument_group("camera")
    cam.add_argument("--camera-name")
    cam.add_argument("--device", help="Index, /dev/videoN, file path or stream URL")
    cam.add_argument("--fps", type=int)
    cam.add_argument("--width", type=int)
    cam.add_argument("--height", type=int)
    cam.add_argument("--calib", help="OpenCV YAML calibration")

    det = ap.add_argument_group("detection")
    det.add_argument("--dict", help="Marker dictionary, e.g. aruco_mip_36h12 or 4x4_50")
    det.add_argument("--marker-size-m", type=float)
    det.add_argument("--ids", nargs="+", type=int, help="Only track these marker IDs")
    det.add_argument("--reference-id", type=int, help="Also log poses relative to this marker")
    det.add_argument("--convention", choices=CONVENTIONS)
    det.add_argument("--smooth", action="store_true", help="Enable temporal pose smoothing")

    sess = ap.add_argument_group("session")
    sess.add_argument("--out", help="Session root directory")
    sess.add_argument("--duration", type=float, help="Seconds; 0 runs until the source ends")
    sess.add_argument("--max-frames", type=int)
    sess.add_argument("--dry-run", action="store_true", help="Synthetic frames, no camera needed")
    sess.add_argument("--save-frames", action=argparse.BooleanOptionalAction, default=None)
    sess.add_argument("--save-annotated", action=argparse.BooleanOptionalAction, default=None)
    return ap


def _apply_args(cfg: TrackerConfig, args: argparse.Namespace) -> TrackerConfig:
    device = args.device
    if device is not None and device.isdigit():
        device = int(device)

    cfg.apply_overrides(
        camera_name=args.camera_name,
        device=device,
        fps=args.fps,
        width=args.width,
        height=args.height,
        calibration_path=args.calib,
        session_root=args.out,
        duration_sec=args.duration,
        max_frames=args.max_frames,
        marker_size_m=args.marker_size_m,
        reference_id=args.reference_id,
        convention=args.convention,
        dry_run=True if args.dry_run else None,
        save_frames=args.save_frames,
        save_annotated=args.save_annotated,
    )
    cfg.detector.apply_overrides(aruco_dict=args.dict, allowed_ids=args.ids)
    if args.smooth:
        cfg.smoothing.enabled = True
    return cfg


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = _apply_args(load_config(args.config) if args.config else TrackerConfig(), args)

    worker = TrackingWorker(cfg)

    def _request_stop(_signum, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _request_stop)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _request_stop)

    print(worker.run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
