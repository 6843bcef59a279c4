import argparse
import json
import logging
import sys

import cv2

from marker_bridge.config import DetectorConfig
from marker_bridge.detector import MarkerDetector
from marker_bridge.errors import InvalidInput
from marker_bridge.services.calib import intrinsics_from_params, load_calib


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Detect ArUco markers and their poses in image files")
    ap.add_argument("images", nargs="+", help="Image files to process")

    # Intrinsics: either a calibration file or explicit parameters
    ap.add_argument("--calib", help="OpenCV YAML with camera_matrix / dist_coeffs")
    ap.add_argument("--fx", type=float)
    ap.add_argument("--fy", type=float)
    ap.add_argument("--cx", type=float, help="Defaults to the image center")
    ap.add_argument("--cy", type=float, help="Defaults to the image center")

    # Detection
    ap.add_argument("--marker-size-m", type=float, default=0.03)
    ap.add_argument("--dict", default="aruco_mip_36h12")
    ap.add_argument("--ids", type=int, nargs="+", default=None,
                    help="Only report these marker IDs")
    ap.add_argument("--refine", action="store_true", help="Sub-pixel corner refinement")
    ap.add_argument("--target-width", type=int)
    ap.add_argument("--target-height", type=int)
    ap.add_argument("--pnp-method", choices=["ippe_square", "iterative"], default="ippe_square")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    logger = logging.getLogger("marker_bridge")
    logger.setLevel(logging.DEBUG if args.verbose else logging.WARNING)
    if not logger.handlers:
        logger.addHandler(logging.StreamHandler())

    dist = None
    K_file = None
    if args.calib:
        K_file, dist, _ = load_calib(args.calib)
    elif args.fx is None:
        ap.error("either --calib or --fx/--fy is required")

    cfg = DetectorConfig(
        aruco_dict=args.dict,
        allowed_ids=args.ids,
        refine_corners=args.refine,
        target_width=args.target_width,
        target_height=args.target_height,
        pnp_method=args.pnp_method,
    )
    detector = MarkerDetector(cfg, dist_coeffs=dist)

    failed = 0
    for path in args.images:
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None:
            print(f"cannot read image: {path}", file=sys.stderr)
            failed += 1
            continue

        if K_file is not None:
            K = K_file
        else:
            h, w = image.shape[:2]
            fy = args.fy if args.fy is not None else args.fx
            cx = args.cx if args.cx is not None else (w - 1) / 2.0
            cy = args.cy if args.cy is not None else (h - 1) / 2.0
            K = intrinsics_from_params(args.fx, fy, cx, cy)

        try:
            markers = detector.detect_markers(image, K, args.marker_size_m)
        except InvalidInput as e:
            print(f"{path}: {e}", file=sys.stderr)
            failed += 1
            continue

        print(json.dumps({"image": path, "markers": [m.as_dict() for m in markers]}))

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
