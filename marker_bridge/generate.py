"""Generate printable marker images for a dictionary.

Each PNG holds one marker with a white quiet zone around it. At the
requested DPI the black square measures ``--size-m`` meters, which is the
value to pass as the marker size when detecting.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import cv2
import numpy as np

from marker_bridge.strategies.detect_aruco import get_dict, render_marker

INCH_M = 0.0254


def marker_pixels(size_m: float, dpi: int) -> int:
    return max(1, int(round(size_m / INCH_M * dpi)))


def make_printable(dictionary, marker_id: int, size_px: int, margin_px: int) -> np.ndarray:
    marker = render_marker(dictionary, marker_id, size_px)
    return cv2.copyMakeBorder(
        marker, margin_px, margin_px, margin_px, margin_px, cv2.BORDER_CONSTANT, value=255
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate printable ArUco markers")
    parser.add_argument("--output-dir", default="markers", help="Output directory (default: markers)")
    parser.add_argument("--marker-ids", type=int, nargs="+", required=True,
                        help="Marker IDs to generate (e.g., 2 3 4 5 6)")
    parser.add_argument("--dict", default="aruco_mip_36h12",
                        help="Marker dictionary (default: aruco_mip_36h12)")
    parser.add_argument("--size-m", type=float, default=0.03,
                        help="Printed side length of the black square in meters (default: 0.03)")
    parser.add_argument("--dpi", type=int, default=300)
    args = parser.parse_args(argv)

    if args.size_m <= 0 or args.dpi <= 0:
        print("Error: --size-m and --dpi must be positive", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    dictionary = get_dict(args.dict)
    size_px = marker_pixels(args.size_m, args.dpi)
    margin_px = max(1, size_px // 4)

    for marker_id in args.marker_ids:
        image = make_printable(dictionary, marker_id, size_px, margin_px)
        path = output_dir / f"id_{marker_id}.png"
        cv2.imwrite(str(path), image)
        print(f"wrote {path} ({size_px}px marker at {args.dpi} dpi)")

    return 0


if __name__ == "__main__":
    sys.exit(main())
