"""Marker detection and pose estimation entry point.

``MarkerDetector.detect_markers`` takes one frame, a 3x3 camera matrix and the
physical marker side length and returns the markers visible in that frame.
Only malformed input raises (``InvalidInput``); anything that goes wrong
while decoding or solving a candidate just drops that candidate.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import cv2
import numpy as np

from .bridge_types import DetectedMarker
from .config import DetectorConfig
from .errors import InvalidInput
from .strategies.detect_aruco import ArucoDetect
from .strategies.localize_pnp import PnPLocalize
from .strategies.preprocess import Downscale, KeepResolution, to_detector_image
from .transforms import rvec_tvec_to_matrix

LOGGER = logging.getLogger(__name__)


def _as_intrinsics(intrinsics) -> np.ndarray:
    if intrinsics is None:
        raise InvalidInput("intrinsics is None")
    try:
        K = np.array(intrinsics, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("intrinsics must be a numeric 3x3 matrix") from exc
    if K.shape != (3, 3):
        raise InvalidInput(f"intrinsics must be 3x3, got shape {K.shape}")
    if not np.all(np.isfinite(K)):
        raise InvalidInput("intrinsics contain non-finite values")
    return K


class MarkerDetector:
    """Detects ArUco-style markers and solves their camera <- marker pose.

    The instance only holds the prepared OpenCV detector; no frame data
    survives a call. Calls on one instance are serialized.
    """

    def __init__(self, config: Optional[DetectorConfig] = None, dist_coeffs=None):
        self.config = config or DetectorConfig()
        self.dist = None if dist_coeffs is None else np.asarray(dist_coeffs, dtype=np.float64)
        self._detect = ArucoDetect(
            self.config.aruco_dict,
            allowed_ids=self.config.allowed_ids,
            refine_corners=self.config.refine_corners,
        )
        if self.config.target_width and self.config.target_height:
            self._resize = Downscale(self.config.target_width, self.config.target_height)
        else:
            self._resize = KeepResolution()
        self._lock = threading.Lock()

    def detect_markers(
        self,
        frame,
        intrinsics,
        marker_size_m: float,
        marker_sizes_m: Optional[dict[int, float]] = None,
    ) -> list[DetectedMarker]:
        image = to_detector_image(frame)
        K = _as_intrinsics(intrinsics)

        try:
            size = float(marker_size_m)
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"marker size must be a number, got {marker_size_m!r}") from exc
        if not np.isfinite(size) or (size <= 0 and not marker_sizes_m):
            LOGGER.warning("marker size %r is not positive, returning no markers", marker_size_m)
            return []
        if K[0, 0] <= 0 or K[1, 1] <= 0:
            LOGGER.warning("degenerate intrinsics (fx=%s, fy=%s), returning no markers", K[0, 0], K[1, 1])
            return []

        with self._lock:
            small, K_small, (sx, sy) = self._resize.apply(image, K)
            try:
                dets = self._detect.detect(small)
            except cv2.error as e:
                LOGGER.warning("marker detection failed: %s", e)
                return []

            if not dets:
                return []

            loc = PnPLocalize(K_small, self.dist, size, method=self.config.pnp_method)
            if marker_sizes_m:
                poses = loc.estimate_with_lengths(dets, marker_sizes_m, default_length=size)
            else:
                poses = loc.estimate(dets)

        markers: list[DetectedMarker] = []
        for det, pose in zip(dets, poses):
            if pose is None:
                continue
            corners = np.asarray(det.corners, dtype=np.float64).reshape(4, 2)
            if (sx, sy) != (1.0, 1.0):
                corners = (corners + 0.5) / np.array([sx, sy]) - 0.5
            markers.append(
                DetectedMarker(det.marker_id, rvec_tvec_to_matrix(pose.rvec, pose.tvec), corners)
            )
        LOGGER.debug("detected %d marker(s) from %d candidate(s)", len(markers), len(dets))
        return markers


def detect_markers(
    frame,
    intrinsics,
    marker_size_m: float,
    config: Optional[DetectorConfig] = None,
    marker_sizes_m: Optional[dict[int, float]] = None,
    dist_coeffs=None,
) -> list[DetectedMarker]:
    """One-shot detection with a throwaway detector."""
    detector = MarkerDetector(config, dist_coeffs=dist_coeffs)
    return detector.detect_markers(frame, intrinsics, marker_size_m, marker_sizes_m)
