import logging
from typing import Iterable, Optional

import cv2
import numpy as np

from ..bridge_types import Detection

LOGGER = logging.getLogger(__name__)

# name -> cv2.aruco attribute; resolved lazily since older OpenCV builds lack some
_DICT_ATTRS = {
    "4x4_50": "DICT_4X4_50",
    "4x4_100": "DICT_4X4_100",
    "4x4_250": "DICT_4X4_250",
    "4x4_1000": "DICT_4X4_1000",
    "5x5_50": "DICT_5X5_50",
    "5x5_100": "DICT_5X5_100",
    "5x5_250": "DICT_5X5_250",
    "5x5_1000": "DICT_5X5_1000",
    "6x6_50": "DICT_6X6_50",
    "6x6_100": "DICT_6X6_100",
    "6x6_250": "DICT_6X6_250",
    "6x6_1000": "DICT_6X6_1000",
    "7x7_50": "DICT_7X7_50",
    "7x7_100": "DICT_7X7_100",
    "7x7_250": "DICT_7X7_250",
    "7x7_1000": "DICT_7X7_1000",
    "aruco_original": "DICT_ARUCO_ORIGINAL",
    "apriltag_16h5": "DICT_APRILTAG_16h5",
    "apriltag_25h9": "DICT_APRILTAG_25h9",
    "apriltag_36h10": "DICT_APRILTAG_36h10",
    "apriltag_36h11": "DICT_APRILTAG_36h11",
    "aruco_mip_36h12": "DICT_ARUCO_MIP_36h12",
}

DEFAULT_DICT = "4x4_50"


def normalize_dict_name(name: str) -> str:
    key = (name or "").strip()
    if key.upper().startswith("DICT_"):
        key = key[5:]
    return key.lower()


def get_dict(name: str):
    """
    Resolve a predefined ArUco/AprilTag dictionary by name.
    Accepts "4x4_50", "DICT_4X4_50", "aruco_mip_36h12", ...
    Falls back to 4x4_50 if the name is unknown or missing from this OpenCV build.
    """
    key = normalize_dict_name(name)
    code = getattr(cv2.aruco, _DICT_ATTRS.get(key, ""), None)
    if code is None:
        LOGGER.warning("unknown ArUco dictionary %r, using %s", name, DEFAULT_DICT)
        code = getattr(cv2.aruco, _DICT_ATTRS[DEFAULT_DICT])

    if hasattr(cv2.aruco, "getPredefinedDictionary"):           # OpenCV >= 4.7
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)                        # Older OpenCV


def _make_params(refine_corners: bool = False):
    """Create detector parameters across OpenCV versions."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        params = cv2.aruco.DetectorParameters_create()
    else:
        params = cv2.aruco.DetectorParameters()
    if refine_corners:
        params.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
    return params


def render_marker(dictionary, marker_id: int, size_px: int = 200, border_bits: int = 1) -> np.ndarray:
    """Draw a printable marker image (grayscale, black border included)."""
    if hasattr(cv2.aruco, "generateImageMarker"):
        return cv2.aruco.generateImageMarker(dictionary, marker_id, size_px, borderBits=border_bits)
    return cv2.aruco.drawMarker(dictionary, marker_id, size_px, borderBits=border_bits)


def _area(corners) -> float:
    pts = np.asarray(corners, dtype=np.float32).reshape(4, 2)
    return abs(float(cv2.contourArea(pts)))


class ArucoDetect:
    """
    Strategy: find marker candidates and decode their IDs.
    Returns list[Detection] with at most one entry per ID, sorted by ID.
    Pose is solved later by the Localize strategy.
    """
    def __init__(
        self,
        dict_name: str = "aruco_mip_36h12",
        allowed_ids: Optional[Iterable[int]] = None,
        refine_corners: bool = False,
    ):
        self.dictionary = get_dict(dict_name)
        self.params = _make_params(refine_corners)
        self.allowed_ids = None if allowed_ids is None else {int(i) for i in allowed_ids}
        self._detector = None
        # Prefer the newer ArucoDetector API if present
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def detect(self, image) -> list[Detection]:
        if self._detector is not None:
            corners, ids, _rej = self._detector.detectMarkers(image)
        else:
            corners, ids, _rej = cv2.aruco.detectMarkers(
                image, self.dictionary, parameters=self.params
            )

        best: dict[int, Detection] = {}
        if ids is not None and len(ids) > 0:
            for i, mid in enumerate(np.asarray(ids).flatten()):
                mid = int(mid)
                if self.allowed_ids is not None and mid not in self.allowed_ids:
                    continue
                det = Detection(mid, np.asarray(corners[i], dtype=np.float32).reshape(4, 2))
                prev = best.get(mid)
                if prev is not None:
                    LOGGER.debug("marker %d seen twice in one frame, keeping the larger", mid)
                    if _area(prev.corners) >= _area(det.corners):
                        continue
                best[mid] = det
        return [best[mid] for mid in sorted(best)]
