import logging
from typing import Optional

import cv2
import numpy as np

from ..bridge_types import Detection, Pose

LOGGER = logging.getLogger(__name__)

_FLAGS = {
    "ippe_square": cv2.SOLVEPNP_IPPE_SQUARE,
    "iterative": cv2.SOLVEPNP_ITERATIVE,
}


def marker_object_points(marker_length_m: float) -> np.ndarray:
    """Corners of a centered square marker in the order ArUco reports them."""
    h = marker_length_m / 2.0
    return np.array([
        [-h,  h, 0.0],   # top-left
        [ h,  h, 0.0],   # top-right
        [ h, -h, 0.0],   # bottom-right
        [-h, -h, 0.0],   # bottom-left
    ], dtype=np.float32)


class PnPLocalize:
    """
    Strategy: solve each marker's camera <- marker pose.
    estimate() returns one entry per detection; None where the solve failed.
    """
    def __init__(self, K, dist, marker_length_m: float, method: str = "ippe_square"):
        self.K = np.asarray(K, dtype=np.float64)
        self.dist = np.zeros((5, 1)) if dist is None else np.asarray(dist, dtype=np.float64)
        self.L = float(marker_length_m)
        self.flags = _FLAGS.get(method, cv2.SOLVEPNP_IPPE_SQUARE)

    def _solve(self, det: Detection, length: float) -> Optional[Pose]:
        obj = marker_object_points(length)
        img = np.asarray(det.corners, dtype=np.float32).reshape(4, 2)
        try:
            ok, rvec, tvec = cv2.solvePnP(obj, img, self.K, self.dist, flags=self.flags)
        except cv2.error as e:
            LOGGER.debug("pose solve raised for marker %d: %s", det.marker_id, e)
            return None
        if not ok or not (np.all(np.isfinite(rvec)) and np.all(np.isfinite(tvec))):
            LOGGER.debug("pose solve failed for marker %d", det.marker_id)
            return None
        return Pose(rvec.reshape(3, 1), tvec.reshape(3, 1))

    def estimate(self, detections: list[Detection]) -> list[Optional[Pose]]:
        if self.L <= 0 or not np.isfinite(self.L) or not detections:
            return [None] * len(detections)
        return [self._solve(det, self.L) for det in detections]

    def estimate_with_lengths(
        self, detections: list[Detection], length_map: dict[int, float], default_length: Optional[float] = None
    ) -> list[Optional[Pose]]:
        """Per-marker physical sizes; IDs missing from the map use default_length."""
        default = self.L if default_length is None else float(default_length)
        poses: list[Optional[Pose]] = []
        for det in detections:
            length = float(length_map.get(det.marker_id, default))
            poses.append(self._solve(det, length) if length > 0 else None)
        return poses
