"""Rigid-body helpers for camera <- marker poses.

All matrices are 4x4 homogeneous, column-vector convention
(``p_cam = T @ p_marker``).
"""

import numpy as np
import cv2
from typing import Tuple


# x right, y down, z forward (OpenCV)  ->  x right, y up, z toward the viewer (ARKit)
OPENCV_TO_ARKIT = np.diag([1.0, -1.0, -1.0, 1.0])


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """Build a pose matrix from a Rodrigues vector and a translation.

    Both inputs may be shaped (3,) or (3, 1).
    """
    rot, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3))
    pose = np.eye(4)
    pose[:3, :3] = rot
    pose[:3, 3] = np.asarray(tvec, dtype=np.float64).reshape(3)
    return pose


def matrix_to_rvec_tvec(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split a pose matrix into (rvec, tvec), each shaped (3, 1)."""
    pose = np.asarray(T, dtype=np.float64)
    rvec, _ = cv2.Rodrigues(np.ascontiguousarray(pose[:3, :3]))
    return rvec, pose[:3, 3].reshape(3, 1).copy()


def invert_transform(T: np.ndarray) -> np.ndarray:
    # rigid inverse: [R | t]^-1 = [R^T | -R^T t]
    rot_t = np.asarray(T, dtype=np.float64)[:3, :3].T
    inv = np.eye(4)
    inv[:3, :3] = rot_t
    inv[:3, 3] = -rot_t @ np.asarray(T, dtype=np.float64)[:3, 3]
    return inv


def relative_transform(T_cam_ref: np.ndarray, T_cam_target: np.ndarray) -> np.ndarray:
    """Pose of the target expressed in the reference marker's frame."""
    return invert_transform(T_cam_ref) @ T_cam_target


def opencv_to_arkit(T: np.ndarray) -> np.ndarray:
    """Re-express a camera <- marker transform in the y-up, z-backward camera frame."""
    return OPENCV_TO_ARKIT @ np.asarray(T, dtype=np.float64)

