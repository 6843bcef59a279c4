import cv2, numpy as np
from pathlib import Path
from typing import Optional, Tuple


def load_calib(path: str) -> Tuple[np.ndarray, np.ndarray, tuple[int, int]]:
    """Read camera_matrix, dist_coeffs and image size from an OpenCV YAML file."""
    if not Path(path).exists():
        raise FileNotFoundError(f"Calibration not found: {path}")
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    finally:
        fs.release()
    if K is None or K.shape != (3, 3):
        raise ValueError(f"{path}: camera_matrix must be a 3x3 matrix")
    if dist is None:
        dist = np.zeros((5, 1))
    return K, dist, (w, h)


def save_calib(path: str, K: np.ndarray, dist: Optional[np.ndarray], size: tuple[int, int]) -> None:
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    try:
        fs.write("camera_matrix", np.asarray(K, dtype=np.float64))
        fs.write("dist_coeffs", np.zeros((5, 1)) if dist is None else np.asarray(dist, dtype=np.float64))
        fs.write("image_width", int(size[0]))
        fs.write("image_height", int(size[1]))
    finally:
        fs.release()


def intrinsics_from_params(fx: float, fy: float, cx: float, cy: float, skew: float = 0.0) -> np.ndarray:
    return np.array([[fx, skew, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)
