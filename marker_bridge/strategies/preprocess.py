from abc import ABC, abstractmethod

import cv2
import numpy as np

from ..bridge_types import PixelBuffer
from ..errors import InvalidInput


def to_detector_image(frame) -> np.ndarray:
    """Turn a caller frame into a uint8 gray or BGR ndarray.

    2-D arrays are gray, HxWx3 are BGR and HxWx4 are BGRA.
    """
    if frame is None:
        raise InvalidInput("frame is None")
    if isinstance(frame, PixelBuffer):
        return frame.to_bgr()
    if not isinstance(frame, np.ndarray):
        raise InvalidInput(f"frame must be a PixelBuffer or ndarray, got {type(frame).__name__}")
    if frame.size == 0:
        raise InvalidInput("frame is empty")
    if frame.dtype != np.uint8:
        raise InvalidInput(f"frame dtype must be uint8, got {frame.dtype}")
    if frame.ndim == 2:
        return frame
    if frame.ndim == 3 and frame.shape[2] == 1:
        return frame[:, :, 0]
    if frame.ndim == 3 and frame.shape[2] == 3:
        return frame
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    raise InvalidInput(f"unsupported frame shape {frame.shape}")


def scale_intrinsics(K: np.ndarray, sx: float, sy: float) -> np.ndarray:
    """Adjust a camera matrix for an image resized by (sx, sy).

    The principal point is scaled about pixel edges, not pixel centers.
    """
    K2 = np.array(K, dtype=np.float64, copy=True)
    K2[0, 0] *= sx
    K2[0, 1] *= sx
    K2[1, 1] *= sy
    K2[0, 2] = (K2[0, 2] + 0.5) * sx - 0.5
    K2[1, 2] = (K2[1, 2] + 0.5) * sy - 0.5
    return K2


class ResizeStrategy(ABC):
    @abstractmethod
    def apply(self, image: np.ndarray, K: np.ndarray) -> tuple[np.ndarray, np.ndarray, tuple[float, float]]: ...


class KeepResolution(ResizeStrategy):
    def apply(self, image, K):
        return image, K, (1.0, 1.0)


class Downscale(ResizeStrategy):
    """Shrink frames larger than the target size; smaller frames pass through."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"target size must be positive, got {width}x{height}")
        self.width, self.height = int(width), int(height)

    def apply(self, image, K):
        h, w = image.shape[:2]
        if w <= self.width and h <= self.height:
            return image, K, (1.0, 1.0)
        sx, sy = self.width / w, self.height / h
        small = cv2.resize(image, (self.width, self.height), interpolation=cv2.INTER_AREA)
        return small, scale_intrinsics(K, sx, sy), (sx, sy)
