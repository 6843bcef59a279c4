from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import cv2
import numpy as np

from .errors import InvalidInput


class PixelFormat(str, Enum):
    GRAY8 = "gray8"
    BGR8 = "bgr8"
    RGB8 = "rgb8"
    BGRA8 = "bgra8"
    RGBA8 = "rgba8"
    NV12 = "nv12"  # Y plane + interleaved CbCr plane at half resolution

    @property
    def channels(self) -> int:
        return _CHANNELS[self]


_CHANNELS = {
    PixelFormat.GRAY8: 1,
    PixelFormat.BGR8: 3,
    PixelFormat.RGB8: 3,
    PixelFormat.BGRA8: 4,
    PixelFormat.RGBA8: 4,
    PixelFormat.NV12: 1,
}

_TO_BGR = {
    PixelFormat.RGB8: cv2.COLOR_RGB2BGR,
    PixelFormat.BGRA8: cv2.COLOR_BGRA2BGR,
    PixelFormat.RGBA8: cv2.COLOR_RGBA2BGR,
    PixelFormat.NV12: cv2.COLOR_YUV2BGR_NV12,
}


@dataclass(frozen=True)
class PixelBuffer:
    """Read-only view of a caller-owned image.

    ``row_stride`` is in bytes and defaults to a tightly packed row.
    For NV12 the buffer holds ``height * 3 / 2`` rows of ``row_stride`` bytes.
    """

    width: int
    height: int
    pixel_format: PixelFormat
    data: Any  # bytes, bytearray, memoryview or uint8 ndarray
    row_stride: Optional[int] = None

    @property
    def stride(self) -> int:
        if self.row_stride is not None:
            return int(self.row_stride)
        return int(self.width) * PixelFormat(self.pixel_format).channels

    def _rows(self) -> int:
        if PixelFormat(self.pixel_format) == PixelFormat.NV12:
            return self.height + self.height // 2
        return self.height

    def as_array(self) -> np.ndarray:
        """Return a numpy view of the pixels with the row padding removed."""
        try:
            fmt = PixelFormat(self.pixel_format)
        except ValueError as exc:
            raise InvalidInput(f"unsupported pixel format: {self.pixel_format!r}") from exc
        if self.width <= 0 or self.height <= 0:
            raise InvalidInput(f"frame size must be positive, got {self.width}x{self.height}")
        if fmt == PixelFormat.NV12 and (self.width % 2 or self.height % 2):
            raise InvalidInput("NV12 frames need even width and height")
        row_bytes = self.width * fmt.channels
        stride = self.stride
        if stride < row_bytes:
            raise InvalidInput(f"row stride {stride} is smaller than a row ({row_bytes} bytes)")
        if self.data is None:
            raise InvalidInput("frame has no pixel data")

        try:
            if isinstance(self.data, np.ndarray):
                flat = np.ascontiguousarray(self.data).view(np.uint8).reshape(-1)
            else:
                flat = np.frombuffer(self.data, dtype=np.uint8)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("frame data is not a byte buffer") from exc

        rows = self._rows()
        needed = stride * (rows - 1) + row_bytes
        if flat.size < needed:
            raise InvalidInput(f"frame data too short: {flat.size} < {needed} bytes")

        padded = np.lib.stride_tricks.as_strided(
            flat, shape=(rows, row_bytes), strides=(stride, 1), writeable=False
        )
        if fmt.channels == 1:
            return padded
        return padded.reshape(rows, self.width, fmt.channels)

    def to_bgr(self) -> np.ndarray:
        """Convert to a BGR (or single-channel gray) image the detector can consume."""
        img = self.as_array()
        fmt = PixelFormat(self.pixel_format)
        if fmt in (PixelFormat.GRAY8, PixelFormat.BGR8):
            return np.ascontiguousarray(img)
        return cv2.cvtColor(np.ascontiguousarray(img), _TO_BGR[fmt])


@dataclass
class Detection:
    """A decoded marker candidate before the pose solve."""

    marker_id: int
    corners: Any  # (1,4,2) or (4,2) float32 ndarray


@dataclass
class Pose:
    rvec: Any
    tvec: Any


@dataclass(frozen=True)
class DetectedMarker:
    """A marker found in one frame.

    ``transform`` maps marker-local points into the OpenCV camera frame
    (x right, y down, z forward) as ``p_cam = transform @ p_marker``.
    The marker frame has its origin at the marker center, x to the right,
    y up and z out of the printed face.
    """

    marker_id: int
    transform: np.ndarray
    corners: np.ndarray = field(default_factory=lambda: np.zeros((4, 2), dtype=np.float32))

    def __post_init__(self):
        t = np.array(self.transform, dtype=np.float64).reshape(4, 4)
        t.flags.writeable = False
        c = np.array(self.corners, dtype=np.float32).reshape(4, 2)
        c.flags.writeable = False
        object.__setattr__(self, "marker_id", int(self.marker_id))
        object.__setattr__(self, "transform", t)
        object.__setattr__(self, "corners", c)

    @property
    def rotation(self) -> np.ndarray:
        return self.transform[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        return self.transform[:3, 3]

    def as_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        rvec, _ = cv2.Rodrigues(np.ascontiguousarray(self.rotation))
        return rvec, self.translation.reshape(3, 1).copy()

    def as_dict(self) -> dict[str, Any]:
        return {
            "marker_id": self.marker_id,
            "transform": self.transform.tolist(),
            "corners": self.corners.tolist(),
        }
