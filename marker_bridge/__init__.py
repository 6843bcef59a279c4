"""ArUco marker detection and 6-DoF pose bridge."""

from .bridge_types import DetectedMarker, PixelBuffer, PixelFormat
from .config import DetectorConfig
from .detector import MarkerDetector, detect_markers
from .errors import InvalidInput

__all__ = [
    "DetectedMarker",
    "DetectorConfig",
    "InvalidInput",
    "MarkerDetector",
    "PixelBuffer",
    "PixelFormat",
    "detect_markers",
]
