"""Real-time marker tracking on top of marker_bridge."""

from .config import SmoothingConfig, TrackerConfig
from .smoothing import PoseSmoother
from .tracker import MarkerTracker, TrackedMarker
from .worker import TrackingWorker

__all__ = [
    "MarkerTracker",
    "PoseSmoother",
    "SmoothingConfig",
    "TrackedMarker",
    "TrackerConfig",
    "TrackingWorker",
]
