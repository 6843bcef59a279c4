from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from marker_bridge.detector import MarkerDetector
from marker_bridge.transforms import opencv_to_arkit

from .smoothing import PoseSmoother

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedMarker:
    marker_id: int
    transform: np.ndarray       # after convention change and smoothing
    raw_transform: np.ndarray   # as returned by the detector
    timestamp: float


class MarkerTracker:
    """Runs detection on a background thread with at most one frame in flight.

    ``submit`` never blocks: while the previous frame is still being
    processed the new one is dropped and ``submit`` returns False. Results
    go to ``on_update`` (called on the worker thread) and ``markers``.
    """

    def __init__(
        self,
        detector: MarkerDetector,
        marker_size_m: float,
        smoother: Optional[PoseSmoother] = None,
        convention: str = "opencv",
        on_update: Optional[Callable[[list[TrackedMarker]], None]] = None,
    ):
        self.detector = detector
        self.marker_size_m = marker_size_m
        self.smoother = smoother
        self.convention = convention
        self.on_update = on_update

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="marker-tracker")
        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._busy = False
        self._closed = False
        self._markers: list[TrackedMarker] = []
        self.frames_processed = 0
        self.frames_dropped = 0
        self.errors = 0

    @property
    def markers(self) -> list[TrackedMarker]:
        with self._lock:
            return list(self._markers)

    def submit(self, frame, intrinsics) -> bool:
        with self._lock:
            if self._closed:
                raise RuntimeError("tracker is closed")
            if self._busy:
                self.frames_dropped += 1
                return False
            self._busy = True
            self._idle.clear()
        try:
            self._executor.submit(self._process, frame, intrinsics)
        except RuntimeError:
            # closed between the check above and the submit
            with self._lock:
                self._busy = False
                self._idle.set()
            raise
        return True

    def _process(self, frame, intrinsics) -> None:
        try:
            found = self.detector.detect_markers(frame, intrinsics, self.marker_size_m)
            now = time.monotonic()
            tracked = []
            for m in found:
                T = m.transform
                if self.convention == "arkit":
                    T = opencv_to_arkit(T)
                if self.smoother is not None:
                    T = self.smoother.update(m.marker_id, T, timestamp=now)
                tracked.append(TrackedMarker(m.marker_id, T, m.transform, now))

            with self._lock:
                self._markers = tracked
                self.frames_processed += 1

            if self.on_update is not None:
                try:
                    self.on_update(tracked)
                except Exception:
                    LOGGER.exception("marker update callback failed")
        except Exception:
            LOGGER.exception("frame processing failed")
            with self._lock:
                self.errors += 1
        finally:
            with self._lock:
                self._busy = False
                self._idle.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def close(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "MarkerTracker":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
