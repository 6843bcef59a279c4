from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np

_V4L2_NODE = re.compile(r"^/dev/video(\d+)$")


def _timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S")


@dataclass
class Frame:
    idx: int          # 1-based, per capture
    ts_iso: str
    image: Any        # BGR ndarray


class BaseCapture(ABC):
    """Frame source for a tracking session. ``next_frame`` returns None on a failed read."""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...


def open_video_source(device: int | str) -> cv2.VideoCapture:
    """Camera index, ``/dev/videoN`` (through V4L2), video file or stream URL."""
    if isinstance(device, int):
        return cv2.VideoCapture(device)
    node = _V4L2_NODE.match(str(device))
    if node:
        return cv2.VideoCapture(int(node.group(1)), cv2.CAP_V4L2)
    return cv2.VideoCapture(str(device))


class USBOpenCVCapture(BaseCapture):
    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None
        self.idx = 0

    def start(self) -> None:
        cap = open_video_source(self.device)
        for prop, value in (
            (cv2.CAP_PROP_FRAME_WIDTH, self.width),
            (cv2.CAP_PROP_FRAME_HEIGHT, self.height),
            (cv2.CAP_PROP_FPS, self.fps),
        ):
            cap.set(prop, value)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open video source: {self.device}")
        self.cap = cap

    def next_frame(self) -> Frame | None:
        ok, image = self.cap.read()
        if not ok:
            return None
        self.idx += 1
        return Frame(self.idx, _timestamp(), image)

    def stop(self) -> None:
        cap, self.cap = self.cap, None
        if cap is not None:
            cap.release()


class SyntheticCapture(BaseCapture):
    """Plain white frames paced at ``fps`` (no pacing when fps <= 0)."""

    def __init__(self, fps: int, width: int, height: int):
        self.fps = fps
        self.width = width
        self.height = height
        self.idx = 0
        self._next_due = 0.0

    def start(self) -> None:
        self._next_due = time.monotonic()

    def next_frame(self) -> Frame | None:
        if self.fps > 0:
            delay = self._next_due - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            self._next_due = max(self._next_due, time.monotonic()) + 1.0 / self.fps
        self.idx += 1
        image = np.full((self.height, self.width, 3), 255, dtype=np.uint8)
        return Frame(self.idx, _timestamp(), image)

    def stop(self) -> None:
        pass
