from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import numpy as np

from .csv_writer import CsvWriter


class OutputSink(ABC):
    """Receives one call per detected marker per frame.

    ``transform`` is the marker pose as reported to the user (after the
    convention change and smoothing); ``ref_transform`` is the marker in the
    reference marker's frame, or None.
    """

    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_detection(
        self,
        ts_unix: float,
        frame_idx: int,
        marker_id: int,
        transform: Optional[np.ndarray],
        image_path: Optional[str],
        ref_visible: bool = False,
        ref_transform: Optional[np.ndarray] = None,
    ) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    """Rows go to ``<session_dir>/<filename>``."""

    def __init__(self, filename: str = "detections.csv", use_reference: bool = False):
        self.filename = filename
        self.use_reference = use_reference
        self.path: Optional[Path] = None
        self._writer: Optional[CsvWriter] = None

    def open(self, session_dir: Path) -> None:
        self.path = Path(session_dir) / self.filename
        writer = CsvWriter(str(self.path), use_reference=self.use_reference)
        writer.open()
        self._writer = writer

    def write_detection(self, ts_unix, frame_idx, marker_id, transform, image_path,
                        ref_visible=False, ref_transform=None) -> None:
        if self._writer is not None:
            self._writer.append(ts_unix, frame_idx, marker_id, transform, image_path,
                                ref_visible=ref_visible, ref_transform=ref_transform)

    def close(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()


class NullOutput(OutputSink):
    """Discards everything; for sessions that only need logs and images."""

    def open(self, session_dir: Path) -> None:
        pass

    def write_detection(self, *args, **kwargs) -> None:
        pass

    def close(self) -> None:
        pass
