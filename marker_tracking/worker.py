from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from marker_bridge.bridge_types import DetectedMarker
from marker_bridge.detector import MarkerDetector
from marker_bridge.services.calib import intrinsics_from_params, load_calib
from marker_bridge.transforms import matrix_to_rvec_tvec, opencv_to_arkit, relative_transform

from .capture import BaseCapture, Frame, SyntheticCapture, USBOpenCVCapture
from .config import TrackerConfig
from .logging_utils import add_file_handler, setup_logger
from .output import CsvOutput, OutputSink
from .smoothing import PoseSmoother
from .storage import SessionStorage


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    csv_path: str
    log_path: str
    avg_fps: float
    errors: int
    markers_seen: int = 0


def draw_markers(image, markers: list[DetectedMarker], K, dist, axis_length: float) -> np.ndarray:
    """Copy of the frame with marker outlines, IDs and pose axes."""
    canvas = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR) if image.ndim == 2 else image.copy()
    cv2.aruco.drawDetectedMarkers(
        canvas,
        [m.corners.reshape(1, 4, 2).astype(np.float32) for m in markers],
        np.array([[m.marker_id] for m in markers], dtype=np.int32),
    )
    for m in markers:
        rvec, tvec = m.as_rvec_tvec()
        cv2.drawFrameAxes(canvas, K, dist, rvec, tvec, axis_length)
    return canvas


class TrackingWorker:
    """One tracking session: capture, detect, write rows, until stopped.

    The loop ends on ``stop()``, after ``duration_sec`` seconds, after
    ``max_frames`` frames, or when the source runs dry and no duration is set.
    """

    def __init__(
        self,
        config: TrackerConfig,
        logger: Optional[logging.Logger] = None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        detector: Optional[MarkerDetector] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name)
        self.outputs = outputs if outputs is not None else [
            CsvOutput(use_reference=config.reference_id is not None)
        ]
        self.capture = capture
        self.detector = detector
        self.smoother = PoseSmoother(config.smoothing) if config.smoothing.enabled else None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        cfg = self.config
        if cfg.dry_run:
            return SyntheticCapture(cfg.fps, cfg.width, cfg.height)
        return USBOpenCVCapture(cfg.device, cfg.fps, cfg.width, cfg.height)

    def _load_intrinsics(self) -> tuple[np.ndarray, np.ndarray]:
        path = self.config.calibration_path
        if path and Path(path).exists():
            K, dist, _ = load_calib(path)
            return K, dist
        if not self.config.dry_run:
            raise FileNotFoundError(f"Calibration not found: {path}")
        # dry run without calibration: pinhole guess with a ~60 degree horizontal FOV
        w, h = self.config.width, self.config.height
        f = w / (2.0 * np.tan(np.radians(30.0)))
        return intrinsics_from_params(f, f, (w - 1) / 2.0, (h - 1) / 2.0), np.zeros((5, 1))

    def _should_stop(self, t0: float, frames: int) -> bool:
        cfg = self.config
        if self._stop_event.is_set():
            return True
        if cfg.duration_sec and time.time() - t0 >= cfg.duration_sec:
            return True
        return bool(cfg.max_frames) and frames >= cfg.max_frames

    def _finish_transform(self, marker: DetectedMarker, now: float) -> np.ndarray:
        T = marker.transform
        if self.config.convention == "arkit":
            T = opencv_to_arkit(T)
        if self.smoother is not None:
            T = self.smoother.update(marker.marker_id, T, timestamp=now)
        return T

    def _annotate(self, storage: SessionStorage, frame: Frame, markers, K, dist) -> None:
        canvas = draw_markers(frame.image, markers, K, dist, max(0.01, self.config.marker_size_m * 0.5))
        h, w = canvas.shape[:2]
        cv2.putText(canvas, f"#{frame.idx} {frame.ts_iso} {w}x{h}", (10, 30),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2, cv2.LINE_AA)
        storage.save_annotated(frame.idx, canvas)

    def _write_rows(self, frame: Frame, markers: list[DetectedMarker], image_path: Optional[str]) -> None:
        ref_id = self.config.reference_id
        by_id = {m.marker_id: m for m in markers}
        ref = by_id.get(ref_id) if ref_id is not None else None
        now = time.monotonic()

        for m in markers:
            T = self._finish_transform(m, now)
            # relative pose comes from raw detector output, independent of convention
            ref_T = relative_transform(ref.transform, m.transform) if ref is not None and m is not ref else None
            ts_unix = time.time()
            for out in self.outputs:
                out.write_detection(ts_unix, frame.idx, m.marker_id, T, image_path,
                                    ref_visible=ref is not None, ref_transform=ref_T)
            if ref_T is not None:
                _, ref_t = matrix_to_rvec_tvec(ref_T)
                self.logger.debug("marker %d in reference %d frame: t=%s", m.marker_id, ref_id, ref_t.ravel())

    def _close_session(self, cap: BaseCapture) -> None:
        try:
            cap.stop()
        except Exception as e:
            self.logger.warning("capture stop failed: %s", e)
        for out in self.outputs:
            try:
                out.close()
            except Exception as e:
                self.logger.warning("output close failed: %s", e)

    def run(self) -> SessionSummary:
        cfg = self.config
        # fail before creating any session files
        K, dist = self._load_intrinsics()
        detector = self.detector or MarkerDetector(cfg.detector, dist_coeffs=dist)

        storage = SessionStorage(cfg.session_root, name=f"{cfg.camera_name}_session")
        session_path = storage.begin()
        storage.write_manifest(cfg.as_dict())
        log_file = str(storage.logs_dir / "session.log")
        file_handler = add_file_handler(self.logger, cfg.camera_name, log_file)

        for out in self.outputs:
            out.open(storage.session_dir)
        cap = self._build_capture()

        self.logger.info("session started: %s", session_path)
        self.logger.info("config: %s", cfg.as_dict())

        t0 = time.time()
        frames = errors = 0
        seen: set[int] = set()
        try:
            cap.start()
            while not self._should_stop(t0, frames):
                frame = cap.next_frame()
                if frame is None:
                    errors += 1
                    if not cfg.duration_sec:
                        # nothing else would end the loop
                        break
                    # back off one frame period; stop() still wakes us at once
                    self._stop_event.wait(1.0 / max(cfg.fps, 1))
                    continue

                markers = detector.detect_markers(frame.image, K, cfg.marker_size_m, cfg.marker_sizes_m)
                seen.update(m.marker_id for m in markers)

                if markers and cfg.save_annotated:
                    self._annotate(storage, frame, markers, K, dist)
                image_path = storage.save_frame(frame.idx, frame.image) if cfg.save_frames else None
                self._write_rows(frame, markers, image_path)

                self.logger.info("frame=%d markers=%s", frame.idx, [m.marker_id for m in markers])
                frames += 1
        finally:
            self._close_session(cap)
            avg = frames / max(1e-6, time.time() - t0)
            self.logger.info("summary frames=%d avg_fps=%.2f errors=%d", frames, avg, errors)
            self.logger.removeHandler(file_handler)
            file_handler.close()

        return SessionSummary(
            session_path=str(session_path),
            frames_processed=frames,
            csv_path=str(storage.session_dir / "detections.csv"),
            log_path=log_file,
            avg_fps=avg,
            errors=errors,
            markers_seen=len(seen),
        )
