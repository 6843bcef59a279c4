"""Per-marker temporal smoothing of camera <- marker transforms.

Translation goes through a short moving-average window and then a One-Euro
filter (adaptive low-pass: heavy smoothing at rest, little lag when the
marker moves fast). Rotation is SLERPed from the previous output toward the
newest measurement by a fixed step.
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

from .config import SmoothingConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_DT = 1.0 / 60.0


def _alpha(cutoff: float, dt: float) -> float:
    tau = 1.0 / (2.0 * math.pi * cutoff)
    return 1.0 / (1.0 + tau / dt)


def _lowpass(x: np.ndarray, prev: Optional[np.ndarray], alpha: float) -> np.ndarray:
    if prev is None:
        return x
    return prev * (1.0 - alpha) + x * alpha


def slerp_rotation(R_from: np.ndarray, R_to: np.ndarray, alpha: float) -> np.ndarray:
    """Rotation a fraction ``alpha`` of the way from R_from to R_to."""
    key = Rotation.from_matrix(np.stack([R_from, R_to]))
    return Slerp([0.0, 1.0], key)([alpha]).as_matrix()[0]


@dataclass
class _MarkerState:
    window: Deque[np.ndarray]
    prev: Optional[np.ndarray] = None
    dx_prev: Optional[np.ndarray] = None
    t_prev: Optional[float] = None


class PoseSmoother:
    """Stateful filter keyed by marker id. Not thread-safe; use one per consumer."""

    def __init__(self, config: Optional[SmoothingConfig] = None, clock=time.monotonic):
        self.config = config or SmoothingConfig(enabled=True)
        self._clock = clock
        self._states: Dict[int, _MarkerState] = {}

    def reset(self, marker_id: Optional[int] = None) -> None:
        if marker_id is None:
            self._states.clear()
        else:
            self._states.pop(int(marker_id), None)

    def _state(self, marker_id: int, now: float) -> _MarkerState:
        st = self._states.get(marker_id)
        if st is not None and st.t_prev is not None and now - st.t_prev > self.config.max_gap_sec:
            LOGGER.debug("marker %d unseen for %.2fs, restarting filter", marker_id, now - st.t_prev)
            st = None
        if st is None:
            st = _MarkerState(window=deque(maxlen=self.config.window_size))
            self._states[marker_id] = st
        return st

    def window_average(self, st: _MarkerState, T: np.ndarray) -> np.ndarray:
        """Average translation over the window; rotation from the newest sample."""
        st.window.append(T)
        out = T.copy()
        out[:3, 3] = np.mean([m[:3, 3] for m in st.window], axis=0)
        return out

    def one_euro(self, st: _MarkerState, T: np.ndarray, now: float) -> np.ndarray:
        cfg = self.config
        dt = DEFAULT_DT if st.t_prev is None else max(now - st.t_prev, 1e-6)

        t_cur = T[:3, 3]
        t_prev = None if st.prev is None else st.prev[:3, 3]
        dx = np.zeros(3) if t_prev is None else (t_cur - t_prev) / dt
        dx_hat = _lowpass(dx, st.dx_prev, _alpha(cfg.d_cutoff, dt))

        cutoff = cfg.min_cutoff + cfg.beta * float(np.linalg.norm(dx_hat))
        out = T.copy()
        out[:3, 3] = _lowpass(t_cur, t_prev, _alpha(cutoff, dt))

        if st.prev is not None:
            out[:3, :3] = slerp_rotation(st.prev[:3, :3], T[:3, :3], cfg.rotation_alpha)

        st.dx_prev = dx_hat
        return out

    def update(self, marker_id: int, transform: np.ndarray, timestamp: Optional[float] = None) -> np.ndarray:
        """Feed one measurement, get the smoothed 4x4 transform back."""
        now = self._clock() if timestamp is None else float(timestamp)
        T = np.array(transform, dtype=np.float64).reshape(4, 4)
        st = self._state(int(marker_id), now)

        averaged = self.window_average(st, T)
        out = self.one_euro(st, averaged, now)

        st.prev = out
        st.t_prev = now
        return out
