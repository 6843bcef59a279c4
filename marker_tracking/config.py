from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

import yaml

from marker_bridge.config import DetectorConfig

CONVENTIONS = ("opencv", "arkit")


@dataclass
class SmoothingConfig:
    """Temporal pose smoothing; off unless enabled."""

    enabled: bool = False
    window_size: int = 5            # frames averaged for translation
    min_cutoff: float = 2.0         # One-Euro cutoff at rest (Hz)
    beta: float = 0.5               # how fast the cutoff grows with speed
    d_cutoff: float = 2.0           # cutoff for the speed estimate
    rotation_alpha: float = 0.25    # SLERP step toward the newest rotation
    max_gap_sec: float = 1.0        # restart a marker's filter after this long unseen

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TrackerConfig:
    camera_name: str = "cam"
    device: int | str = 0
    fps: int = 30
    width: int = 1920
    height: int = 1080
    calibration_path: Optional[str] = "calib/camera.yml"
    session_root: str = "data/sessions"
    duration_sec: float = 30.0
    max_frames: Optional[int] = None
    marker_size_m: float = 0.03
    marker_sizes_m: Optional[dict[int, float]] = None
    reference_id: Optional[int] = None
    convention: str = "opencv"
    dry_run: bool = False
    save_frames: bool = False
    save_annotated: bool = True
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "TrackerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _optional(cast):
    return lambda v: None if v is None else cast(v)


def _device(v):
    return int(v) if isinstance(v, str) and v.isdigit() else v


def _sizes(v):
    if v is None:
        return None
    if not isinstance(v, dict):
        raise ValueError("marker_sizes_m must be a mapping of marker_id -> size_m")
    return {int(k): float(s) for k, s in v.items()}


# top-level key -> coercion; unknown keys are ignored
_FIELDS = {
    "camera_name": str,
    "device": _device,
    "fps": int,
    "width": int,
    "height": int,
    "calibration_path": _optional(str),
    "session_root": str,
    "duration_sec": float,
    "max_frames": _optional(int),
    "marker_size_m": float,
    "marker_sizes_m": _sizes,
    "reference_id": _optional(int),
    "convention": lambda v: str(v).lower(),
    "dry_run": bool,
    "save_frames": bool,
    "save_annotated": bool,
}

_SMOOTHING_FIELDS = {
    "enabled": bool,
    "window_size": int,
    "min_cutoff": float,
    "beta": float,
    "d_cutoff": float,
    "rotation_alpha": float,
    "max_gap_sec": float,
}


def _read_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(fp) or {}
        else:
            data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config root must be a mapping")
    return data


def _load_smoothing(raw: Any) -> SmoothingConfig:
    if not isinstance(raw, dict):
        raise ValueError("smoothing must be a mapping")
    sm = SmoothingConfig(**{k: cast(raw[k]) for k, cast in _SMOOTHING_FIELDS.items() if k in raw})
    if sm.window_size < 1:
        raise ValueError("smoothing.window_size must be >= 1")
    if not 0.0 < sm.rotation_alpha <= 1.0:
        raise ValueError("smoothing.rotation_alpha must be in (0, 1]")
    return sm


def load_config(path: str | Path) -> TrackerConfig:
    """Read a JSON or YAML session config; missing keys keep their defaults."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    raw = _read_mapping(p)

    cfg = TrackerConfig(**{k: cast(raw[k]) for k, cast in _FIELDS.items() if k in raw})
    if cfg.convention not in CONVENTIONS:
        raise ValueError(f"convention must be one of {CONVENTIONS}, got {cfg.convention!r}")
    if raw.get("detector") is not None:
        cfg.detector = DetectorConfig.from_dict(raw["detector"])
    if raw.get("smoothing") is not None:
        cfg.smoothing = _load_smoothing(raw["smoothing"])
    return cfg
