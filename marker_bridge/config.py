from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Optional

PNP_METHODS = ("ippe_square", "iterative")


@dataclass
class DetectorConfig:
    aruco_dict: str = "aruco_mip_36h12"
    allowed_ids: Optional[list[int]] = None  # None accepts every ID of the dictionary
    refine_corners: bool = False
    target_width: Optional[int] = None  # downscale before detection when both are set
    target_height: Optional[int] = None
    pnp_method: str = "ippe_square"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "DetectorConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DetectorConfig":
        if not isinstance(raw, dict):
            raise ValueError("detector config must be a mapping")
        cfg = cls()
        cfg.aruco_dict = str(raw.get("aruco_dict", cfg.aruco_dict))
        cfg.allowed_ids = normalize_ids(raw.get("allowed_ids", cfg.allowed_ids))
        cfg.refine_corners = bool(raw.get("refine_corners", cfg.refine_corners))
        tw = raw.get("target_width", cfg.target_width)
        th = raw.get("target_height", cfg.target_height)
        cfg.target_width = int(tw) if tw is not None else None
        cfg.target_height = int(th) if th is not None else None
        cfg.pnp_method = str(raw.get("pnp_method", cfg.pnp_method)).lower()
        if cfg.pnp_method not in PNP_METHODS:
            raise ValueError(f"pnp_method must be one of {PNP_METHODS}, got {cfg.pnp_method!r}")
        return cfg


def normalize_ids(value: Any) -> Optional[list[int]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return sorted(int(v) for v in value)
    if isinstance(value, (int, float)):
        return [int(value)]
    raise ValueError(f"marker IDs must be an int or a list of ints, got {value!r}")
