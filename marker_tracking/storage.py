from __future__ import annotations

import json
from pathlib import Path
from time import strftime
from typing import Any, Optional

import cv2


class SessionStorage:
    """On-disk layout of one tracking session.

    ``<root>/<name>_<YYYYmmdd_HHMMSS>[_N]/`` holding ``frames/``,
    ``annotated/``, ``logs/`` and a ``config.json`` manifest.
    """

    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.name = name
        self.session_dir: Optional[Path] = None

    @property
    def frames_dir(self) -> Path:
        return self.session_dir / "frames"

    @property
    def annotated_dir(self) -> Path:
        return self.session_dir / "annotated"

    @property
    def logs_dir(self) -> Path:
        return self.session_dir / "logs"

    def begin(self) -> str:
        stem = f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        candidate, n = self.root / stem, 0
        # two sessions started within the same second get a numeric suffix
        while candidate.exists():
            n += 1
            candidate = self.root / f"{stem}_{n}"
        self.session_dir = candidate
        for sub in (self.frames_dir, self.annotated_dir, self.logs_dir):
            sub.mkdir(parents=True, exist_ok=True)
        return str(candidate)

    def _write_image(self, path: Path, image) -> str:
        cv2.imwrite(str(path), image)
        return str(path)

    def save_frame(self, idx: int, image) -> str:
        """Raw frame, no drawings."""
        return self._write_image(self.frames_dir / f"f{idx:06d}.jpg", image)

    def save_annotated(self, idx: int, image) -> str:
        return self._write_image(self.annotated_dir / f"f{idx:06d}_aruco.jpg", image)

    def write_manifest(self, meta: dict[str, Any]) -> None:
        (self.session_dir / "config.json").write_text(
            json.dumps(meta, indent=2, default=str), encoding="utf-8"
        )
