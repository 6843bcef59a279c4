import csv
from typing import Optional

import numpy as np

from marker_bridge.transforms import matrix_to_rvec_tvec


def _vec3(vec):
    if vec is None:
        return [float("nan")] * 3
    a = np.array(vec, dtype=np.float64).reshape(-1).tolist()
    if len(a) < 3:
        a += [float("nan")] * (3 - len(a))
    return a[:3]


def _pose_cols(transform):
    if transform is None:
        return _vec3(None) + _vec3(None)
    rvec, tvec = matrix_to_rvec_tvec(transform)
    return _vec3(rvec) + _vec3(tvec)


class CsvWriter:
    HEADER = [
        "recorded_at",
        "frame_idx", "marker_id",
        "rvec_x", "rvec_y", "rvec_z",
        "tvec_x", "tvec_y", "tvec_z",
        "image_path",
    ]
    REF_HEADER = [
        "ref_visible",
        "ref_rvec_x", "ref_rvec_y", "ref_rvec_z",
        "ref_tvec_x", "ref_tvec_y", "ref_tvec_z",
    ]

    def __init__(self, csv_path: str, use_reference: bool = False):
        self.csv_path = csv_path
        self.use_reference = use_reference
        self._fh = None
        self._w = None

    @classmethod
    def header(cls, use_reference: bool = False) -> list[str]:
        return cls.HEADER + (cls.REF_HEADER if use_reference else [])

    def open(self):
        self._fh = open(self.csv_path, "w", newline="", encoding="utf-8")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.header(self.use_reference))

    @classmethod
    def row(cls, ts_unix, frame_idx, marker_id, transform, img_path,
            use_reference=False, ref_visible=False, ref_transform=None) -> list:
        row = [f"{ts_unix:.6f}", frame_idx, marker_id, *_pose_cols(transform), img_path or ""]
        if use_reference:
            row += [int(bool(ref_visible)), *_pose_cols(ref_transform)]
        return row

    def append(self, ts_unix, frame_idx, marker_id, transform, img_path,
               ref_visible: bool = False, ref_transform: Optional[np.ndarray] = None):
        self._w.writerow(self.row(
            ts_unix, frame_idx, marker_id, transform, img_path,
            use_reference=self.use_reference, ref_visible=ref_visible, ref_transform=ref_transform,
        ))

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None
