import csv
import math

import numpy as np
import pytest

from marker_bridge.services.calib import intrinsics_from_params, load_calib, save_calib
from marker_bridge.transforms import rvec_tvec_to_matrix
from marker_tracking.csv_writer import CsvWriter
from marker_tracking.output import CsvOutput, NullOutput
from marker_tracking.storage import SessionStorage


def test_calib_roundtrip(tmp_path):
    K = intrinsics_from_params(900.0, 905.0, 640.0, 360.0)
    dist = np.array([[0.1], [-0.05], [0.0], [0.0], [0.01]])
    path = tmp_path / "cam.yml"
    save_calib(str(path), K, dist, (1280, 720))

    K2, dist2, size = load_calib(str(path))
    assert np.allclose(K2, K)
    assert np.allclose(dist2, dist)
    assert size == (1280, 720)


def test_load_calib_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_calib(str(tmp_path / "none.yml"))


def test_csv_header_with_reference():
    assert CsvWriter.header() == CsvWriter.HEADER
    full = CsvWriter.header(use_reference=True)
    assert full[-7:] == CsvWriter.REF_HEADER
    assert "ref_visible" in full


def test_csv_row_values():
    T = rvec_tvec_to_matrix(np.array([0.0, 0.0, 0.5]), np.array([0.01, 0.02, 0.3]))
    row = CsvWriter.row(1700000000.5, 3, 7, T, "f.jpg")

    assert row[0] == "1700000000.500000"
    assert row[1:3] == [3, 7]
    assert np.allclose(row[3:6], [0.0, 0.0, 0.5])
    assert np.allclose(row[6:9], [0.01, 0.02, 0.3])
    assert row[9] == "f.jpg"


def test_csv_row_missing_values_are_nan():
    row = CsvWriter.row(0.0, 1, 2, None, None, use_reference=True, ref_visible=False)
    assert row[9] == ""
    assert row[10] == 0
    assert all(math.isnan(v) for v in row[3:9] + row[11:])


def test_csv_output_writes_rows(tmp_path):
    out = CsvOutput(use_reference=True)
    out.open(tmp_path)
    out.write_detection(1.0, 1, 3, np.eye(4), None, ref_visible=True, ref_transform=np.eye(4))
    out.close()

    with open(out.path, newline="", encoding="utf-8") as fp:
        rows = list(csv.DictReader(fp))
    assert len(rows) == 1
    assert rows[0]["marker_id"] == "3"
    assert rows[0]["ref_visible"] == "1"
    assert float(rows[0]["ref_tvec_x"]) == 0.0


def test_null_output_accepts_anything(tmp_path):
    out = NullOutput()
    out.open(tmp_path)
    out.write_detection(0.0, 0, 0, None, None)
    out.close()


def test_session_storage_layout(tmp_path):
    storage = SessionStorage(str(tmp_path), name="cam_session")
    first = storage.begin()
    second = SessionStorage(str(tmp_path), name="cam_session").begin()
    assert first != second

    img = np.zeros((8, 8, 3), dtype=np.uint8)
    frame_path = storage.save_frame(4, img)
    ann_path = storage.save_annotated(4, img)
    storage.write_manifest({"camera_name": "cam", "path": tmp_path})

    assert frame_path.endswith("f000004.jpg")
    assert ann_path.endswith("f000004_aruco.jpg")
    assert (storage.session_dir / "config.json").exists()
    assert storage.logs_dir.is_dir()
