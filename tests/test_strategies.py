from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest

from marker_bridge.bridge_types import Detection
from marker_bridge.strategies import detect_aruco as detect_mod
from marker_bridge.strategies import localize_pnp as localize_mod
from marker_bridge.strategies.detect_aruco import ArucoDetect, get_dict, normalize_dict_name
from marker_bridge.strategies.localize_pnp import PnPLocalize, marker_object_points
from marker_bridge.strategies.preprocess import (
    Downscale,
    KeepResolution,
    scale_intrinsics,
    to_detector_image,
)


def _square(x, y, side):
    return np.array([[x, y], [x + side, y], [x + side, y + side], [x, y + side]], dtype=np.float32)


def test_aruco_detect_uses_new_detector():
    """When available, ArucoDetect should use the ArucoDetector API."""
    detector = ArucoDetect("4x4_50")
    fake_detector = MagicMock()
    fake_detector.detectMarkers.return_value = (
        [_square(0, 0, 10).reshape(1, 4, 2)],
        np.array([[42]], dtype=np.int32),
        [],
    )
    detector._detector = fake_detector
    image = np.zeros((2, 2), dtype=np.uint8)

    results = detector.detect(image)
    assert len(results) == 1
    assert results[0].marker_id == 42
    assert results[0].corners.shape == (4, 2)
    fake_detector.detectMarkers.assert_called_once_with(image)


@patch.object(detect_mod.cv2.aruco, "detectMarkers", create=True)
def test_aruco_detect_falls_back_to_module(mock_detect):
    """Older OpenCV code path should call cv2.aruco.detectMarkers."""
    mock_detect.return_value = (
        [_square(0, 0, 10).reshape(1, 4, 2)],
        np.array([[7]], dtype=np.int32),
        [],
    )
    detector = ArucoDetect("4x4_50")
    detector._detector = None

    results = detector.detect(np.zeros((2, 2), dtype=np.uint8))
    assert [d.marker_id for d in results] == [7]
    mock_detect.assert_called_once()


def test_aruco_detect_no_ids_returns_empty():
    detector = ArucoDetect("4x4_50")
    detector._detector = MagicMock()
    detector._detector.detectMarkers.return_value = ((), None, ())
    assert detector.detect(np.zeros((2, 2), dtype=np.uint8)) == []


def test_aruco_detect_filters_and_sorts_ids():
    detector = ArucoDetect("4x4_50", allowed_ids=[2, 3, 4, 5, 6])
    detector._detector = MagicMock()
    detector._detector.detectMarkers.return_value = (
        [_square(0, 0, 10), _square(20, 0, 10), _square(40, 0, 10)],
        np.array([[6], [1], [3]], dtype=np.int32),
        [],
    )
    results = detector.detect(np.zeros((2, 2), dtype=np.uint8))
    assert [d.marker_id for d in results] == [3, 6]


def test_aruco_detect_keeps_largest_duplicate():
    detector = ArucoDetect("4x4_50")
    detector._detector = MagicMock()
    small, big = _square(0, 0, 10), _square(50, 50, 30)
    detector._detector.detectMarkers.return_value = (
        [small, big],
        np.array([[9], [9]], dtype=np.int32),
        [],
    )
    results = detector.detect(np.zeros((2, 2), dtype=np.uint8))
    assert len(results) == 1
    assert np.allclose(results[0].corners, big)


def test_get_dict_unknown_name_falls_back():
    fallback = get_dict("no_such_dict")
    expected = get_dict("4x4_50")
    assert np.array_equal(fallback.bytesList, expected.bytesList)


def test_normalize_dict_name():
    assert normalize_dict_name("DICT_4X4_50") == "4x4_50"
    assert normalize_dict_name(" aruco_MIP_36h12 ") == "aruco_mip_36h12"


def test_marker_object_points_centered_square():
    pts = marker_object_points(0.1)
    assert pts.shape == (4, 3)
    assert np.allclose(pts.mean(axis=0), 0.0)
    assert np.allclose(pts[0], [-0.05, 0.05, 0.0])
    assert np.allclose(pts[2], [0.05, -0.05, 0.0])


@patch.object(localize_mod.cv2, "solvePnP")
def test_pnp_localize_returns_pose(mock_solve):
    """PnPLocalize should wrap cv2.solvePnP output into Pose objects."""
    mock_solve.return_value = (True, np.array([[1.0], [0.0], [0.0]]), np.array([[0.0], [0.0], [1.0]]))
    localizer = PnPLocalize(np.eye(3), None, 0.1)
    det = Detection(1, np.zeros((4, 2)))

    poses = localizer.estimate([det])
    assert len(poses) == 1
    assert poses[0].tvec[2, 0] == 1.0
    _, kwargs = mock_solve.call_args
    assert kwargs["flags"] == cv2.SOLVEPNP_IPPE_SQUARE


@patch.object(localize_mod.cv2, "solvePnP")
def test_pnp_localize_drops_failed_solves(mock_solve):
    mock_solve.side_effect = [
        (False, np.zeros((3, 1)), np.zeros((3, 1))),
        (True, np.zeros((3, 1)), np.array([[np.nan], [0.0], [1.0]])),
        cv2.error("boom"),
        (True, np.zeros((3, 1)), np.array([[0.0], [0.0], [1.0]])),
    ]
    localizer = PnPLocalize(np.eye(3), None, 0.1)
    dets = [Detection(i, np.zeros((4, 2))) for i in range(4)]

    poses = localizer.estimate(dets)
    assert poses[:3] == [None, None, None]
    assert poses[3] is not None


def test_pnp_localize_non_positive_length():
    """No poses should be solved when marker length is non-positive."""
    localizer = PnPLocalize(np.eye(3), None, 0.0)
    det = Detection(1, np.zeros((4, 2)))
    assert localizer.estimate([det]) == [None]


def test_scale_intrinsics_half_resolution():
    K = np.array([[1000.0, 0.0, 959.5], [0.0, 1000.0, 539.5], [0.0, 0.0, 1.0]])
    K2 = scale_intrinsics(K, 0.5, 0.5)
    assert np.allclose(K2, [[500.0, 0.0, 479.5], [0.0, 500.0, 269.5], [0.0, 0.0, 1.0]])
    assert K[0, 0] == 1000.0


def test_downscale_only_shrinks():
    K = np.eye(3)
    small = np.zeros((100, 200), dtype=np.uint8)
    img, K_out, scale = Downscale(400, 300).apply(small, K)
    assert img is small and scale == (1.0, 1.0)

    big = np.zeros((600, 800, 3), dtype=np.uint8)
    img, K_out, scale = Downscale(400, 300).apply(big, K)
    assert img.shape == (300, 400, 3)
    assert scale == (0.5, 0.5)

    img, K_out, scale = KeepResolution().apply(big, K)
    assert img is big and K_out is K


def test_downscale_rejects_bad_size():
    with pytest.raises(ValueError):
        Downscale(0, 10)


def test_to_detector_image_shapes():
    gray = np.zeros((4, 5), dtype=np.uint8)
    assert to_detector_image(gray) is gray
    assert to_detector_image(np.zeros((4, 5, 1), dtype=np.uint8)).shape == (4, 5)
    assert to_detector_image(np.zeros((4, 5, 4), dtype=np.uint8)).shape == (4, 5, 3)


@patch.object(localize_mod.cv2, "solvePnP")
def test_estimate_with_lengths_uses_per_marker_size(mock_solve):
    mock_solve.return_value = (True, np.zeros((3, 1)), np.array([[0.0], [0.0], [1.0]]))
    localizer = PnPLocalize(np.eye(3), None, 0.05)
    dets = [Detection(1, np.zeros((4, 2))), Detection(2, np.zeros((4, 2))), Detection(3, np.zeros((4, 2)))]

    poses = localizer.estimate_with_lengths(dets, {2: 0.1, 3: 0.0})

    assert poses[2] is None
    sizes = [call.args[0][1, 0] * 2 for call in mock_solve.call_args_list]
    assert np.allclose(sizes, [0.05, 0.1])
