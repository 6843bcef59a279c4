import numpy as np

from marker_bridge.transforms import (
    OPENCV_TO_ARKIT,
    invert_transform,
    matrix_to_rvec_tvec,
    opencv_to_arkit,
    relative_transform,
    rvec_tvec_to_matrix,
)


def test_rvec_tvec_to_matrix_is_rigid():
    T = rvec_tvec_to_matrix(np.array([0.3, -0.2, 0.1]), np.array([0.05, 0.0, 0.4]))

    assert T.shape == (4, 4)
    assert np.allclose(T[3], [0, 0, 0, 1])
    assert np.allclose(T[:3, 3], [0.05, 0.0, 0.4])
    R = T[:3, :3]
    assert np.allclose(R @ R.T, np.eye(3), atol=1e-9)
    assert np.isclose(np.linalg.det(R), 1.0)


def test_matrix_to_rvec_tvec_shapes():
    T = np.eye(4)
    T[:3, 3] = [0.1, 0.2, 0.3]
    rvec, tvec = matrix_to_rvec_tvec(T)

    assert rvec.shape == (3, 1) and tvec.shape == (3, 1)
    assert np.allclose(rvec, 0.0)
    assert np.allclose(tvec.ravel(), [0.1, 0.2, 0.3])


def test_rvec_survives_matrix_form():
    rvec = np.array([0.4, 0.1, -0.7])
    back, _ = matrix_to_rvec_tvec(rvec_tvec_to_matrix(rvec, np.zeros(3)))
    assert np.allclose(back.ravel(), rvec, atol=1e-9)


def test_invert_transform():
    T = rvec_tvec_to_matrix(np.array([0.1, 0.5, -0.2]), np.array([1.0, -2.0, 0.5]))
    assert np.allclose(T @ invert_transform(T), np.eye(4), atol=1e-9)
    assert np.allclose(invert_transform(np.eye(4)), np.eye(4))


def test_relative_transform_of_same_pose_is_identity():
    T = rvec_tvec_to_matrix(np.array([0.2, 0.0, 0.3]), np.array([0.0, 0.1, 0.5]))
    assert np.allclose(relative_transform(T, T), np.eye(4), atol=1e-9)


def test_relative_transform_translation_only():
    """Target 10 cm to the right of an unrotated reference."""
    ref = rvec_tvec_to_matrix(np.zeros(3), np.array([0.0, 0.0, 0.5]))
    target = rvec_tvec_to_matrix(np.zeros(3), np.array([0.1, 0.0, 0.5]))
    rel = relative_transform(ref, target)
    assert np.allclose(rel[:3, :3], np.eye(3), atol=1e-9)
    assert np.allclose(rel[:3, 3], [0.1, 0.0, 0.0])


def test_relative_transform_rotated_reference():
    # reference turned 90 deg about z: camera +x is reference -y
    ref = rvec_tvec_to_matrix(np.array([0.0, 0.0, np.pi / 2]), np.zeros(3))
    target = rvec_tvec_to_matrix(np.zeros(3), np.array([1.0, 0.0, 0.0]))
    rvec, tvec = matrix_to_rvec_tvec(relative_transform(ref, target))
    assert np.allclose(tvec.ravel(), [0.0, -1.0, 0.0], atol=1e-9)
    assert np.allclose(rvec.ravel(), [0.0, 0.0, -np.pi / 2], atol=1e-9)


def test_opencv_to_arkit_flips_y_and_z():
    T = rvec_tvec_to_matrix(np.array([0.1, 0.2, 0.3]), np.array([0.02, 0.03, 0.4]))
    A = opencv_to_arkit(T)

    assert np.allclose(A[:3, 3], [0.02, -0.03, -0.4])
    assert np.allclose(A[3], [0, 0, 0, 1])
    R = A[:3, :3]
    assert np.isclose(np.linalg.det(R), 1.0)
    # applying the flip twice gives the original back
    assert np.allclose(opencv_to_arkit(A), T)
    assert np.allclose(OPENCV_TO_ARKIT @ OPENCV_TO_ARKIT, np.eye(4))

