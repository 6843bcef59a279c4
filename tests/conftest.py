import numpy as np
import pytest

from marker_bridge.services.calib import save_calib
from scenes import HEIGHT, WIDTH, facing_camera, pose_matrix, render_scene


@pytest.fixture
def K():
    return np.array([[800.0, 0.0, 319.5], [0.0, 800.0, 239.5], [0.0, 0.0, 1.0]])


@pytest.fixture
def single_marker_scene(K):
    """Marker 5, 8 cm, 25 cm away, tilted 20/15 degrees."""
    T = pose_matrix(facing_camera(20.0, 15.0), [0.01, -0.005, 0.25])
    image = render_scene([(5, T, 0.08)], K)
    return image, T


@pytest.fixture
def three_marker_scene(K):
    R = facing_camera()
    poses = {
        1: pose_matrix(R, [-0.12, 0.0, 0.4]),
        2: pose_matrix(R, [0.0, 0.0, 0.4]),
        3: pose_matrix(R, [0.12, 0.0, 0.4]),
    }
    image = render_scene([(mid, T, 0.05) for mid, T in poses.items()], K)
    return image, poses


@pytest.fixture
def calib_file(tmp_path, K):
    path = tmp_path / "calib.yml"
    save_calib(str(path), K, None, (WIDTH, HEIGHT))
    return path
