import numpy as np

from ar_pipeline.ar_types import MarkerObservation
from ar_pipeline.transforms import (
    invert_transform,
    pose_to_matrix,
    rvec_to_rotation,
)


def test_rvec_to_rotation_is_orthonormal():
    R = rvec_to_rotation(np.array([0.1, 0.2, 0.3]))
    assert R.shape == (3, 3)
    assert np.allclose(R @ R.T, np.eye(3), atol=1e-6)
    assert np.allclose(np.linalg.det(R), 1.0, atol=1e-6)


def test_zero_rvec_is_identity():
    assert np.allclose(rvec_to_rotation(np.zeros((3, 1))), np.eye(3))


def test_pose_to_matrix():
    R = rvec_to_rotation(np.array([0.0, 0.0, np.pi / 2]))
    T = pose_to_matrix(R, np.array([1.0, 2.0, 3.0]))

    assert T.shape == (4, 4)
    assert np.allclose(T[3, :], [0, 0, 0, 1])
    assert np.allclose(T[:3, 3], [1.0, 2.0, 3.0])
    # 90 degrees about z maps x onto y
    assert np.allclose(T[:3, :3] @ [1, 0, 0], [0, 1, 0], atol=1e-9)


def test_invert_transform():
    T = pose_to_matrix(rvec_to_rotation(np.array([0.3, -0.1, 0.2])), np.array([1.0, -2.0, 0.5]))
    assert np.allclose(T @ invert_transform(T), np.eye(4), atol=1e-9)
    assert np.allclose(invert_transform(np.eye(4)), np.eye(4))


def test_marker_model_matrix():
    obs = MarkerObservation(
        4,
        np.eye(3, dtype=np.float32),
        np.array([0.0, 0.0, 2.0], dtype=np.float32),
    )
    M = obs.model_matrix()
    assert obs.is_valid
    assert np.allclose(M @ [0, 0, 0, 1], [0, 0, 2, 1])
    assert np.allclose(obs.view_matrix() @ [0, 0, 2, 1], [0, 0, 0, 1])
