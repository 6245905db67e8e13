"""SE(3) helpers shared by the vision engine adapter and the marker results."""

import numpy as np
import cv2


def rvec_to_rotation(rvec: np.ndarray) -> np.ndarray:
    """
    Convert a Rodrigues rotation vector to a 3x3 rotation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)

    Returns:
        3x3 rotation matrix (float64)
    """
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    R, _ = cv2.Rodrigues(rvec)
    return R


def pose_to_matrix(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """
    Build a 4x4 homogeneous transform from a 3x3 rotation and a 3-vector.

    Args:
        rotation: 3x3 rotation matrix
        translation: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    T = np.eye(4)
    T[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.

    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]

    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t

    return T_inv
