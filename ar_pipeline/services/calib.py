import cv2, numpy as np
from typing import Optional, Tuple

from ..ar_types import CameraIntrinsics


def load_calib(path: str) -> Tuple[CameraIntrinsics, tuple[int, int], Optional[float]]:
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise FileNotFoundError(f"Calibration file not found: {path}")
    K = fs.getNode("camera_matrix").mat()
    dist = fs.getNode("dist_coeffs").mat()
    w = int(fs.getNode("image_width").real()); h = int(fs.getNode("image_height").real())
    err_node = fs.getNode("reprojection_error")
    err = None if err_node.empty() else float(err_node.real())
    fs.release()
    if K is None:
        raise ValueError(f"{path} has no camera_matrix node")
    return CameraIntrinsics.from_matrices(K, dist), (w, h), err


def save_calib(
    path: str,
    intrinsics: CameraIntrinsics,
    image_size: tuple[int, int],
    reprojection_error: Optional[float] = None,
) -> None:
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("image_width", int(image_size[0]))
    fs.write("image_height", int(image_size[1]))
    fs.write("camera_matrix", intrinsics.camera_matrix())
    dist = intrinsics.dist_coeffs()
    fs.write("dist_coeffs", dist if dist.size else np.zeros((5, 1)))
    if reprojection_error is not None:
        fs.write("reprojection_error", float(reprojection_error))
    fs.release()
