from abc import ABC, abstractmethod
import logging

import cv2
import numpy as np

from ..ar_types import (
    SENTINEL_CODE,
    CameraIntrinsics,
    PatternLocation,
    RawMarkerDetection,
)
from ..errors import EngineUnavailable
from ..services.marshal import (
    BufferLayout,
    rotation_offset,
    translation_offset,
    unpack_calibration_points,
)
from ..transforms import rvec_to_rotation

logger = logging.getLogger(__name__)

PATTERN_DETECTION_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH + cv2.CALIB_CB_NORMALIZE_IMAGE + cv2.CALIB_CB_FAST_CHECK
)
TERM_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 0.1)
# Distortion model handed to calibrateCamera as the initial guess.
DIST_COEFFS_COUNT = 8


class VisionEngine(ABC):
    """Marker detection and camera calibration capability."""

    @abstractmethod
    def detect_markers(self, image, intrinsics: CameraIntrinsics) -> RawMarkerDetection: ...

    @abstractmethod
    def locate_pattern(self, image) -> PatternLocation: ...

    @abstractmethod
    def compute_intrinsics(self, sample_points, reference_image) -> tuple[CameraIntrinsics, float]: ...

    @abstractmethod
    def undistort(self, image, intrinsics: CameraIntrinsics): ...


def get_dict(name: str):
    """
    ArUco dictionary resolver.
    Falls back to 5x5_50 if name not recognized.
    Works on OpenCV >= 4.7 (getPredefinedDictionary) and older (Dictionary_get).
    """
    key = (name or "").strip().lower()
    if key.startswith("dict_"):
        key = key[5:]
    table = {
        "4x4_50":  cv2.aruco.DICT_4X4_50,
        "4x4_100": cv2.aruco.DICT_4X4_100,
        "5x5_50":  cv2.aruco.DICT_5X5_50,
        "5x5_100": cv2.aruco.DICT_5X5_100,
        "6x6_50":  cv2.aruco.DICT_6X6_50,
        "6x6_100": cv2.aruco.DICT_6X6_100,
        "7x7_50":  cv2.aruco.DICT_7X7_50,
        "7x7_100": cv2.aruco.DICT_7X7_100,
    }
    code = table.get(key, cv2.aruco.DICT_5X5_50)

    if hasattr(cv2.aruco, "getPredefinedDictionary"):
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)


def _make_params():
    """Create detector parameters across OpenCV versions."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        return cv2.aruco.DetectorParameters_create()
    return cv2.aruco.DetectorParameters()


def _to_gray(image):
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


class OpenCVVisionEngine(VisionEngine):
    """
    VisionEngine backed by OpenCV.

    Markers are ArUco tags; their pose is the transform of a square of side
    marker_length centered on the origin, relative to the camera. The
    calibration pattern is a chessboard with pattern_size inner corners
    (columns, rows).
    """

    def __init__(
        self,
        layout: BufferLayout,
        pattern_size: tuple[int, int] = (6, 9),
        square_size: float = 1.0,
        marker_length: float = 1.0,
        dict_name: str = "5x5_50",
    ):
        if not hasattr(cv2, "aruco"):
            raise EngineUnavailable(f"OpenCV {cv2.__version__} was built without the aruco module")
        if pattern_size[0] * pattern_size[1] != layout.pattern_points:
            raise ValueError(
                f"pattern {pattern_size} has {pattern_size[0] * pattern_size[1]} points, "
                f"layout expects {layout.pattern_points}"
            )

        self.layout = layout
        self.pattern_size = tuple(pattern_size)
        self.square_size = square_size
        self.marker_length = marker_length
        self.dictionary = get_dict(dict_name)
        self.params = _make_params()
        self._detector = None
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

        half = marker_length / 2.0
        self._marker_square = np.array(
            [[-half, half, 0.0],
             [half, half, 0.0],
             [half, -half, 0.0],
             [-half, -half, 0.0]],
            dtype=np.float32,
        )

        cols, rows = self.pattern_size
        self._board_points = np.array(
            [[j * square_size, i * square_size, 0.0] for i in range(rows) for j in range(cols)],
            dtype=np.float32,
        )

    def _find_markers(self, image):
        if self._detector is not None:
            return self._detector.detectMarkers(image)
        return cv2.aruco.detectMarkers(image, self.dictionary, parameters=self.params)

    def detect_markers(self, image, intrinsics: CameraIntrinsics) -> RawMarkerDetection:
        M = self.layout.max_markers
        codes = np.full(M, SENTINEL_CODE, dtype=np.int32)
        translations = np.zeros(self.layout.translations_len, dtype=np.float32)
        rotations = np.zeros(self.layout.rotations_len, dtype=np.float32)

        out = image.copy()
        corners, ids, _rej = self._find_markers(_to_gray(image))
        if ids is None or len(ids) == 0:
            return RawMarkerDetection(out, codes, rotations, translations)

        K = intrinsics.camera_matrix()
        dist = intrinsics.dist_coeffs()
        kept_corners = []
        kept_ids = []
        k = 0
        for corner, mid in zip(corners, ids.flatten()):
            if k >= M:
                logger.debug("more than %d markers in frame, ignoring the rest", M)
                break
            img_points = np.asarray(corner, dtype=np.float32).reshape(-1, 1, 2)
            ok, rvec, tvec = cv2.solvePnP(
                self._marker_square, img_points, K, dist, flags=cv2.SOLVEPNP_IPPE_SQUARE
            )
            if not ok:
                logger.debug("solvePnP failed for marker %d", int(mid))
                continue

            R = rvec_to_rotation(rvec)
            t = np.asarray(tvec, dtype=np.float64).reshape(3)
            codes[k] = int(mid)
            p = translation_offset(k)
            translations[p:p + 3] = t
            for row in range(3):
                for col in range(3):
                    rotations[rotation_offset(k, row, col)] = R[row, col]

            kept_corners.append(corner)
            kept_ids.append(int(mid))
            k += 1

        if kept_ids:
            cv2.aruco.drawDetectedMarkers(
                out, kept_corners, np.array(kept_ids, dtype=np.int32).reshape(-1, 1)
            )
        return RawMarkerDetection(out, codes, rotations, translations)

    def locate_pattern(self, image) -> PatternLocation:
        gray = _to_gray(image)
        found, corners = cv2.findChessboardCorners(gray, self.pattern_size, None, PATTERN_DETECTION_FLAGS)

        out = image.copy()
        if not found or corners is None:
            return PatternLocation(out, False, np.zeros(self.layout.sample_len, dtype=np.float32))

        corners = cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), TERM_CRITERIA)
        cv2.drawChessboardCorners(out, self.pattern_size, corners, True)
        points = np.asarray(corners, dtype=np.float32).reshape(-1)
        return PatternLocation(out, True, points)

    def compute_intrinsics(self, sample_points, reference_image) -> tuple[CameraIntrinsics, float]:
        samples = unpack_calibration_points(sample_points, self.layout)
        object_points = [self._board_points for _ in samples]
        image_points = [s.points.reshape(-1, 1, 2) for s in samples]
        h, w = reference_image.shape[:2]

        camera_matrix = np.eye(3, dtype=np.float64)
        dist_coeffs = np.zeros((DIST_COEFFS_COUNT, 1), dtype=np.float64)
        err, K, dist, _rvecs, _tvecs = cv2.calibrateCamera(
            object_points,
            image_points,
            (w, h),
            camera_matrix,
            dist_coeffs,
            flags=0,
            criteria=TERM_CRITERIA,
        )
        return CameraIntrinsics.from_matrices(K, dist), float(err)

    def undistort(self, image, intrinsics: CameraIntrinsics):
        return cv2.undistort(image, intrinsics.camera_matrix(), intrinsics.dist_coeffs())
