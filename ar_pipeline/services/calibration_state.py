import logging
import math
import threading
import time
from typing import Optional

from ..ar_types import CameraIntrinsics

logger = logging.getLogger(__name__)


class CalibrationState:
    """Whether the active camera has usable intrinsics, and which ones.

    The intrinsics are immutable; a calibration publishes a new object by
    swapping one reference under the lock, so a reader on another thread sees
    either the previous snapshot or the new one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._intrinsics: Optional[CameraIntrinsics] = None
        self._reprojection_error: Optional[float] = None
        self._calibrated_at: Optional[float] = None

    def is_calibrated(self) -> bool:
        with self._lock:
            return self._intrinsics is not None

    def mark_calibrated(
        self,
        intrinsics: CameraIntrinsics,
        reprojection_error: Optional[float] = None,
    ) -> None:
        if not isinstance(intrinsics, CameraIntrinsics):
            raise TypeError("intrinsics must be a CameraIntrinsics instance")
        if reprojection_error is not None and not math.isfinite(reprojection_error):
            raise ValueError(f"reprojection error must be finite, got {reprojection_error}")
        with self._lock:
            self._intrinsics = intrinsics
            self._reprojection_error = reprojection_error
            self._calibrated_at = time.time()
        logger.info(
            "camera calibrated fx=%.3f fy=%.3f cx=%.3f cy=%.3f",
            intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy,
        )

    def reset(self) -> None:
        with self._lock:
            was_calibrated = self._intrinsics is not None
            self._intrinsics = None
            self._reprojection_error = None
            self._calibrated_at = None
        if was_calibrated:
            logger.info("calibration reset, camera is uncalibrated")

    def snapshot(self) -> Optional[CameraIntrinsics]:
        with self._lock:
            return self._intrinsics

    @property
    def reprojection_error(self) -> Optional[float]:
        with self._lock:
            return self._reprojection_error

    @property
    def calibrated_at(self) -> Optional[float]:
        with self._lock:
            return self._calibrated_at

    # Accessors used by the renderer; 0.0 while uncalibrated.
    @property
    def focal_x(self) -> float:
        snap = self.snapshot()
        return snap.fx if snap is not None else 0.0

    @property
    def focal_y(self) -> float:
        snap = self.snapshot()
        return snap.fy if snap is not None else 0.0

    @property
    def center_x(self) -> float:
        snap = self.snapshot()
        return snap.cx if snap is not None else 0.0

    @property
    def center_y(self) -> float:
        snap = self.snapshot()
        return snap.cy if snap is not None else 0.0
