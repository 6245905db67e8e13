import logging
import math
import threading
from typing import Optional, Sequence

from .ar_types import (
    CalibrationData,
    CalibrationOutcome,
    CalibrationSample,
    MarkerData,
)
from .services.calibration_state import CalibrationState
from .services.marshal import (
    BufferLayout,
    pack_calibration_points,
    unpack_markers,
    unpack_sample,
)
from .strategies.frame_codec import FrameCodec
from .strategies.multicast import MulticastScope, RefCountedMulticast
from .strategies.notifier import Notifier, NullNotifier
from .strategies.vision_engine import VisionEngine


class CalibrationCoordinator:
    """
    Entry point used by the renderer and the UI.

    Every operation takes an encoded frame, runs the matching vision engine
    call and returns structured results. Soft failures (engine missing, camera
    not calibrated, pattern not found) produce None or an empty result and
    never reach the engine; buffer layout violations raise MarshalingFault.

    No lock is held while the engine runs.
    """

    def __init__(
        self,
        engine: Optional[VisionEngine],
        codec: FrameCodec,
        layout: BufferLayout,
        state: Optional[CalibrationState] = None,
        notifier: Optional[Notifier] = None,
        multicast: Optional[MulticastScope] = None,
        logger: Optional[logging.Logger] = None,
        max_reprojection_error: Optional[float] = None,
    ):
        self.engine = engine
        self.codec = codec
        self.layout = layout
        self.state = state or CalibrationState()
        self.notifier = notifier or NullNotifier()
        self.multicast = multicast or RefCountedMulticast()
        self.log = logger or logging.getLogger(__name__)
        self.max_reprojection_error = max_reprojection_error

        self._samples_lock = threading.Lock()
        self._samples: list[CalibrationSample] = []

    @property
    def engine_available(self) -> bool:
        return self.engine is not None

    def _engine_ready(self, op: str) -> bool:
        if self.engine is None:
            self.log.debug("%s(): vision engine is not available", op)
            return False
        return True

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------
    def find_markers(self, frame: bytes) -> Optional[MarkerData]:
        if not self._engine_ready("find_markers"):
            return None
        intrinsics = self.state.snapshot()
        if intrinsics is None:
            self.log.debug("find_markers(): the camera has not been calibrated")
            return None

        image = self.codec.decode(frame)
        raw = self.engine.detect_markers(image, intrinsics)
        markers = unpack_markers(raw.codes, raw.translations, raw.rotations, self.layout)

        found = markers.valid()
        if found:
            self.log.debug("find_markers(): %s", ", ".join(f"[{k}]={m.code}" for k, m in found))
        return MarkerData(self.codec.encode(raw.out_image), markers)

    def undistort_frame(self, frame: bytes) -> Optional[bytes]:
        if not self._engine_ready("undistort_frame"):
            return None
        intrinsics = self.state.snapshot()
        if intrinsics is None:
            self.log.debug("undistort_frame(): the camera has not been calibrated")
            return None

        image = self.codec.decode(frame)
        corrected = self.engine.undistort(image, intrinsics)
        return self.codec.encode(corrected)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    @property
    def samples_required(self) -> int:
        return self.layout.calibration_samples

    @property
    def samples_collected(self) -> int:
        with self._samples_lock:
            return len(self._samples)

    @property
    def samples(self) -> list[CalibrationSample]:
        with self._samples_lock:
            return list(self._samples)

    def ready_to_calibrate(self) -> bool:
        return self.samples_collected >= self.samples_required

    def find_calibration_pattern(self, frame: bytes) -> Optional[CalibrationData]:
        if not self._engine_ready("find_calibration_pattern"):
            return None

        image = self.codec.decode(frame)
        location = self.engine.locate_pattern(image)
        points = None
        if location.found:
            points = unpack_sample(location.points, self.layout).as_flat()
        return CalibrationData(self.codec.encode(location.out_image), points)

    def add_sample(self, sample) -> bool:
        """Store one located pattern. Returns False once S samples are held."""
        if not isinstance(sample, CalibrationSample):
            sample = unpack_sample(sample, self.layout)
        elif sample.pattern_points != self.layout.pattern_points:
            sample = unpack_sample(sample.as_flat(), self.layout)

        with self._samples_lock:
            if len(self._samples) >= self.layout.calibration_samples:
                return False
            self._samples.append(sample)
            count = len(self._samples)
        self.log.debug("calibration sample %d/%d stored", count, self.samples_required)
        return True

    def collect_sample(self, frame: bytes) -> Optional[CalibrationData]:
        """Locate the pattern and keep it as a sample while uncalibrated.

        A frame without the pattern contributes nothing; the caller retries
        with a new frame.
        """
        if not self._engine_ready("collect_sample"):
            return None
        if self.state.is_calibrated():
            self.log.debug("collect_sample(): camera already calibrated, call begin_recalibration() first")
            return None

        data = self.find_calibration_pattern(frame)
        if data.points is None:
            self.log.debug("collect_sample(): calibration pattern not found")
        else:
            self.add_sample(data.points)
        return data

    def _clear_samples(self) -> None:
        with self._samples_lock:
            self._samples.clear()

    def begin_recalibration(self) -> None:
        self.state.reset()
        self._clear_samples()
        self.log.info("recalibration requested, collecting %d new samples", self.samples_required)

    def calibrate_camera(
        self,
        frame: bytes,
        samples: Optional[Sequence] = None,
    ) -> Optional[CalibrationOutcome]:
        """
        Compute intrinsics from S samples and publish them.

        With samples=None the collected samples are used, and calibration is
        skipped until S of them exist. Explicit samples must number exactly S.
        Any finite reprojection error is accepted unless
        max_reprojection_error is set. A rejected calibration discards the
        collected samples so a fresh set can be gathered.
        """
        if not self._engine_ready("calibrate_camera"):
            return None

        use_collected = samples is None
        if use_collected:
            samples = self.samples
            if len(samples) < self.samples_required:
                self.log.debug(
                    "calibrate_camera(): %d/%d samples collected",
                    len(samples), self.samples_required,
                )
                return None

        flat = pack_calibration_points(samples, self.layout)
        image = self.codec.decode(frame)
        intrinsics, error = self.engine.compute_intrinsics(flat, image)
        error = float(error)
        self.log.info("calibrate_camera(): compute_intrinsics returned %s", error)

        if not math.isfinite(error):
            self.log.warning("calibrate_camera(): non-finite reprojection error, calibration rejected")
            if use_collected:
                self._clear_samples()
            return None
        if self.max_reprojection_error is not None and error > self.max_reprojection_error:
            self.log.warning(
                "calibrate_camera(): reprojection error %.4f above limit %.4f, calibration rejected",
                error, self.max_reprojection_error,
            )
            self.notifier.notify("Calibration rejected, please collect new samples", urgent=True)
            if use_collected:
                self._clear_samples()
            return None

        self.state.mark_calibrated(intrinsics, error)
        if use_collected:
            self._clear_samples()
        self.notifier.notify("Camera calibrated", urgent=False)
        return CalibrationOutcome(intrinsics, error)

    # ------------------------------------------------------------------
    # Renderer accessors
    # ------------------------------------------------------------------
    def is_camera_calibrated(self) -> bool:
        return self.engine is not None and self.state.is_calibrated()

    def focal_point_x(self) -> float:
        return self.state.focal_x if self.engine is not None else 0.0

    def focal_point_y(self) -> float:
        return self.state.focal_y if self.engine is not None else 0.0

    def camera_center_x(self) -> float:
        return self.state.center_x if self.engine is not None else 0.0

    def camera_center_y(self) -> float:
        return self.state.center_y if self.engine is not None else 0.0

    # ------------------------------------------------------------------
    # Peer discovery
    # ------------------------------------------------------------------
    def multicast_session(self):
        """Context manager holding the multicast lock, e.g. for service discovery."""
        return self.multicast.scoped()
