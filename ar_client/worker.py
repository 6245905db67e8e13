from __future__ import annotations

import time
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ar_pipeline.ar_types import Frame
from ar_pipeline.coordinator import CalibrationCoordinator
from ar_pipeline.errors import FrameCodecError
from ar_pipeline.factory import build_coordinator
from ar_pipeline.services.calib import load_calib, save_calib
from ar_pipeline.services.storage import SessionStorage
from ar_pipeline.strategies.notifier import LoggingNotifier

from .capture import BaseCapture, ImageFolderCapture, SyntheticCapture, USBOpenCVCapture
from .config import ClientConfig
from .logging_utils import add_file_handler, remove_handler, setup_logger
from .output import CsvOutput, OutputSink


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    csv_path: str
    log_path: str
    avg_fps: float
    errors: int
    calibrated: bool
    samples_collected: int
    reprojection_error: Optional[float]


class ARWorker:
    """
    Drives one camera through the calibration coordinator.

    While the camera is uncalibrated, every sample_interval-th frame is
    offered as a calibration sample; once enough samples are held the
    camera is calibrated from the current frame. Afterwards every frame
    goes through marker detection and the valid slots are written out.
    """

    def __init__(
        self,
        config: ClientConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        capture: Optional[BaseCapture] = None,
        coordinator: Optional[CalibrationCoordinator] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.camera_name, config.log_level)
        self.outputs = outputs if outputs is not None else [CsvOutput()]
        self.capture = capture
        self.coordinator = coordinator
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _build_capture(self) -> BaseCapture:
        if self.capture is not None:
            return self.capture
        if self.config.replay_dir:
            return ImageFolderCapture(self.config.replay_dir)
        if self.config.dry_run:
            return SyntheticCapture(self.config.fps, self.config.width, self.config.height)
        return USBOpenCVCapture(
            self.config.device,
            self.config.fps,
            self.config.width,
            self.config.height,
        )

    def _build_coordinator(self) -> CalibrationCoordinator:
        if self.coordinator is not None:
            return self.coordinator
        return build_coordinator(
            self.config.pipeline,
            notifier=LoggingNotifier(self.logger),
            log=self.logger,
        )

    def _seed_calibration(self, coordinator: CalibrationCoordinator) -> None:
        path = self.config.calibration_path
        if not path:
            return
        intrinsics, size, err = load_calib(path)
        coordinator.state.mark_calibrated(intrinsics, err)
        self.logger.info("loaded calibration %s (%dx%d)", path, size[0], size[1])

    def _calibration_step(
        self,
        coordinator: CalibrationCoordinator,
        storage: SessionStorage,
        f: Frame,
        data: bytes,
    ) -> None:
        if f.idx % max(1, self.config.sample_interval) != 0:
            return
        before = coordinator.samples_collected
        located = coordinator.collect_sample(data)
        if located is None:
            return
        if located.points is not None:
            self.logger.info(
                "frame=%d calibration sample %d/%d",
                f.idx, coordinator.samples_collected, coordinator.samples_required,
            )
            if self.config.save_annotated and coordinator.samples_collected > before:
                storage.save_annotated(f.idx, located.out_frame, "pattern", coordinator.codec.extension)

        if not coordinator.ready_to_calibrate():
            return
        outcome = coordinator.calibrate_camera(data)
        if outcome is None:
            self.logger.warning("frame=%d calibration attempt failed", f.idx)
            return
        self.logger.info(
            "frame=%d calibrated fx=%.2f fy=%.2f cx=%.2f cy=%.2f err=%.4f",
            f.idx,
            outcome.intrinsics.fx, outcome.intrinsics.fy,
            outcome.intrinsics.cx, outcome.intrinsics.cy,
            outcome.reprojection_error,
        )
        if self.config.save_calibration:
            h, w = f.image.shape[:2]
            save_calib(str(storage.calibration_path), outcome.intrinsics, (w, h), outcome.reprojection_error)
            self.logger.info("calibration saved: %s", storage.calibration_path)

    def _marker_step(
        self,
        coordinator: CalibrationCoordinator,
        storage: SessionStorage,
        f: Frame,
        data: bytes,
    ) -> int:
        result = coordinator.find_markers(data)
        if result is None:
            return 0
        found = result.markers.valid()
        img_path = storage.last_path
        if found and self.config.save_annotated:
            img_path = storage.save_annotated(f.idx, result.out_frame, "markers", coordinator.codec.extension)

        ts_unix = time.time()
        for out in self.outputs:
            out.write_markers(ts_unix, f.idx, result.markers, img_path)
        return len(found)

    def run(self) -> SessionSummary:
        storage = SessionStorage(self.config.session_root, name=f"{self.config.camera_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())

        log_file = str(Path(storage.logs_dir) / "session.log")
        file_handler = add_file_handler(self.logger, self.config.camera_name, log_file)

        coordinator = self._build_coordinator()
        self._seed_calibration(coordinator)

        for out in self.outputs:
            out.open(Path(storage.session_dir))

        cap = self._build_capture()

        self.logger.info("session started: %s", session_path)
        self.logger.info("config: %s", self.config.as_dict())
        if not coordinator.engine_available:
            self.logger.warning("vision engine unavailable, no calibration or marker tracking this session")

        t0 = time.time()
        frames = 0
        errors = 0

        try:
            cap.start()
            with coordinator.multicast_session():
                while True:
                    if self._stop_event.is_set():
                        break
                    if self.config.duration_sec and (time.time() - t0) >= self.config.duration_sec:
                        break
                    if self.config.max_frames and frames >= self.config.max_frames:
                        break

                    f = cap.next_frame()
                    if f is None:
                        if cap.exhausted:
                            self.logger.info("capture exhausted after %d frames", frames)
                            break
                        errors += 1
                        continue

                    try:
                        data = coordinator.codec.encode(f.image)
                        if self.config.save_frames:
                            storage.save_frame(f.idx, data, coordinator.codec.extension)

                        dets = 0
                        if coordinator.is_camera_calibrated():
                            dets = self._marker_step(coordinator, storage, f, data)
                        else:
                            self._calibration_step(coordinator, storage, f, data)
                    except FrameCodecError as e:
                        errors += 1
                        self.logger.warning("frame=%d skipped: %s", f.idx, e)
                        continue

                    self.logger.debug(
                        "frame=%d calibrated=%s markers=%d",
                        f.idx, coordinator.is_camera_calibrated(), dets,
                    )
                    frames += 1
        finally:
            cap.stop()
            for out in self.outputs:
                out.close()
            avg = frames / max(1e-6, (time.time() - t0))
            self.logger.info("summary frames=%d avg_fps=%.2f errors=%d", frames, avg, errors)
            remove_handler(self.logger, file_handler)

        csv_path = ""
        for out in self.outputs:
            if isinstance(out, CsvOutput) and out.path is not None:
                csv_path = str(out.path)
                break

        return SessionSummary(
            str(session_path),
            frames,
            csv_path,
            log_file,
            avg,
            errors,
            coordinator.is_camera_calibrated(),
            coordinator.samples_collected,
            coordinator.state.reprojection_error,
        )

