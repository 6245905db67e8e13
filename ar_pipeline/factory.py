import logging
from typing import Optional

from .config import PipelineConfig
from .coordinator import CalibrationCoordinator
from .errors import EngineUnavailable
from .services.calibration_state import CalibrationState
from .strategies.frame_codec import FrameCodec, JpegFrameCodec, PngFrameCodec
from .strategies.multicast import MulticastScope
from .strategies.notifier import Notifier, NullNotifier
from .strategies.vision_engine import OpenCVVisionEngine, VisionEngine

logger = logging.getLogger(__name__)


def build_codec(config: PipelineConfig) -> FrameCodec:
    fmt = (config.frame_format or "jpeg").strip().lower()
    if fmt in ("jpeg", "jpg"):
        return JpegFrameCodec(config.jpeg_quality)
    if fmt == "png":
        return PngFrameCodec()
    raise ValueError(f"unsupported frame format: {config.frame_format!r}")


def build_engine(config: PipelineConfig, notifier: Optional[Notifier] = None) -> Optional[VisionEngine]:
    """OpenCV engine, or None (logged and notified) when it cannot start."""
    try:
        return OpenCVVisionEngine(
            config.layout(),
            pattern_size=config.pattern_size,
            square_size=config.square_size,
            marker_length=config.marker_length,
            dict_name=config.aruco_dict,
        )
    except EngineUnavailable as e:
        logger.error("vision engine failed to initialize: %s", e)
        if notifier is not None:
            notifier.notify("Vision engine failed to load", urgent=True)
        return None


def build_coordinator(
    config: PipelineConfig,
    notifier: Optional[Notifier] = None,
    multicast: Optional[MulticastScope] = None,
    engine: Optional[VisionEngine] = None,
    state: Optional[CalibrationState] = None,
    log: Optional[logging.Logger] = None,
) -> CalibrationCoordinator:
    notifier = notifier or NullNotifier()
    if engine is None:
        engine = build_engine(config, notifier)
    return CalibrationCoordinator(
        engine,
        build_codec(config),
        config.layout(),
        state=state,
        notifier=notifier,
        multicast=multicast,
        logger=log,
        max_reprojection_error=config.max_reprojection_error,
    )
