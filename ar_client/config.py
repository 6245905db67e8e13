from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

from ar_pipeline.config import PipelineConfig


@dataclass
class ClientConfig:
    camera_name: str = "cam"
    device: int | str = 0
    fps: int = 15
    width: int = 640
    height: int = 480
    session_root: str = "data/sessions"
    duration_sec: float = 30.0
    max_frames: Optional[int] = None
    dry_run: bool = False
    # Replay still images from this folder instead of opening the device.
    replay_dir: Optional[str] = None
    # Attempt to locate the calibration pattern every N frames while uncalibrated.
    sample_interval: int = 15
    # Previously saved calibration used to start out calibrated.
    calibration_path: Optional[str] = None
    save_calibration: bool = True
    save_frames: bool = False
    save_annotated: bool = True
    log_level: str = "INFO"
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "ClientConfig":
        for key, value in kwargs.items():
            if value is None:
                continue
            if hasattr(self, key):
                setattr(self, key, value)
            elif hasattr(self.pipeline, key):
                setattr(self.pipeline, key, value)
        return self


def parse_pattern(value: str) -> tuple[int, int]:
    """'6x9' -> (6, 9): inner corners per row, rows."""
    try:
        cols, rows = (int(v) for v in str(value).lower().split("x"))
    except ValueError as exc:
        raise ValueError(f"pattern must look like COLSxROWS, got {value!r}") from exc
    if cols < 2 or rows < 2:
        raise ValueError(f"pattern needs at least 2x2 inner corners, got {value!r}")
    return cols, rows


def _load_yaml(path: Path) -> dict[str, Any]:
    import yaml

    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _load_pipeline(raw: dict[str, Any]) -> PipelineConfig:
    pc = PipelineConfig()
    pc.max_markers = int(raw.get("max_markers", pc.max_markers))
    if "pattern" in raw:
        pc.pattern_cols, pc.pattern_rows = parse_pattern(raw["pattern"])
    pc.pattern_cols = int(raw.get("pattern_cols", pc.pattern_cols))
    pc.pattern_rows = int(raw.get("pattern_rows", pc.pattern_rows))
    pc.calibration_samples = int(raw.get("calibration_samples", pc.calibration_samples))
    pc.square_size = float(raw.get("square_size", pc.square_size))
    pc.marker_length = float(raw.get("marker_length", pc.marker_length))
    pc.aruco_dict = str(raw.get("aruco_dict", pc.aruco_dict))
    pc.frame_format = str(raw.get("frame_format", pc.frame_format))
    pc.jpeg_quality = int(raw.get("jpeg_quality", pc.jpeg_quality))
    max_err = raw.get("max_reprojection_error", pc.max_reprojection_error)
    pc.max_reprojection_error = None if max_err is None else float(max_err)
    return pc


def load_config(path: str | Path) -> ClientConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = ClientConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.device = raw.get("device", cfg.device)
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.duration_sec = float(raw.get("duration_sec", cfg.duration_sec))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.replay_dir = raw.get("replay_dir", cfg.replay_dir)
    cfg.sample_interval = max(1, int(raw.get("sample_interval", cfg.sample_interval)))
    cfg.calibration_path = raw.get("calibration_path", cfg.calibration_path)
    cfg.save_calibration = bool(raw.get("save_calibration", cfg.save_calibration))
    cfg.save_frames = bool(raw.get("save_frames", cfg.save_frames))
    cfg.save_annotated = bool(raw.get("save_annotated", cfg.save_annotated))
    cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()

    pipeline_raw = raw.get("pipeline")
    if pipeline_raw is not None:
        if not isinstance(pipeline_raw, dict):
            raise ValueError("pipeline must be a mapping")
        cfg.pipeline = _load_pipeline(pipeline_raw)

    return cfg
