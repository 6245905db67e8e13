from dataclasses import dataclass, asdict
from typing import Any, Optional

from .ar_types import MAX_MARKERS
from .services.marshal import BufferLayout


@dataclass
class PipelineConfig:
    max_markers: int = MAX_MARKERS
    pattern_cols: int = 6
    pattern_rows: int = 9
    calibration_samples: int = 10
    square_size: float = 1.0
    marker_length: float = 1.0
    aruco_dict: str = "5x5_50"
    frame_format: str = "jpeg"  # "jpeg" or "png"
    jpeg_quality: int = 100
    # None accepts any finite reprojection error.
    max_reprojection_error: Optional[float] = None

    @property
    def pattern_points(self) -> int:
        return self.pattern_cols * self.pattern_rows

    @property
    def pattern_size(self) -> tuple[int, int]:
        return (self.pattern_cols, self.pattern_rows)

    def layout(self) -> BufferLayout:
        return BufferLayout(
            max_markers=self.max_markers,
            pattern_points=self.pattern_points,
            calibration_samples=self.calibration_samples,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
