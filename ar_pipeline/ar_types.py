from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .transforms import invert_transform, pose_to_matrix

# Marker code written by the vision engine for an unused slot.
SENTINEL_CODE = -1

# Upper bound on simultaneously trackable markers.
MAX_MARKERS = 15


@dataclass
class Frame:
    idx: int
    ts_iso: str
    image: Any  # numpy array


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics plus distortion, OpenCV conventions."""

    fx: float
    fy: float
    cx: float
    cy: float
    distortion: tuple[float, ...] = ()

    def camera_matrix(self) -> np.ndarray:
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def dist_coeffs(self) -> np.ndarray:
        return np.array(self.distortion, dtype=np.float64).reshape(-1, 1)

    @classmethod
    def from_matrices(cls, K, dist) -> "CameraIntrinsics":
        K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        coeffs = () if dist is None else tuple(float(v) for v in np.asarray(dist).reshape(-1))
        return cls(
            fx=float(K[0, 0]),
            fy=float(K[1, 1]),
            cx=float(K[0, 2]),
            cy=float(K[1, 2]),
            distortion=coeffs,
        )


@dataclass(frozen=True)
class CalibrationSample:
    """Calibration pattern points located in a single frame, shape (P, 2)."""

    points: np.ndarray

    @property
    def pattern_points(self) -> int:
        return int(self.points.shape[0])

    @classmethod
    def from_flat(cls, values, pattern_points: int) -> "CalibrationSample":
        arr = np.asarray(values, dtype=np.float32).reshape(pattern_points, 2)
        return cls(arr.copy())

    def as_flat(self) -> np.ndarray:
        return np.asarray(self.points, dtype=np.float32).reshape(-1)


@dataclass(frozen=True)
class MarkerObservation:
    code: int
    rotation: np.ndarray  # (3, 3), row-major
    translation: np.ndarray  # (3,)

    @property
    def is_valid(self) -> bool:
        return self.code != SENTINEL_CODE

    def model_matrix(self) -> np.ndarray:
        """4x4 camera-space transform of the marker, ready for a renderer."""
        return pose_to_matrix(self.rotation, self.translation)

    def view_matrix(self) -> np.ndarray:
        """Camera pose expressed in the marker frame."""
        return invert_transform(self.model_matrix())


class MarkerSet(Sequence):
    """Fixed-capacity, slot-ordered marker results.

    Slot order is the vision engine's own assignment. A slot whose code is
    SENTINEL_CODE is unused and its pose must not be read.
    """

    def __init__(self, slots: Sequence[MarkerObservation]):
        self._slots = tuple(slots)

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def codes(self) -> tuple[int, ...]:
        return tuple(s.code for s in self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, k):
        return self._slots[k]

    def __iter__(self) -> Iterator[MarkerObservation]:
        return iter(self._slots)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MarkerSet):
            return NotImplemented
        if len(other) != len(self):
            return False
        for a, b in zip(self._slots, other._slots):
            if a.code != b.code:
                return False
            if not np.array_equal(a.rotation, b.rotation):
                return False
            if not np.array_equal(a.translation, b.translation):
                return False
        return True

    def __repr__(self) -> str:
        return f"MarkerSet(codes={list(self.codes)})"

    def is_valid(self, k: int) -> bool:
        return self._slots[k].is_valid

    def valid(self) -> list[tuple[int, MarkerObservation]]:
        return [(k, s) for k, s in enumerate(self._slots) if s.is_valid]


@dataclass
class MarkerData:
    out_frame: bytes
    markers: MarkerSet


@dataclass
class CalibrationData:
    out_frame: bytes
    points: np.ndarray | None  # (2P,) when the pattern was found


@dataclass(frozen=True)
class CalibrationOutcome:
    intrinsics: CameraIntrinsics
    reprojection_error: float


@dataclass
class RawMarkerDetection:
    """Flat buffers exactly as the vision engine fills them."""

    out_image: Any
    codes: np.ndarray  # (M,) int32
    rotations: np.ndarray  # (9M,) float32
    translations: np.ndarray  # (3M,) float32


@dataclass
class PatternLocation:
    out_image: Any
    found: bool
    points: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))  # (2P,)
