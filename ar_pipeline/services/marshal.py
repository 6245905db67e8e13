"""Flat-buffer codec between the pipeline and the vision engine.

Marker results arrive as three flat buffers sized by the maximum number of
trackable markers M:

- codes:        M integers, SENTINEL_CODE for an unused slot
- translations: 3*M floats, slot k at [3k, 3k+3)
- rotations:    9*M floats, slot k at [9k, 9k+9), row-major

Calibration samples travel the other way as a single buffer of S*P*2 floats,
sample-major, each point stored as (x, y).

All index arithmetic lives in the *_offset functions below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..ar_types import (
    MAX_MARKERS,
    SENTINEL_CODE,
    CalibrationSample,
    MarkerObservation,
    MarkerSet,
)
from ..errors import MarshalingFault

TRANSLATION_STRIDE = 3
ROTATION_STRIDE = 9
POINT_STRIDE = 2


@dataclass(frozen=True)
class BufferLayout:
    max_markers: int = MAX_MARKERS  # M
    pattern_points: int = 54  # P
    calibration_samples: int = 10  # S

    def __post_init__(self):
        for name in ("max_markers", "pattern_points", "calibration_samples"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def codes_len(self) -> int:
        return self.max_markers

    @property
    def translations_len(self) -> int:
        return self.max_markers * TRANSLATION_STRIDE

    @property
    def rotations_len(self) -> int:
        return self.max_markers * ROTATION_STRIDE

    @property
    def sample_len(self) -> int:
        return self.pattern_points * POINT_STRIDE

    @property
    def calibration_points_len(self) -> int:
        return self.calibration_samples * self.sample_len


def translation_offset(k: int) -> int:
    return TRANSLATION_STRIDE * k


def rotation_offset(k: int, row: int, col: int) -> int:
    return ROTATION_STRIDE * k + col + row * 3


def point_offset(i: int, j: int, pattern_points: int) -> int:
    """Offset of the x coordinate of point j in sample i; y follows at +1."""
    return pattern_points * POINT_STRIDE * i + POINT_STRIDE * j


def _as_flat(values, dtype, expected: int, what: str) -> np.ndarray:
    arr = np.asarray(values, dtype=dtype)
    if arr.ndim != 1:
        raise MarshalingFault(f"{what} must be a flat buffer, got shape {arr.shape}")
    if arr.shape[0] != expected:
        raise MarshalingFault(f"{what} has {arr.shape[0]} elements, expected {expected}")
    return arr


def unpack_markers(codes, translations, rotations, layout: BufferLayout) -> MarkerSet:
    """Rebuild a MarkerSet from the engine's flat buffers.

    Every slot is kept in engine order. Pose values of sentinel slots are
    copied as delivered and carry no meaning.
    """
    codes = _as_flat(codes, np.int64, layout.codes_len, "codes")
    translations = _as_flat(translations, np.float32, layout.translations_len, "translations")
    rotations = _as_flat(rotations, np.float32, layout.rotations_len, "rotations")

    if np.any(codes < SENTINEL_CODE):
        raise MarshalingFault(f"marker codes below sentinel {SENTINEL_CODE}: {codes.tolist()}")

    slots = []
    for k in range(layout.max_markers):
        t = translation_offset(k)
        translation = np.array(
            [translations[t], translations[t + 1], translations[t + 2]], dtype=np.float32
        )
        rotation = np.empty((3, 3), dtype=np.float32)
        for row in range(3):
            for col in range(3):
                rotation[row, col] = rotations[rotation_offset(k, row, col)]
        slots.append(MarkerObservation(int(codes[k]), rotation, translation))

    return MarkerSet(slots)


def pack_markers(markers: MarkerSet, layout: BufferLayout):
    """Inverse of unpack_markers: (codes, translations, rotations)."""
    if len(markers) != layout.max_markers:
        raise MarshalingFault(
            f"marker set has {len(markers)} slots, expected {layout.max_markers}"
        )

    codes = np.full(layout.codes_len, SENTINEL_CODE, dtype=np.int32)
    translations = np.zeros(layout.translations_len, dtype=np.float32)
    rotations = np.zeros(layout.rotations_len, dtype=np.float32)

    for k, obs in enumerate(markers):
        codes[k] = obs.code
        t = translation_offset(k)
        translations[t:t + TRANSLATION_STRIDE] = np.asarray(obs.translation).reshape(3)
        rotation = np.asarray(obs.rotation).reshape(3, 3)
        for row in range(3):
            for col in range(3):
                rotations[rotation_offset(k, row, col)] = rotation[row, col]

    return codes, translations, rotations


def _sample_points(sample, pattern_points: int) -> np.ndarray:
    pts = sample.points if isinstance(sample, CalibrationSample) else sample
    arr = np.asarray(pts, dtype=np.float32)
    if arr.shape not in ((pattern_points, POINT_STRIDE), (pattern_points * POINT_STRIDE,)):
        raise MarshalingFault(
            f"calibration sample has shape {arr.shape}, expected "
            f"({pattern_points}, {POINT_STRIDE}) or ({pattern_points * POINT_STRIDE},)"
        )
    return arr.reshape(pattern_points, POINT_STRIDE)


def pack_calibration_points(samples: Sequence, layout: BufferLayout) -> np.ndarray:
    """Flatten S samples of P points into the S*P*2 buffer, sample-major.

    Samples may be CalibrationSample objects, (P, 2) arrays or flat 2P
    sequences.
    """
    if len(samples) != layout.calibration_samples:
        raise MarshalingFault(
            f"got {len(samples)} calibration samples, expected {layout.calibration_samples}"
        )

    P = layout.pattern_points
    flat = np.zeros(layout.calibration_points_len, dtype=np.float32)
    for i, sample in enumerate(samples):
        pts = _sample_points(sample, P)
        for j in range(P):
            p = point_offset(i, j, P)
            flat[p] = pts[j, 0]
            flat[p + 1] = pts[j, 1]
    return flat


def unpack_calibration_points(flat, layout: BufferLayout) -> list[CalibrationSample]:
    flat = _as_flat(flat, np.float32, layout.calibration_points_len, "calibration points")
    P = layout.pattern_points
    samples = []
    for i in range(layout.calibration_samples):
        pts = np.empty((P, POINT_STRIDE), dtype=np.float32)
        for j in range(P):
            p = point_offset(i, j, P)
            pts[j, 0] = flat[p]
            pts[j, 1] = flat[p + 1]
        samples.append(CalibrationSample(pts))
    return samples


def unpack_sample(points, layout: BufferLayout) -> CalibrationSample:
    """One located pattern, 2P floats or (P, 2) points, as a CalibrationSample."""
    pts = _sample_points(points, layout.pattern_points)
    return CalibrationSample.from_flat(pts, layout.pattern_points)
