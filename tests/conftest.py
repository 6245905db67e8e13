import numpy as np
import pytest

from ar_pipeline.ar_types import (
    SENTINEL_CODE,
    CameraIntrinsics,
    PatternLocation,
    RawMarkerDetection,
)
from ar_pipeline.services.marshal import BufferLayout


class DummyCodec:
    """Frames are plain bytes; the decoded image is a tiny array tagged with them."""

    extension = "bin"

    def __init__(self):
        self.decoded = []
        self.encoded = []

    def decode(self, data: bytes):
        self.decoded.append(data)
        return np.zeros((4, 6, 3), dtype=np.uint8)

    def encode(self, image) -> bytes:
        self.encoded.append(image)
        return b"out"


class DummyEngine:
    """Scripted VisionEngine that records every call."""

    def __init__(self, layout: BufferLayout, error: float = 0.25):
        self.layout = layout
        self.error = error
        self.intrinsics = CameraIntrinsics(800.0, 810.0, 320.0, 240.0, (0.1, 0.0, 0.0, 0.0, 0.0))
        self.calls = []
        self.pattern_found = True
        self.marker_codes = {}

    def detect_markers(self, image, intrinsics):
        self.calls.append(("detect_markers", intrinsics))
        codes = np.full(self.layout.max_markers, SENTINEL_CODE, dtype=np.int32)
        translations = np.zeros(self.layout.translations_len, dtype=np.float32)
        rotations = np.zeros(self.layout.rotations_len, dtype=np.float32)
        for k, code in self.marker_codes.items():
            codes[k] = code
            translations[3 * k:3 * k + 3] = [k, k + 1, k + 2]
            rotations[9 * k:9 * k + 9] = np.eye(3).reshape(-1)
        return RawMarkerDetection(image, codes, rotations, translations)

    def locate_pattern(self, image):
        self.calls.append(("locate_pattern",))
        if not self.pattern_found:
            return PatternLocation(image, False)
        points = np.arange(self.layout.sample_len, dtype=np.float32)
        return PatternLocation(image, True, points)

    def compute_intrinsics(self, sample_points, reference_image):
        self.calls.append(("compute_intrinsics", np.array(sample_points)))
        return self.intrinsics, self.error

    def undistort(self, image, intrinsics):
        self.calls.append(("undistort", intrinsics))
        return image

    def called(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


@pytest.fixture
def layout():
    return BufferLayout(max_markers=15, pattern_points=4, calibration_samples=3)


@pytest.fixture
def engine(layout):
    return DummyEngine(layout)


@pytest.fixture
def codec():
    return DummyCodec()


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(600.0, 600.0, 320.0, 240.0, (0.0, 0.0, 0.0, 0.0, 0.0))
