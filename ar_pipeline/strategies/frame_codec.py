from abc import ABC, abstractmethod

import cv2
import numpy as np

from ..errors import FrameCodecError


class FrameCodec(ABC):
    """Encoded bytes <-> in-memory image."""

    extension = "bin"

    @abstractmethod
    def decode(self, data: bytes) -> np.ndarray: ...

    @abstractmethod
    def encode(self, image: np.ndarray) -> bytes: ...


class JpegFrameCodec(FrameCodec):
    extension = "jpg"

    def __init__(self, quality: int = 100):
        if not 0 <= quality <= 100:
            raise ValueError("JPEG quality must be within [0, 100]")
        self.quality = quality

    def decode(self, data: bytes) -> np.ndarray:
        if not data:
            raise FrameCodecError("empty frame buffer")
        arr = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(arr, cv2.IMREAD_COLOR)
        if image is None:
            raise FrameCodecError(f"could not decode frame ({len(data)} bytes)")
        return image

    def encode(self, image: np.ndarray) -> bytes:
        ok, encoded = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, self.quality])
        if not ok:
            raise FrameCodecError("failed to encode frame as JPEG")
        return encoded.tobytes()


class PngFrameCodec(FrameCodec):
    """Lossless variant, useful when the annotated output must be bit exact."""

    extension = "png"

    def decode(self, data: bytes) -> np.ndarray:
        if not data:
            raise FrameCodecError("empty frame buffer")
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise FrameCodecError(f"could not decode frame ({len(data)} bytes)")
        return image

    def encode(self, image: np.ndarray) -> bytes:
        ok, encoded = cv2.imencode(".png", image)
        if not ok:
            raise FrameCodecError("failed to encode frame as PNG")
        return encoded.tobytes()
