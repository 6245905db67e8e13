import glob
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import cv2
import numpy as np

from ar_pipeline.ar_types import Frame

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp")


class BaseCapture(ABC):
    """Frame source. next_frame() returns None on a dropped read."""

    idx = 0

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @property
    def exhausted(self) -> bool:
        """True once a finite source has nothing more to give."""
        return False

    def _frame(self, image) -> Frame:
        self.idx += 1
        return Frame(self.idx, time.strftime("%Y-%m-%dT%H:%M:%S"), image)


def open_video_device(device: int | str):
    """VideoCapture for an index, a /dev/videoN path, or a URL / video file."""
    if isinstance(device, int):
        return cv2.VideoCapture(device, cv2.CAP_V4L2)
    match = re.match(r"^/dev/video(\d+)$", str(device))
    if match:
        return cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
    return cv2.VideoCapture(str(device))


class USBOpenCVCapture(BaseCapture):
    def __init__(self, device: int | str, fps: int, width: int, height: int):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.cap: Any = None

    def start(self) -> None:
        self.cap = open_video_device(self.device)
        self.cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
        for prop, value in (
            (cv2.CAP_PROP_FRAME_WIDTH, self.width),
            (cv2.CAP_PROP_FRAME_HEIGHT, self.height),
            (cv2.CAP_PROP_FPS, self.fps),
        ):
            self.cap.set(prop, value)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera: {self.device}")
        self.idx = 0

    def next_frame(self) -> Frame | None:
        ok, img = self.cap.read()
        return self._frame(img) if ok else None

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticCapture(BaseCapture):
    """
    Paced frames without a camera.

    Every frame is a copy of `scene` (a BGR image) when one is given,
    otherwise a flat mid-gray image in which nothing is ever found.
    """

    def __init__(self, fps: int, width: int, height: int, scene: Optional[np.ndarray] = None):
        self.fps = fps
        self.width = width
        self.height = height
        self.scene = scene
        self._last = 0.0

    def start(self) -> None:
        self._last = time.time()
        self.idx = 0

    def _pace(self) -> None:
        if self.fps <= 0:
            return
        wait = (1.0 / self.fps) - (time.time() - self._last)
        if wait > 0:
            time.sleep(wait)
        self._last = time.time()

    def next_frame(self) -> Frame | None:
        self._pace()
        if self.scene is not None:
            return self._frame(self.scene.copy())
        return self._frame(np.full((self.height, self.width, 3), 127, dtype=np.uint8))

    def stop(self) -> None:
        return None


class ImageFolderCapture(BaseCapture):
    """Replays still images from a directory in name order, e.g. a session's frames/."""

    def __init__(self, folder: str, loop: bool = False):
        self.folder = folder
        self.loop = loop
        self.paths: list[str] = []
        self._pos = 0

    def start(self) -> None:
        if not os.path.isdir(self.folder):
            raise RuntimeError(f"Replay folder not found: {self.folder}")
        self.paths = sorted(
            p for p in glob.glob(os.path.join(self.folder, "*"))
            if p.lower().endswith(IMAGE_EXTENSIONS)
        )
        if not self.paths:
            raise RuntimeError(f"No images in replay folder: {self.folder}")
        self._pos = 0
        self.idx = 0

    @property
    def exhausted(self) -> bool:
        return not self.loop and self._pos >= len(self.paths)

    def next_frame(self) -> Frame | None:
        if self._pos >= len(self.paths):
            if not self.loop:
                return None
            self._pos = 0
        path = self.paths[self._pos]
        self._pos += 1
        img = cv2.imread(path, cv2.IMREAD_COLOR)
        return self._frame(img) if img is not None else None

    def stop(self) -> None:
        self.paths = []
        self._pos = 0
