"""Single-camera calibration and ArUco marker tracking client."""

from .config import ClientConfig
from .worker import ARWorker

__all__ = ["ClientConfig", "ARWorker"]
