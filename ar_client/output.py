from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ar_pipeline.ar_types import MarkerSet
from ar_pipeline.services.csv_writer import MarkerCsvWriter


class OutputSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_markers(
        self,
        ts_unix: float,
        frame_idx: int,
        markers: MarkerSet,
        image_path: Optional[str] = None,
    ) -> int: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, filename: str = "markers.csv"):
        self.filename = filename
        self.path: Optional[Path] = None
        self._writer: Optional[MarkerCsvWriter] = None

    def open(self, session_dir: Path) -> None:
        self.path = session_dir / self.filename
        self._writer = MarkerCsvWriter(str(self.path))
        self._writer.open()

    def write_markers(
        self,
        ts_unix: float,
        frame_idx: int,
        markers: MarkerSet,
        image_path: Optional[str] = None,
    ) -> int:
        if self._writer is None:
            return 0
        return self._writer.append_set(ts_unix, frame_idx, markers, image_path)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_markers(
        self,
        ts_unix: float,
        frame_idx: int,
        markers: MarkerSet,
        image_path: Optional[str] = None,
    ) -> int:
        return 0

    def close(self) -> None:
        return None
