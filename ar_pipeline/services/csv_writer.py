import csv

import numpy as np

from ..ar_types import MarkerObservation, MarkerSet


class MarkerCsvWriter:
    # One row per valid marker slot
    HEADER = [
        "recorded_at",
        "frame_idx", "slot", "code",
        "tx", "ty", "tz",
        "r00", "r01", "r02",
        "r10", "r11", "r12",
        "r20", "r21", "r22",
        "image_path",
    ]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._opened = False
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)
        self._opened = True

    @staticmethod
    def _row(ts_unix, frame_idx, slot, obs: MarkerObservation, img_path):
        t = np.asarray(obs.translation).reshape(-1).tolist()
        r = np.asarray(obs.rotation).reshape(-1).tolist()
        return [
            f"{ts_unix:.6f}",
            frame_idx, slot, obs.code,
            *t,
            *r,
            img_path if img_path is not None else "",
        ]

    def append(self, ts_unix, frame_idx, slot, obs: MarkerObservation, img_path=None):
        self._w.writerow(self._row(ts_unix, frame_idx, slot, obs, img_path))

    def append_set(self, ts_unix, frame_idx, markers: MarkerSet, img_path=None) -> int:
        """Write every non-sentinel slot; returns the number of rows."""
        rows = 0
        for slot, obs in markers.valid():
            self.append(ts_unix, frame_idx, slot, obs, img_path)
            rows += 1
        return rows

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None
