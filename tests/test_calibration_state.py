import math
import threading

import pytest

from ar_pipeline.ar_types import CameraIntrinsics
from ar_pipeline.services.calibration_state import CalibrationState


def test_starts_uncalibrated():
    state = CalibrationState()
    assert not state.is_calibrated()
    assert state.snapshot() is None
    assert state.focal_x == 0.0
    assert state.center_y == 0.0
    assert state.reprojection_error is None


def test_mark_calibrated_publishes_intrinsics(intrinsics):
    state = CalibrationState()
    state.mark_calibrated(intrinsics, 0.31)

    assert state.is_calibrated()
    assert state.snapshot() is intrinsics
    assert state.focal_x == 600.0
    assert state.center_x == 320.0
    assert state.reprojection_error == pytest.approx(0.31)
    assert state.calibrated_at is not None


def test_reset_returns_to_uncalibrated(intrinsics):
    state = CalibrationState()
    state.mark_calibrated(intrinsics)
    state.reset()
    assert not state.is_calibrated()
    assert state.calibrated_at is None


def test_mark_calibrated_validates_input(intrinsics):
    state = CalibrationState()
    with pytest.raises(TypeError):
        state.mark_calibrated((600.0, 600.0, 320.0, 240.0))
    with pytest.raises(ValueError):
        state.mark_calibrated(intrinsics, math.nan)
    assert not state.is_calibrated()


def test_readers_see_whole_snapshots():
    """A concurrent reader never observes fx from one calibration and fy from another."""
    state = CalibrationState()
    a = CameraIntrinsics(100.0, 100.0, 1.0, 1.0)
    b = CameraIntrinsics(200.0, 200.0, 2.0, 2.0)
    stop = threading.Event()
    torn = []

    def writer():
        while not stop.is_set():
            state.mark_calibrated(a)
            state.mark_calibrated(b)

    t = threading.Thread(target=writer)
    t.start()
    try:
        for _ in range(2000):
            snap = state.snapshot()
            if snap is not None and snap.fx != snap.fy:
                torn.append(snap)
    finally:
        stop.set()
        t.join()

    assert torn == []
