import cv2
import numpy as np
import pytest

from ar_client.targets import render_chessboard, render_marker
from ar_pipeline.ar_types import CameraIntrinsics
from ar_pipeline.services.marshal import BufferLayout, pack_calibration_points, rotation_offset
from ar_pipeline.strategies.vision_engine import OpenCVVisionEngine, get_dict


@pytest.fixture
def engine():
    return OpenCVVisionEngine(BufferLayout(), marker_length=0.1)


def test_pattern_size_must_match_layout():
    with pytest.raises(ValueError):
        OpenCVVisionEngine(BufferLayout(pattern_points=54), pattern_size=(7, 7))


def test_get_dict_accepts_prefix_and_falls_back():
    assert get_dict("DICT_4X4_50").bytesList.shape == get_dict("4x4_50").bytesList.shape
    assert get_dict("nope").bytesList.shape == get_dict("5x5_50").bytesList.shape


def test_locate_pattern_finds_chessboard(engine):
    image = render_chessboard(square_px=30)
    location = engine.locate_pattern(image)

    assert location.found
    assert location.points.shape == (108,)
    assert location.out_image.shape == image.shape
    xs, ys = location.points[0::2], location.points[1::2]
    assert xs.min() > 40 and xs.max() < image.shape[1] - 40
    assert ys.min() > 40 and ys.max() < image.shape[0] - 40


def test_locate_pattern_not_found(engine):
    location = engine.locate_pattern(np.full((200, 200, 3), 127, dtype=np.uint8))
    assert not location.found


def test_detect_markers_fills_first_slot(engine):
    image = render_marker(7)
    intrinsics = CameraIntrinsics(600.0, 600.0, 150.0, 150.0)

    raw = engine.detect_markers(image, intrinsics)

    assert raw.codes.shape == (15,)
    assert raw.codes[0] == 7
    assert (raw.codes[1:] == -1).all()
    # 0.1 wide marker spanning 200 px at f=600
    assert raw.translations[2] == pytest.approx(0.3, rel=0.05)
    assert abs(raw.translations[0]) < 0.02
    assert abs(raw.rotations[rotation_offset(0, 2, 2)]) == pytest.approx(1.0, abs=0.05)


def test_detect_markers_empty_frame(engine):
    raw = engine.detect_markers(
        np.full((120, 160, 3), 255, dtype=np.uint8),
        CameraIntrinsics(600.0, 600.0, 80.0, 60.0),
    )
    assert (raw.codes == -1).all()
    assert raw.rotations.shape == (135,)


def test_compute_intrinsics_recovers_focal_length():
    layout = BufferLayout()
    engine = OpenCVVisionEngine(layout)
    K = np.array([[800.0, 0, 320.0], [0, 800.0, 240.0], [0, 0, 1]])
    board = np.array([[j, i, 0.0] for i in range(9) for j in range(6)], dtype=np.float64)
    rvecs = [
        [0.2, 0.0, 0.0], [-0.2, 0.0, 0.0], [0.0, 0.2, 0.0], [0.0, -0.2, 0.0],
        [0.15, 0.15, 0.1], [-0.15, 0.1, -0.1], [0.1, -0.15, 0.05], [0.25, 0.1, 0.0],
        [-0.1, -0.25, 0.0], [0.05, 0.3, -0.05],
    ]
    samples = []
    for rvec in rvecs:
        pts, _ = cv2.projectPoints(board, np.array(rvec), np.array([-2.5, -4.0, 20.0]), K, np.zeros(5))
        samples.append(pts.reshape(-1, 2))

    flat = pack_calibration_points(samples, layout)
    intrinsics, err = engine.compute_intrinsics(flat, np.zeros((480, 640, 3), dtype=np.uint8))

    assert intrinsics.fx == pytest.approx(800.0, rel=0.02)
    assert intrinsics.fy == pytest.approx(800.0, rel=0.02)
    assert intrinsics.cx == pytest.approx(320.0, abs=10.0)
    assert err < 0.5


def test_undistort_keeps_shape(engine, intrinsics):
    image = render_chessboard(square_px=30)
    out = engine.undistort(image, intrinsics)
    assert out.shape == image.shape
