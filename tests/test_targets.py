from pathlib import Path

import cv2
import numpy as np

from ar_client import targets
from ar_client.targets import render_chessboard, render_marker


def test_render_chessboard_dimensions():
    board = render_chessboard((4, 3), square_px=10, margin_px=5)
    assert board.shape == (4 * 10 + 10, 5 * 10 + 10, 3)
    assert board[5, 5].tolist() == [0, 0, 0]
    assert board[0, 0].tolist() == [255, 255, 255]


def test_render_marker_has_quiet_zone():
    img = render_marker(3, size_px=100, pad_px=20)
    assert img.shape == (140, 140, 3)
    assert np.all(img[:20] == 255)
    assert img[20:120, 20:120].min() == 0


def test_main_writes_images(tmp_path: Path, capsys):
    rc = targets.main(["--output-dir", str(tmp_path), "--pattern", "4x5", "--marker-ids", "1", "2"])

    assert rc == 0
    written = sorted(p.name for p in tmp_path.iterdir())
    assert written == ["chessboard_4x5.png", "marker_5x5_50_1.png", "marker_5x5_50_2.png"]
    assert cv2.imread(str(tmp_path / "chessboard_4x5.png")) is not None
    assert "Created" in capsys.readouterr().out
