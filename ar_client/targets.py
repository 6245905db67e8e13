"""Printable calibration chessboards and ArUco markers.

The chessboard matches the pattern the vision engine looks for: pattern
(cols, rows) counts inner corners, so the printed board has one more square
in each direction.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import cv2
import numpy as np

from ar_pipeline.strategies.vision_engine import get_dict

from .config import parse_pattern


def render_chessboard(pattern: tuple[int, int] = (6, 9), square_px: int = 60, margin_px: int = 40) -> np.ndarray:
    """BGR chessboard with pattern[0] x pattern[1] inner corners and a white margin."""
    cols, rows = pattern[0] + 1, pattern[1] + 1
    board = np.full(
        (rows * square_px + 2 * margin_px, cols * square_px + 2 * margin_px),
        255,
        dtype=np.uint8,
    )
    for r in range(rows):
        for c in range(cols):
            if (r + c) % 2 == 0:
                y = margin_px + r * square_px
                x = margin_px + c * square_px
                board[y:y + square_px, x:x + square_px] = 0
    return cv2.cvtColor(board, cv2.COLOR_GRAY2BGR)


def render_marker(marker_id: int, dict_name: str = "5x5_50", size_px: int = 200, pad_px: int = 50) -> np.ndarray:
    """BGR ArUco marker surrounded by pad_px of white quiet zone."""
    dictionary = get_dict(dict_name)
    if hasattr(cv2.aruco, "generateImageMarker"):
        tag = cv2.aruco.generateImageMarker(dictionary, marker_id, size_px)
    else:
        tag = cv2.aruco.drawMarker(dictionary, marker_id, size_px)
    tag = cv2.copyMakeBorder(tag, pad_px, pad_px, pad_px, pad_px, cv2.BORDER_CONSTANT, value=255)
    return cv2.cvtColor(tag, cv2.COLOR_GRAY2BGR)


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Generate calibration board and marker images")
    ap.add_argument("--output-dir", default="targets")
    ap.add_argument("--pattern", default="6x9", help="Inner corners as COLSxROWS")
    ap.add_argument("--square-px", type=int, default=60)
    ap.add_argument("--marker-ids", type=int, nargs="*", default=[])
    ap.add_argument("--dict", default="5x5_50")
    ap.add_argument("--size", type=int, default=400, help="Marker size in pixels")
    return ap


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    out = Path(args.output_dir)
    out.mkdir(parents=True, exist_ok=True)

    pattern = parse_pattern(args.pattern)
    board_path = out / f"chessboard_{pattern[0]}x{pattern[1]}.png"
    cv2.imwrite(str(board_path), render_chessboard(pattern, args.square_px))
    print(f"Created {board_path}")

    for marker_id in args.marker_ids:
        path = out / f"marker_{args.dict}_{marker_id}.png"
        cv2.imwrite(str(path), render_marker(marker_id, args.dict, args.size))
        print(f"Created {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
