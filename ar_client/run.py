import argparse
import signal
import sys

from .config import ClientConfig, load_config, parse_pattern
from .worker import ARWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Calibrate a camera and track ArUco markers")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--camera-name")
    ap.add_argument("--device")
    ap.add_argument("--fps", type=int)
    ap.add_argument("--width", type=int)
    ap.add_argument("--height", type=int)
    ap.add_argument("--out")
    ap.add_argument("--duration", type=float)
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--replay", help="Folder of still images to use instead of the camera")
    ap.add_argument("--calib", help="Start from a saved calibration file")
    ap.add_argument("--no-save-calib", action="store_true")
    ap.add_argument("--save-frames", action="store_true")
    ap.add_argument("--no-save-annotated", action="store_true")

    ap.add_argument("--samples", type=int, help="Pattern samples needed to calibrate")
    ap.add_argument("--sample-interval", type=int)
    ap.add_argument("--pattern", help="Inner corners as COLSxROWS, e.g. 6x9")
    ap.add_argument("--square-size", type=float)
    ap.add_argument("--dict")
    ap.add_argument("--marker-length", type=float)
    ap.add_argument("--max-markers", type=int)
    ap.add_argument("--max-reproj-error", type=float)
    ap.add_argument("--frame-format", choices=["jpeg", "png"])
    ap.add_argument("--log-level")

    return ap


def _apply_args(cfg: ClientConfig, args: argparse.Namespace) -> ClientConfig:
    device = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)

    pattern_cols = pattern_rows = None
    if args.pattern:
        pattern_cols, pattern_rows = parse_pattern(args.pattern)

    cfg.apply_overrides(
        camera_name=args.camera_name,
        device=device,
        fps=args.fps,
        width=args.width,
        height=args.height,
        session_root=args.out,
        duration_sec=args.duration,
        max_frames=args.max_frames,
        dry_run=True if args.dry_run else None,
        replay_dir=args.replay,
        calibration_path=args.calib,
        save_calibration=False if args.no_save_calib else None,
        save_frames=True if args.save_frames else None,
        save_annotated=False if args.no_save_annotated else None,
        sample_interval=args.sample_interval,
        log_level=args.log_level.upper() if args.log_level else None,
        calibration_samples=args.samples,
        pattern_cols=pattern_cols,
        pattern_rows=pattern_rows,
        square_size=args.square_size,
        aruco_dict=args.dict,
        marker_length=args.marker_length,
        max_markers=args.max_markers,
        max_reprojection_error=args.max_reproj_error,
        frame_format=args.frame_format,
    )
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else ClientConfig()
    cfg = _apply_args(cfg, args)

    worker = ARWorker(cfg)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    summary = worker.run()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
