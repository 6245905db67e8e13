from pathlib import Path
import json

class SessionStorage:
    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.session_dir = None
        self.frames_dir = None
        self.annotated_dir = None
        self.logs_dir = None
        self.last_path = None
        self.name = name

    def begin(self) -> str:
        from time import strftime
        sid = f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        self.session_dir = self.root / sid
        self.frames_dir = self.session_dir / "frames"
        self.annotated_dir = self.session_dir / "annotated"
        self.logs_dir = self.session_dir / "logs"
        for d in (self.frames_dir, self.annotated_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    def save_frame(self, idx: int, data: bytes, ext: str = "jpg") -> str:
        """Save the encoded camera frame as received by the pipeline."""
        p = self.frames_dir / f"f{idx:06d}.{ext}"
        p.write_bytes(data)
        self.last_path = str(p)
        return self.last_path

    def save_annotated(self, idx: int, data: bytes, kind: str, ext: str = "jpg") -> str:
        """Save an engine output frame (markers or calibration pattern drawn)."""
        p = self.annotated_dir / f"f{idx:06d}_{kind}.{ext}"
        p.write_bytes(data)
        return str(p)

    @property
    def calibration_path(self) -> Path:
        return self.session_dir / "calibration.yml"

    def write_manifest(self, meta: dict):
        with open(self.session_dir / "config.json", "w") as fp:
            json.dump(meta, fp, indent=2)
