import json

import pytest

from ar_client.config import ClientConfig, load_config, parse_pattern


def test_load_json_config_with_pipeline(tmp_path):
    path = tmp_path / "cam.json"
    path.write_text(json.dumps({
        "camera_name": "front",
        "device": "/dev/video2",
        "fps": 30,
        "max_frames": "50",
        "log_level": "debug",
        "pipeline": {"pattern": "7x5", "calibration_samples": 12, "max_reprojection_error": 0.9},
    }))

    cfg = load_config(path)

    assert cfg.camera_name == "front"
    assert cfg.device == "/dev/video2"
    assert cfg.fps == 30
    assert cfg.max_frames == 50
    assert cfg.log_level == "DEBUG"
    assert cfg.pipeline.pattern_size == (7, 5)
    assert cfg.pipeline.pattern_points == 35
    assert cfg.pipeline.calibration_samples == 12
    assert cfg.pipeline.max_reprojection_error == 0.9
    assert cfg.pipeline.layout().calibration_points_len == 12 * 35 * 2


def test_load_yaml_config(tmp_path):
    path = tmp_path / "cam.yaml"
    path.write_text("camera_name: side\nsample_interval: 0\npipeline:\n  aruco_dict: 4x4_50\n")

    cfg = load_config(path)

    assert cfg.camera_name == "side"
    assert cfg.sample_interval == 1
    assert cfg.pipeline.aruco_dict == "4x4_50"
    assert cfg.pipeline.max_reprojection_error is None


def test_load_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "list.json"
    bad.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_config(bad)

    bad_pipeline = tmp_path / "pipe.json"
    bad_pipeline.write_text(json.dumps({"pipeline": 3}))
    with pytest.raises(ValueError):
        load_config(bad_pipeline)


def test_apply_overrides_reaches_pipeline():
    cfg = ClientConfig().apply_overrides(fps=5, calibration_samples=4, marker_length=None)
    assert cfg.fps == 5
    assert cfg.pipeline.calibration_samples == 4
    assert cfg.pipeline.marker_length == 1.0


def test_as_dict_nests_pipeline():
    data = ClientConfig().as_dict()
    assert data["pipeline"]["max_markers"] == 15


@pytest.mark.parametrize("value", ["6", "axb", "1x9"])
def test_parse_pattern_rejects(value):
    with pytest.raises(ValueError):
        parse_pattern(value)


def test_parse_pattern():
    assert parse_pattern("6X9") == (6, 9)
