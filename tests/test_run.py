import csv
import json
from unittest.mock import patch

import cv2
import numpy as np

from apriltag_pose.config import DetectorConfig
from apriltag_pose.detector import DetectorSession
from apriltag_pose.run import _apply_args, _build_parser, load_image, main

from fakes import FakeEngine, FakeSolver, make_raw


def _write_config(tmp_path, **extra):
    cfg = {"session_name": "cli", "tag_sizes": {"0": 0.1, "1": 0.2}, "families": ["tag36h11"]}
    cfg.update(extra)
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps(cfg))
    return str(path)


def _write_image(tmp_path, name="frame.png"):
    path = tmp_path / name
    assert cv2.imwrite(str(path), np.full((48, 64), 200, dtype=np.uint8))
    return str(path)


def _patched_session(fake_engine, fake_solver):
    def factory(cfg, **kwargs):
        return DetectorSession(
            cfg.resolve_intrinsics(),
            cfg.tag_sizes,
            cfg.families,
            decision_margin=cfg.decision_margin,
            reflect_horizontally=cfg.reflect_horizontally,
            engine=fake_engine,
            solver=fake_solver,
            logger=kwargs.get("logger"),
            name=cfg.session_name,
        )

    return patch("apriltag_pose.run.DetectorSession.from_config", side_effect=factory)


def test_cli_args_override_config():
    args = _build_parser().parse_args(
        ["a.png", "--config", "c.json", "--decision-margin", "20", "--reflect", "--pose-solver", "ippe_square"]
    )
    cfg = _apply_args(DetectorConfig(), args)
    assert cfg.decision_margin == 20.0
    assert cfg.reflect_horizontally is True
    assert cfg.refine_edges is False
    assert cfg.pose_solver == "ippe_square"


def test_load_image_handles_unreadable_path(tmp_path):
    assert load_image(str(tmp_path / "missing.png")) is None
    img = load_image(_write_image(tmp_path))
    assert (img.width, img.height) == (64, 48)


def test_main_writes_csv_for_each_detection(tmp_path):
    """The CLI should run every image through one session and write accepted tags to CSV."""
    engine = FakeEngine([make_raw(0), make_raw(1), make_raw(9)])
    csv_path = tmp_path / "out.csv"
    argv = [
        _write_image(tmp_path, "a.png"),
        _write_image(tmp_path, "b.png"),
        "--config",
        _write_config(tmp_path),
        "--csv",
        str(csv_path),
    ]
    with _patched_session(engine, FakeSolver()):
        status = main(argv)

    assert status == 0
    with csv_path.open(newline="") as fh:
        rows = list(csv.reader(fh))
    assert [(r[0], r[1]) for r in rows[1:]] == [("a.png", "0"), ("a.png", "1"), ("b.png", "0"), ("b.png", "1")]
    assert engine.live_detectors == 0
    assert engine.live_families == 0


def test_main_reports_unreadable_image(tmp_path):
    engine = FakeEngine([make_raw(0)])
    argv = [str(tmp_path / "missing.png"), _write_image(tmp_path), "--config", _write_config(tmp_path)]
    with _patched_session(engine, FakeSolver()):
        status = main(argv)

    assert status == 2
    assert engine.detect_calls == 1


def test_main_writes_log_file(tmp_path):
    log_path = tmp_path / "run.log"
    argv = [
        _write_image(tmp_path),
        "--config",
        _write_config(tmp_path, session_name="logcli"),
        "--log-file",
        str(log_path),
    ]
    with _patched_session(FakeEngine([make_raw(1)]), FakeSolver()):
        assert main(argv) == 0

    text = log_path.read_text()
    assert "[logcli]" in text
    assert "tag=1" in text
