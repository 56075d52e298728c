from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .calib import load_calib
from .families import TagFamily
from .pose import SOLVER_NAMES
from .types import CameraIntrinsics


@dataclass
class DetectorConfig:
    session_name: str = "detector"
    camera_matrix: Optional[list[list[float]]] = None
    calibration_path: Optional[str] = None
    tag_sizes: dict[int, float] = field(default_factory=dict)
    families: list[str] = field(default_factory=lambda: ["tag36h11"])
    quad_decimate: float = 1.0
    refine_edges: bool = False
    decision_margin: float = 10.0
    reflect_horizontally: bool = False
    pose_solver: str = "orthogonal_iteration"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "DetectorConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    def resolve_intrinsics(self) -> CameraIntrinsics:
        """Calibration file wins over an inline camera_matrix; identity if neither is set."""
        if self.calibration_path:
            return load_calib(self.calibration_path).intrinsics
        if self.camera_matrix is not None:
            return CameraIntrinsics.from_matrix(self.camera_matrix)
        return CameraIntrinsics.identity()


def _normalize_families(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError("families must be a family name or a list of family names")
    return [TagFamily.parse(v).value for v in value]


def _normalize_tag_sizes(value: Any) -> dict[int, float]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("tag_sizes must be a mapping of tag_id -> size")
    sizes = {int(k): float(v) for k, v in value.items()}
    for tag_id, size in sizes.items():
        if size <= 0:
            raise ValueError(f"tag_sizes[{tag_id}] must be positive, got {size}")
    return sizes


def _normalize_camera_matrix(value: Any) -> Optional[list[list[float]]]:
    if value is None:
        return None
    rows = [[float(v) for v in row] for row in value]
    if len(rows) != 3 or any(len(r) != 3 for r in rows):
        raise ValueError("camera_matrix must be a 3x3 list")
    return rows


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def load_config(path: str | Path) -> DetectorConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = DetectorConfig()
    cfg.session_name = str(raw.get("session_name", cfg.session_name))
    cfg.camera_matrix = _normalize_camera_matrix(raw.get("camera_matrix", cfg.camera_matrix))
    cfg.calibration_path = raw.get("calibration_path", cfg.calibration_path)
    if cfg.calibration_path is not None:
        cfg.calibration_path = str(cfg.calibration_path)
    cfg.tag_sizes = _normalize_tag_sizes(raw.get("tag_sizes", cfg.tag_sizes))
    cfg.families = _normalize_families(raw.get("families", cfg.families))
    cfg.quad_decimate = float(raw.get("quad_decimate", cfg.quad_decimate))
    cfg.refine_edges = bool(raw.get("refine_edges", cfg.refine_edges))
    cfg.decision_margin = float(raw.get("decision_margin", cfg.decision_margin))
    cfg.reflect_horizontally = bool(raw.get("reflect_horizontally", cfg.reflect_horizontally))
    cfg.pose_solver = str(raw.get("pose_solver", cfg.pose_solver)).strip().lower()
    if cfg.pose_solver not in SOLVER_NAMES:
        raise ValueError(f"pose_solver must be one of {', '.join(SOLVER_NAMES)}, got {cfg.pose_solver!r}")

    return cfg
