"""OpenCV calibration files (YAML/XML written by ``cv2.FileStorage``)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from .types import CameraIntrinsics


@dataclass(frozen=True)
class Calibration:
    camera_matrix: np.ndarray  # (3,3)
    dist_coeffs: Optional[np.ndarray]
    image_size: Optional[tuple[int, int]]  # (width, height)

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return CameraIntrinsics.from_matrix(self.camera_matrix)


def _read_size(fs: cv2.FileStorage) -> Optional[tuple[int, int]]:
    w_node, h_node = fs.getNode("image_width"), fs.getNode("image_height")
    if w_node.empty() or h_node.empty():
        return None
    return int(w_node.real()), int(h_node.real())


def load_calib(path: str | Path) -> Calibration:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Calibration not found: {p}")

    fs = cv2.FileStorage(str(p), cv2.FILE_STORAGE_READ)
    try:
        K = fs.getNode("camera_matrix").mat()
        dist = fs.getNode("dist_coeffs").mat()
        size = _read_size(fs)
    finally:
        fs.release()

    if K is None or np.asarray(K).size != 9:
        raise ValueError(f"camera_matrix missing or not 3x3 in {p}")
    return Calibration(np.asarray(K, dtype=np.float64).reshape(3, 3), dist, size)
