"""
Pose solvers: two planar pose hypotheses per detection.

A square tag seen at a non-trivial tilt has two geometrically valid poses.
Every solver returns both, each with its reprojection error; choosing one is
the resolver's job.

Object points follow the AprilTag corner order, tag frame centred on the tag
with y up:
    (-s/2, s/2, 0), (s/2, s/2, 0), (s/2, -s/2, 0), (-s/2, -s/2, 0)
"""

from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from .errors import PoseEstimationFailed
from .transforms import rvec_to_rotation
from .types import CameraIntrinsics, DetectionInfo, PoseHypothesis


POSE_MAX_ITERATIONS = 50

SOLVER_NAMES = ("orthogonal_iteration", "ippe_square")


class PoseSolver(Protocol):
    def estimate_pose(
        self, info: DetectionInfo, max_iterations: int
    ) -> tuple[PoseHypothesis, PoseHypothesis]: ...


def check_tag_size(tag_size: float) -> float:
    s = float(tag_size)
    if not np.isfinite(s) or s <= 0:
        raise PoseEstimationFailed(f"tag size must be positive, got {tag_size}")
    return s


def tag_object_points(tag_size: float) -> np.ndarray:
    h = 0.5 * check_tag_size(tag_size)
    return np.array(
        [
            [-h, h, 0.0],
            [h, h, 0.0],
            [h, -h, 0.0],
            [-h, -h, 0.0],
        ],
        dtype=np.float64,
    )


def _rms_reprojection_error(obj_pts, img_pts, rvec, tvec, K, dist) -> float:
    proj, _ = cv2.projectPoints(obj_pts, rvec, tvec, K, dist)
    err = np.asarray(proj, dtype=np.float64).reshape(-1, 2) - img_pts
    return float(np.sqrt(np.mean(np.sum(err * err, axis=1))))


class IppeSquareSolver:
    """
    OpenCV IPPE for square planar targets.

    ``solvePnPGeneric(SOLVEPNP_IPPE_SQUARE)`` yields both planar solutions;
    each is then refined with Levenberg-Marquardt capped at ``max_iterations``.
    Errors are RMS reprojection errors in pixels.
    """

    def __init__(self, epsilon: float = 1e-10):
        self.epsilon = epsilon

    def estimate_pose(
        self, info: DetectionInfo, max_iterations: int
    ) -> tuple[PoseHypothesis, PoseHypothesis]:
        obj_pts = tag_object_points(info.tag_size)
        img_pts = np.asarray(info.corners, dtype=np.float64).reshape(4, 2)
        K = CameraIntrinsics(info.fx, info.fy, info.cx, info.cy).as_matrix()
        dist = np.zeros(5, dtype=np.float64)
        criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, int(max_iterations), self.epsilon)

        try:
            count, rvecs, tvecs, _errs = cv2.solvePnPGeneric(
                obj_pts, img_pts, K, dist, flags=cv2.SOLVEPNP_IPPE_SQUARE
            )
            if not count:
                raise PoseEstimationFailed("IPPE returned no solution")

            hypotheses = []
            for rvec, tvec in zip(rvecs[:2], tvecs[:2]):
                rvec, tvec = cv2.solvePnPRefineLM(
                    obj_pts, img_pts, K, dist, rvec.copy(), tvec.copy(), criteria=criteria
                )
                hypotheses.append(
                    PoseHypothesis(
                        rotation=rvec_to_rotation(rvec),
                        translation=np.asarray(tvec, dtype=np.float64).reshape(3),
                        reprojection_error=_rms_reprojection_error(obj_pts, img_pts, rvec, tvec, K, dist),
                    )
                )
        except cv2.error as exc:
            raise PoseEstimationFailed(f"IPPE failed: {exc}") from exc

        # A single solution means both hypotheses coincide.
        if len(hypotheses) == 1:
            hypotheses.append(hypotheses[0])
        return hypotheses[0], hypotheses[1]


def build_solver(name: str = "orthogonal_iteration") -> PoseSolver:
    key = (name or "").strip().lower()
    if key == "ippe_square":
        return IppeSquareSolver()
    if key == "orthogonal_iteration":
        from .wpilib import OrthogonalIterationSolver

        return OrthogonalIterationSolver()
    raise ValueError(f"Unknown pose solver {name!r}; expected one of {', '.join(SOLVER_NAMES)}")
