"""
Detection filter & pose resolver.

For each raw detection, in engine order:
  1. drop unless decision_margin > threshold
  2. drop if the tag id has no physical size
  3. optionally mirror corner x about the image width
  4. ask the solver for two pose hypotheses
  5. keep the one with the lower error (ties keep the first)
  6. convert it to the output transform
Dropped detections are not reported to the caller.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np

from .errors import PoseEstimationFailed
from .pose import POSE_MAX_ITERATIONS, PoseSolver
from .transforms import pose_to_transform
from .types import DetectionInfo, PoseHypothesis, RawDetection, ResolverSettings, TagDetection

_log = logging.getLogger(__name__)


def select_hypothesis(pose1: PoseHypothesis, pose2: PoseHypothesis) -> PoseHypothesis:
    # Inherited tie-break: equal errors keep pose1.
    if pose1.reprojection_error <= pose2.reprojection_error:
        return pose1
    return pose2


def reflect_corners(corners: np.ndarray, image_width: float) -> np.ndarray:
    """Mirror corner x-coordinates to ``image_width - x``; y is unchanged."""
    out = np.array(corners, dtype=np.float64).reshape(4, 2)
    out[:, 0] = float(image_width) - out[:, 0]
    return out


def resolve_detection(
    det: RawDetection,
    settings: ResolverSettings,
    solver: PoseSolver,
    image_width: int,
    logger: Optional[logging.Logger] = None,
) -> Optional[TagDetection]:
    log = logger or _log

    # NaN margins fail this comparison and are dropped.
    if not det.decision_margin > settings.decision_margin:
        log.debug("drop tag=%d margin=%.2f <= %.2f", det.tag_id, det.decision_margin, settings.decision_margin)
        return None

    tag_size = settings.tag_id_to_size.get(det.tag_id)
    if tag_size is None:
        log.debug("drop tag=%d no size configured", det.tag_id)
        return None

    corners = np.array(det.corners, dtype=np.float64).reshape(4, 2)
    if settings.reflect_horizontally:
        corners = reflect_corners(corners, image_width)

    intr = settings.intrinsics
    info = DetectionInfo(
        tag_size=tag_size,
        fx=intr.fx,
        fy=intr.fy,
        cx=intr.cx,
        cy=intr.cy,
        corners=corners,
        homography=det.homography,
    )
    try:
        pose1, pose2 = solver.estimate_pose(info, POSE_MAX_ITERATIONS)
    except PoseEstimationFailed as exc:
        log.warning("skip tag=%d pose estimation failed: %s", det.tag_id, exc)
        return None

    best = select_hypothesis(pose1, pose2)
    return TagDetection(
        tag_id=det.tag_id,
        transform=pose_to_transform(best.rotation, best.translation),
        corners=corners,
    )


def resolve_detections(
    detections: Iterable[RawDetection],
    settings: ResolverSettings,
    solver: PoseSolver,
    image_width: int,
    logger: Optional[logging.Logger] = None,
) -> list[TagDetection]:
    results: list[TagDetection] = []
    for det in detections:
        resolved = resolve_detection(det, settings, solver, image_width, logger)
        if resolved is not None:
            results.append(resolved)
    return results
