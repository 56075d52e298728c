"""
Detection engine and pose solver backed by WPILib's AprilTag bindings.

WPILib's detector owns the family descriptors added to it: they are freed
when the detector clears its families, so ``destroy_detector`` clears them
and ``destroy_family`` only retires the Python-side handle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import robotpy_apriltag

from .errors import FamilyCreationFailed, PoseEstimationFailed
from .pose import check_tag_size
from .transforms import rotation_from_quaternion
from .types import DetectionInfo, ImageData, PoseHypothesis, RawDetection


@dataclass
class WpilibFamily:
    native_name: str
    bits_corrected: int = 2
    detector: Optional[Any] = None


class WpilibDetectionEngine:
    def __init__(self, bits_corrected: int = 2):
        self.bits_corrected = bits_corrected

    def create_detector(
        self,
        *,
        num_threads: int,
        quad_decimate: float,
        refine_edges: bool,
        debug: bool,
    ) -> robotpy_apriltag.AprilTagDetector:
        detector = robotpy_apriltag.AprilTagDetector()
        config = detector.getConfig()
        config.numThreads = int(num_threads)
        config.quadDecimate = float(quad_decimate)
        config.refineEdges = bool(refine_edges)
        config.debug = bool(debug)
        detector.setConfig(config)
        return detector

    def destroy_detector(self, detector: robotpy_apriltag.AprilTagDetector) -> None:
        detector.clearFamilies()

    def create_family(self, native_name: str) -> WpilibFamily:
        return WpilibFamily(native_name, self.bits_corrected)

    def destroy_family(self, native_name: str, handle: WpilibFamily) -> None:
        handle.detector = None

    def add_family(self, detector: robotpy_apriltag.AprilTagDetector, handle: WpilibFamily) -> None:
        if not detector.addFamily(handle.native_name, handle.bits_corrected):
            raise FamilyCreationFailed(f"detector rejected family {handle.native_name}")
        handle.detector = detector

    def detect(self, detector: robotpy_apriltag.AprilTagDetector, image: ImageData) -> list[RawDetection]:
        pixels = np.ascontiguousarray(image.as_array())
        return [_raw_detection(d) for d in detector.detect(pixels)]


def _raw_detection(det: robotpy_apriltag.AprilTagDetection) -> RawDetection:
    corners = np.array(
        [[det.getCorner(i).x, det.getCorner(i).y] for i in range(4)],
        dtype=np.float64,
    )
    return RawDetection(
        tag_id=int(det.getId()),
        decision_margin=float(det.getDecisionMargin()),
        corners=corners,
        homography=np.asarray(det.getHomography(), dtype=np.float64).reshape(3, 3),
        hamming=int(det.getHamming()),
    )


def _hypothesis(transform: Any, error: float) -> PoseHypothesis:
    q = transform.rotation().getQuaternion()
    t = transform.translation()
    return PoseHypothesis(
        rotation=rotation_from_quaternion(q.W(), q.X(), q.Y(), q.Z()),
        translation=np.array([t.X(), t.Y(), t.Z()], dtype=np.float64),
        reprojection_error=float(error),
    )


class OrthogonalIterationSolver:
    """
    AprilTag orthogonal iteration through ``AprilTagPoseEstimator``.

    Seeded from the detection homography; corners are passed explicitly so a
    reflected detection is posed from the reflected corners.
    """

    def estimate_pose(
        self, info: DetectionInfo, max_iterations: int
    ) -> tuple[PoseHypothesis, PoseHypothesis]:
        if info.homography is None:
            raise PoseEstimationFailed("orthogonal iteration needs the detection homography")

        tag_size = check_tag_size(info.tag_size)
        config = robotpy_apriltag.AprilTagPoseEstimator.Config(
            tag_size, float(info.fx), float(info.fy), float(info.cx), float(info.cy)
        )
        estimator = robotpy_apriltag.AprilTagPoseEstimator(config)
        homography = tuple(float(v) for v in np.asarray(info.homography).reshape(9))
        corners = tuple(float(v) for v in np.asarray(info.corners).reshape(8))

        estimate = estimator.estimateOrthogonalIteration(homography, corners, int(max_iterations))
        return (
            _hypothesis(estimate.pose1, estimate.error1),
            _hypothesis(estimate.pose2, estimate.error2),
        )
