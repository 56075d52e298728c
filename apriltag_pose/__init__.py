"""AprilTag detection-to-pose pipeline."""

from .config import DetectorConfig, load_config
from .detector import DetectorSession
from .errors import (
    AprilTagPoseError,
    FamilyCreationFailed,
    InvalidImageBuffer,
    PoseEstimationFailed,
    SessionClosedError,
)
from .families import TagFamily
from .types import CameraIntrinsics, ImageData, TagDetection

__all__ = [
    "AprilTagPoseError",
    "CameraIntrinsics",
    "DetectorConfig",
    "DetectorSession",
    "FamilyCreationFailed",
    "ImageData",
    "InvalidImageBuffer",
    "PoseEstimationFailed",
    "SessionClosedError",
    "TagDetection",
    "TagFamily",
    "load_config",
]
