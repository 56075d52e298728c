"""Errors raised across the detection-to-pose pipeline boundary."""


class AprilTagPoseError(Exception):
    """Base class for errors raised by this package."""


class InvalidImageBuffer(AprilTagPoseError, ValueError):
    """Image buffer does not match its declared width/height/stride."""


class FamilyCreationFailed(AprilTagPoseError, RuntimeError):
    """A tag-family descriptor could not be created or registered."""


class PoseEstimationFailed(AprilTagPoseError, RuntimeError):
    """The pose solver could not produce two hypotheses for a detection."""


class SessionClosedError(AprilTagPoseError, RuntimeError):
    """The detector session was used after ``close()``."""
