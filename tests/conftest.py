import logging

import pytest

from apriltag_pose.types import CameraIntrinsics


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(600.0, 610.0, 320.0, 240.0)


@pytest.fixture
def quiet_logger():
    logger = logging.getLogger("apriltag_pose.test")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger
