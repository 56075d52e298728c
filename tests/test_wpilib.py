from types import SimpleNamespace
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

robotpy_apriltag = pytest.importorskip("robotpy_apriltag")

from apriltag_pose.detector import DetectorSession  # noqa: E402
from apriltag_pose.errors import FamilyCreationFailed, PoseEstimationFailed  # noqa: E402
from apriltag_pose.pose import build_solver  # noqa: E402
from apriltag_pose.types import CameraIntrinsics, DetectionInfo, ImageData  # noqa: E402
from apriltag_pose.wpilib import (  # noqa: E402
    OrthogonalIterationSolver,
    WpilibDetectionEngine,
    WpilibFamily,
    _hypothesis,
    _raw_detection,
)


def _marker_image(tag_id=0, side=200, pad=100):
    dictionary = cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_APRILTAG_36h11)
    marker = cv2.aruco.generateImageMarker(dictionary, tag_id, side)
    return cv2.copyMakeBorder(marker, pad, pad, pad, pad, cv2.BORDER_CONSTANT, value=255)


def test_create_detector_applies_config():
    engine = WpilibDetectionEngine()
    detector = engine.create_detector(num_threads=1, quad_decimate=2.0, refine_edges=False, debug=False)
    cfg = detector.getConfig()

    assert cfg.numThreads == 1
    assert cfg.quadDecimate == pytest.approx(2.0)
    assert cfg.refineEdges is False
    assert cfg.debug is False
    engine.destroy_detector(detector)


def test_add_family_rejected_by_detector():
    engine = WpilibDetectionEngine()
    detector = MagicMock()
    detector.addFamily.return_value = False

    with pytest.raises(FamilyCreationFailed):
        engine.add_family(detector, WpilibFamily("tag36h11"))
    detector.addFamily.assert_called_once_with("tag36h11", 2)


def test_family_handle_tracks_detector():
    engine = WpilibDetectionEngine(bits_corrected=1)
    detector = MagicMock()
    detector.addFamily.return_value = True
    handle = engine.create_family("tag16h5")

    engine.add_family(detector, handle)
    assert handle.detector is detector
    detector.addFamily.assert_called_once_with("tag16h5", 1)

    engine.destroy_family("tag16h5", handle)
    assert handle.detector is None


def test_raw_detection_conversion():
    det = MagicMock()
    det.getId.return_value = 7
    det.getDecisionMargin.return_value = 55.5
    det.getHamming.return_value = 1
    det.getHomography.return_value = list(range(9))
    det.getCorner.side_effect = lambda i: SimpleNamespace(x=10.0 * i, y=1.0 + i)

    raw = _raw_detection(det)
    assert raw.tag_id == 7
    assert raw.decision_margin == 55.5
    assert raw.hamming == 1
    assert raw.corners.tolist() == [[0.0, 1.0], [10.0, 2.0], [20.0, 3.0], [30.0, 4.0]]
    assert raw.homography.shape == (3, 3)


def test_hypothesis_from_transform():
    half = np.sqrt(0.5)
    quat = MagicMock()
    quat.W.return_value, quat.X.return_value = half, 0.0
    quat.Y.return_value, quat.Z.return_value = 0.0, half
    transform = MagicMock()
    transform.rotation.return_value.getQuaternion.return_value = quat
    transform.translation.return_value = SimpleNamespace(X=lambda: 1.0, Y=lambda: 2.0, Z=lambda: 3.0)

    hyp = _hypothesis(transform, 0.25)
    assert np.allclose(hyp.rotation @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
    assert hyp.translation.tolist() == [1.0, 2.0, 3.0]
    assert hyp.reprojection_error == 0.25


def test_orthogonal_iteration_needs_homography():
    info = DetectionInfo(0.1, 1.0, 1.0, 0.0, 0.0, np.zeros((4, 2)))
    with pytest.raises(PoseEstimationFailed):
        OrthogonalIterationSolver().estimate_pose(info, 50)


def test_default_solver_is_orthogonal_iteration():
    assert isinstance(build_solver(), OrthogonalIterationSolver)


def test_blank_image_has_no_detections():
    with DetectorSession(CameraIntrinsics.identity(), {0: 0.1}, ["tag36h11"]) as session:
        assert session.process_image(np.full((120, 160), 255, dtype=np.uint8)) == []


def test_rendered_tag_is_detected_with_pose():
    """A fronto-parallel 200px tag at f=500 and 0.2 m size sits 0.5 m away."""
    img = _marker_image(tag_id=3)
    h, w = img.shape
    intrinsics = CameraIntrinsics(500.0, 500.0, w / 2.0, h / 2.0)

    with DetectorSession(intrinsics, {3: 0.2}, ["tag36h11"]) as session:
        dets = session.process_image(ImageData.from_array(img))

    assert [d.tag_id for d in dets] == [3]
    corners = dets[0].corners
    assert corners[:, 0].min() == pytest.approx(100.0, abs=2.0)
    assert corners[:, 0].max() == pytest.approx(300.0, abs=2.0)
    # Camera z is negated by the output flip.
    assert dets[0].transform[2, 3] == pytest.approx(-0.5, abs=0.02)
    assert np.allclose(dets[0].transform[3], [0.0, 0.0, 0.0, 1.0])


@pytest.mark.parametrize("size", [0.0, -0.2, float("nan")])
def test_orthogonal_iteration_rejects_bad_tag_size(size):
    info = DetectionInfo(size, 500.0, 500.0, 320.0, 240.0, np.zeros((4, 2)), homography=np.eye(3))
    with pytest.raises(PoseEstimationFailed):
        OrthogonalIterationSolver().estimate_pose(info, 50)


def test_zero_size_tag_is_skipped_by_session():
    img = _marker_image(tag_id=3)
    with DetectorSession(CameraIntrinsics(500.0, 500.0, 200.0, 200.0), {3: 0.0}, ["tag36h11"]) as session:
        assert session.process_image(ImageData.from_array(img)) == []
