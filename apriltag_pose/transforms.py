"""SE(3) helpers and the solver-to-output coordinate conversion."""

import numpy as np
import cv2
from typing import Any


# Solver camera frame is x right, y down, z into the scene; output frame is
# x right, y up, z out of the scene.
FLIP_YZ = np.diag([1.0, -1.0, -1.0, 1.0])
FLIP_YZ.setflags(write=False)


def make_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """
    Build a 4x4 homogeneous matrix from a rotation and a translation.

    Args:
        R: Rotation matrix (3,3), used as given (not transposed)
        t: Translation vector (3,) or (3,1)

    Returns:
        4x4 matrix with columns [R[:,0], R[:,1], R[:,2], t] and bottom row [0,0,0,1]
    """
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(3)

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = t

    return T


def pose_to_transform(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """
    Convert a solver pose into the output transform.

    The solver's [R | t] is left-multiplied by the fixed ``FLIP_YZ``, so rows 1
    and 2 (y and z) change sign. Nothing here depends on intrinsics.

    Args:
        R: Rotation matrix (3,3) as returned by the pose solver
        t: Translation vector (3,) as returned by the pose solver

    Returns:
        4x4 homogeneous transform, tag frame -> output camera frame
    """
    return FLIP_YZ @ make_transform(R, t)


def rotation_from_quaternion(w: float, x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix of a unit quaternion (w, x, y, z)."""
    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z
    return np.array(
        [
            [1 - 2 * (yy + zz), 2 * (xy - wz), 2 * (xz + wy)],
            [2 * (xy + wz), 1 - 2 * (xx + zz), 2 * (yz - wx)],
            [2 * (xz - wy), 2 * (yz + wx), 1 - 2 * (xx + yy)],
        ],
        dtype=np.float64,
    )


def rvec_to_rotation(rvec: Any) -> np.ndarray:
    """Rotation matrix of an OpenCV rotation vector (3,) or (3,1)."""
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    return R
