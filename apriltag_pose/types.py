"""Value types flowing through the detection-to-pose pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import numpy as np

from .errors import InvalidImageBuffer


def _frozen(a: Any, shape: tuple[int, ...]) -> np.ndarray:
    out = np.array(a, dtype=np.float64).reshape(shape)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class ImageData:
    """8-bit grayscale frame borrowed from the caller.

    ``data`` is any object exposing the buffer protocol (bytes, bytearray,
    memoryview, uint8 ndarray). Rows are ``stride`` bytes apart; only the
    first ``width`` bytes of each row are pixels.
    """

    width: int
    height: int
    stride: int
    data: Any

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise InvalidImageBuffer(f"negative image size {self.width}x{self.height}")
        if self.stride < self.width:
            raise InvalidImageBuffer(f"stride {self.stride} is smaller than width {self.width}")

        size = memoryview(self.data).nbytes
        if self.stride == self.width:
            expected = self.width * self.height
            if size != expected:
                raise InvalidImageBuffer(
                    f"buffer holds {size} bytes, expected {expected} for {self.width}x{self.height}"
                )
        else:
            required = self.stride * (self.height - 1) + self.width if self.height else 0
            if size < required:
                raise InvalidImageBuffer(
                    f"buffer holds {size} bytes, need at least {required} "
                    f"for {self.width}x{self.height} with stride {self.stride}"
                )

    @classmethod
    def from_array(cls, image: np.ndarray) -> "ImageData":
        """Wrap a 2D uint8 array (e.g. ``cv2.imread(..., IMREAD_GRAYSCALE)``)."""
        if image.ndim != 2 or image.dtype != np.uint8:
            raise InvalidImageBuffer(
                f"expected a 2D uint8 image, got shape {image.shape} dtype {image.dtype}"
            )
        if image.strides[1] != 1 or image.strides[0] < image.shape[1]:
            image = np.ascontiguousarray(image)
        height, width = image.shape
        stride = image.strides[0]
        if image.flags.c_contiguous:
            return cls(width, height, stride, image.reshape(-1))

        # Row-padded view (ROI of a wider frame): expose rows plus the padding between them.
        span = stride * (height - 1) + width if height else 0
        flat = np.lib.stride_tricks.as_strided(image, shape=(span,), strides=(1,), writeable=False)
        return cls(width, height, stride, flat)

    def as_array(self) -> np.ndarray:
        """Read-only ``(height, width)`` view of the pixels."""
        flat = np.frombuffer(self.data, dtype=np.uint8)
        if self.height == 0:
            return flat[:0].reshape(0, self.width)
        rows = np.lib.stride_tricks.as_strided(
            flat,
            shape=(self.height, self.width),
            strides=(self.stride, 1),
            writeable=False,
        )
        return rows


@dataclass(frozen=True)
class CameraIntrinsics:
    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_matrix(cls, K: Any) -> "CameraIntrinsics":
        """Read focal lengths and principal point from a 3x3 camera matrix.

        Skew and the bottom row are ignored.
        """
        K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        return cls(float(K[0, 0]), float(K[1, 1]), float(K[0, 2]), float(K[1, 2]))

    @classmethod
    def identity(cls) -> "CameraIntrinsics":
        return cls(1.0, 1.0, 0.0, 0.0)

    def as_matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )


@dataclass
class RawDetection:
    """One quad reported by the detection engine, valid for a single call."""

    tag_id: int
    decision_margin: float
    corners: np.ndarray  # (4,2)
    homography: Optional[np.ndarray] = None  # (3,3)
    hamming: int = 0


@dataclass(frozen=True)
class DetectionInfo:
    """Input handed to the pose solver for one accepted detection."""

    tag_size: float
    fx: float
    fy: float
    cx: float
    cy: float
    corners: np.ndarray  # (4,2), possibly reflected
    homography: Optional[np.ndarray] = None


@dataclass(frozen=True)
class PoseHypothesis:
    rotation: np.ndarray  # (3,3)
    translation: np.ndarray  # (3,)
    reprojection_error: float


@dataclass(frozen=True, eq=False)
class TagDetection:
    tag_id: int
    transform: np.ndarray  # (4,4)
    corners: np.ndarray  # (4,2)

    def __post_init__(self) -> None:
        object.__setattr__(self, "transform", _frozen(self.transform, (4, 4)))
        object.__setattr__(self, "corners", _frozen(self.corners, (4, 2)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagDetection):
            return NotImplemented
        return (
            self.tag_id == other.tag_id
            and np.array_equal(self.transform, other.transform)
            and np.array_equal(self.corners, other.corners)
        )

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True)
class ResolverSettings:
    """Configuration read once at the start of a ``process_image`` call."""

    intrinsics: CameraIntrinsics
    tag_id_to_size: Mapping[int, float] = field(default_factory=dict)
    decision_margin: float = 10.0
    reflect_horizontally: bool = False

    def __post_init__(self) -> None:
        sizes = {int(k): float(v) for k, v in self.tag_id_to_size.items()}
        object.__setattr__(self, "tag_id_to_size", MappingProxyType(sizes))
