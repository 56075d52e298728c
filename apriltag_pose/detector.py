from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

import numpy as np

from .config import DetectorConfig
from .engine import DetectionEngine
from .errors import SessionClosedError
from .families import FamilyRegistry, TagFamily
from .logging_utils import setup_logger
from .pose import PoseSolver, build_solver
from .resolver import resolve_detections
from .types import CameraIntrinsics, ImageData, ResolverSettings, TagDetection


def _default_engine() -> DetectionEngine:
    from .wpilib import WpilibDetectionEngine

    return WpilibDetectionEngine()


def _as_intrinsics(value: Union[CameraIntrinsics, Any]) -> CameraIntrinsics:
    if isinstance(value, CameraIntrinsics):
        return value
    return CameraIntrinsics.from_matrix(value)


class DetectorSession:
    """
    One native detector plus the families registered with it.

    ``intrinsics``, ``tag_id_to_size``, ``decision_margin`` and
    ``reflect_horizontally`` may be changed between calls; each
    ``process_image`` reads them once, up front. ``quad_decimate`` and
    ``refine_edges`` are fixed when the native detector is created.

    Not thread-safe: callers sharing a session must serialise calls.
    """

    def __init__(
        self,
        intrinsics: Union[CameraIntrinsics, Any],
        tag_id_to_size: Mapping[int, float],
        families: Iterable[Union[TagFamily, str]],
        quad_decimate: float = 1.0,
        refine_edges: bool = False,
        decision_margin: float = 10.0,
        reflect_horizontally: bool = False,
        *,
        engine: Optional[DetectionEngine] = None,
        solver: Optional[PoseSolver] = None,
        logger: Optional[logging.Logger] = None,
        name: str = "detector",
    ):
        self.logger = logger or setup_logger(name)
        self.intrinsics = _as_intrinsics(intrinsics)
        self.tag_id_to_size = {int(k): float(v) for k, v in tag_id_to_size.items()}
        self.decision_margin = float(decision_margin)
        self.reflect_horizontally = bool(reflect_horizontally)
        self._quad_decimate = float(quad_decimate)
        self._refine_edges = bool(refine_edges)

        self._engine = engine if engine is not None else _default_engine()
        self._solver = solver if solver is not None else build_solver()
        self._closed = False

        self._detector = self._engine.create_detector(
            num_threads=1,
            quad_decimate=self._quad_decimate,
            refine_edges=self._refine_edges,
            debug=False,
        )
        self._families = FamilyRegistry(self._engine, self._detector, logger=self.logger)
        try:
            self._families.register(families)
        except Exception:
            self._release()
            raise

        self.logger.info(
            "detector ready families=%s quad_decimate=%.2f refine_edges=%s",
            ",".join(f.value for f in self._families.families),
            self._quad_decimate,
            self._refine_edges,
        )

    @classmethod
    def from_config(
        cls,
        config: DetectorConfig,
        *,
        engine: Optional[DetectionEngine] = None,
        solver: Optional[PoseSolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "DetectorSession":
        return cls(
            config.resolve_intrinsics(),
            config.tag_sizes,
            config.families,
            quad_decimate=config.quad_decimate,
            refine_edges=config.refine_edges,
            decision_margin=config.decision_margin,
            reflect_horizontally=config.reflect_horizontally,
            engine=engine,
            solver=solver if solver is not None else build_solver(config.pose_solver),
            logger=logger,
            name=config.session_name,
        )

    @property
    def quad_decimate(self) -> float:
        return self._quad_decimate

    @property
    def refine_edges(self) -> bool:
        return self._refine_edges

    @property
    def families(self) -> list[TagFamily]:
        return self._families.families

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> ResolverSettings:
        return ResolverSettings(
            intrinsics=_as_intrinsics(self.intrinsics),
            tag_id_to_size=dict(self.tag_id_to_size),
            decision_margin=float(self.decision_margin),
            reflect_horizontally=bool(self.reflect_horizontally),
        )

    def process_image(self, image: Union[ImageData, np.ndarray]) -> list[TagDetection]:
        if self._closed:
            raise SessionClosedError("process_image called on a closed detector session")
        if not isinstance(image, ImageData):
            image = ImageData.from_array(np.asarray(image))

        settings = self.snapshot()
        raw = self._engine.detect(self._detector, image)
        if not raw:
            self.logger.debug("image=%dx%d raw=0", image.width, image.height)
            return []

        results = resolve_detections(raw, settings, self._solver, image.width, logger=self.logger)
        self.logger.debug(
            "image=%dx%d raw=%d accepted=%d",
            image.width,
            image.height,
            len(raw),
            len(results),
        )
        return results

    def _release(self) -> None:
        # Detector first, then the families it was referencing.
        self._closed = True
        try:
            if self._detector is not None:
                self._engine.destroy_detector(self._detector)
        finally:
            self._detector = None
            self._families.release()

    def close(self) -> None:
        if self._closed:
            return
        self._release()
        self.logger.info("detector closed")

    def __enter__(self) -> "DetectorSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
