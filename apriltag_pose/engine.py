"""Contract of the quad-detection engine the session drives."""

from __future__ import annotations

from typing import Any, Protocol

from .types import ImageData, RawDetection


class DetectionEngine(Protocol):
    """
    Native detector and family lifecycle plus detection.

    Handles returned by ``create_detector`` / ``create_family`` are opaque to
    the caller and must be passed back to the matching ``destroy_*`` exactly
    once.
    """

    def create_detector(
        self,
        *,
        num_threads: int,
        quad_decimate: float,
        refine_edges: bool,
        debug: bool,
    ) -> Any: ...

    def destroy_detector(self, detector: Any) -> None: ...

    def create_family(self, native_name: str) -> Any: ...

    def destroy_family(self, native_name: str, handle: Any) -> None: ...

    def add_family(self, detector: Any, handle: Any) -> None: ...

    def detect(self, detector: Any, image: ImageData) -> list[RawDetection]: ...
