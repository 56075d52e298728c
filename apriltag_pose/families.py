from __future__ import annotations

import enum
import logging
from typing import Any, Iterable, Union

from .engine import DetectionEngine
from .errors import FamilyCreationFailed


class TagFamily(enum.Enum):
    TAG16H5 = "tag16h5"
    TAG25H9 = "tag25h9"
    TAG36H10 = "tag36h10"
    TAG36H11 = "tag36h11"
    TAG_CIRCLE21H7 = "tagCircle21h7"
    TAG_CIRCLE49H12 = "tagCircle49h12"
    TAG_CUSTOM48H12 = "tagCustom48h12"
    TAG_STANDARD41H12 = "tagStandard41h12"
    TAG_STANDARD52H13 = "tagStandard52h13"

    @classmethod
    def parse(cls, value: Union["TagFamily", str]) -> "TagFamily":
        """
        Resolve a family from its native name.
        Accepts "tag36h11", "36h11", "TAG36H11" and enum members.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key and not key.startswith("tag"):
            key = f"tag{key}"
        for family, native_name in FAMILY_TABLE.items():
            if native_name.lower() == key or family.name.lower() == key:
                return family
        raise ValueError(f"Unknown tag family: {value!r}")


# Variant -> native family name understood by the detection engine.
FAMILY_TABLE: dict[TagFamily, str] = {family: family.value for family in TagFamily}


FamilyEntry = tuple[TagFamily, Any]


class FamilyRegistry:
    """
    Owns the native family descriptors registered with one detector.

    Every requested variant gets its own descriptor, duplicates included.
    ``release()`` destroys each descriptor exactly once.
    """

    def __init__(self, engine: DetectionEngine, detector: Any, logger: logging.Logger | None = None):
        self._engine = engine
        self._detector = detector
        self._entries: list[FamilyEntry] = []
        self.logger = logger or logging.getLogger(__name__)

    @property
    def families(self) -> list[TagFamily]:
        return [family for family, _handle in self._entries]

    @property
    def open_handles(self) -> int:
        return len(self._entries)

    def register(self, families: Iterable[Union[TagFamily, str]]) -> None:
        for requested in families:
            family = TagFamily.parse(requested)
            native_name = FAMILY_TABLE[family]
            try:
                handle = self._engine.create_family(native_name)
            except FamilyCreationFailed:
                raise
            except Exception as exc:
                raise FamilyCreationFailed(f"failed to create family {native_name}: {exc}") from exc
            if handle is None:
                raise FamilyCreationFailed(f"engine returned no descriptor for {native_name}")

            # Recorded before registration so a failed add still gets released.
            self._entries.append((family, handle))
            try:
                self._engine.add_family(self._detector, handle)
            except FamilyCreationFailed:
                raise
            except Exception as exc:
                raise FamilyCreationFailed(f"failed to register family {native_name}: {exc}") from exc
            self.logger.debug("registered family %s", native_name)

    def release(self) -> None:
        entries, self._entries = self._entries, []
        for family, handle in entries:
            try:
                self._engine.destroy_family(FAMILY_TABLE[family], handle)
            except Exception as exc:
                self.logger.warning("failed to destroy family %s: %s", FAMILY_TABLE[family], exc)
        if entries:
            self.logger.debug("released %d family descriptor(s)", len(entries))
