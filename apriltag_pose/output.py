from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .types import TagDetection


class OutputSink(ABC):
    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def write_detection(self, image_name: str, detection: TagDetection) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    HEADER = (
        ["image", "tag_id"]
        + [f"c{i}{axis}" for i in range(4) for axis in "xy"]
        + [f"t{r}{c}" for r in range(4) for c in range(4)]
    )

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._fh: Optional[Any] = None
        self._w: Optional[Any] = None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "w", newline="", encoding="utf-8")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)

    @staticmethod
    def to_row(image_name: str, detection: TagDetection) -> list:
        corners = np.asarray(detection.corners).reshape(-1).tolist()
        transform = np.asarray(detection.transform).reshape(-1).tolist()
        return [image_name, detection.tag_id, *corners, *transform]

    def write_detection(self, image_name: str, detection: TagDetection) -> None:
        if self._w is None:
            return
        self._w.writerow(self.to_row(image_name, detection))

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._w = None


class NullOutput(OutputSink):
    def open(self) -> None:
        return None

    def write_detection(self, image_name: str, detection: TagDetection) -> None:
        return None

    def close(self) -> None:
        return None
