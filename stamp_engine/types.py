from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass(frozen=True)
class Page:
    page_index: int  # 0-based
    page_id: str  # e.g. page_003
    source_ref: str  # e.g. scan.pdf#page=3
    source_kind: str  # pdf|image

    @property
    def page_number(self) -> int:
        return self.page_index + 1


@dataclass(frozen=True)
class Box:
    """Pixel-space rectangle, origin at the top-left corner."""

    x: int
    y: int
    w: int
    h: int

    def to_list(self) -> list[int]:
        return [self.x, self.y, self.w, self.h]


@dataclass(frozen=True)
class Cluster:
    """Grid-space bounds of one 8-connected group of content cells."""

    label: int
    min_x: int
    max_x: int
    min_y: int
    max_y: int
    cells: int


@dataclass(frozen=True)
class Crop:
    crop_id: str
    page: int  # 1-based
    x: int
    y: int
    width: int
    height: int
    region: Box  # unpadded detector box
    pixels: np.ndarray = field(repr=False, compare=False)
    png: bytes = field(repr=False, compare=False)

    @property
    def bbox_xywh(self) -> list[int]:
        return [self.x, self.y, self.width, self.height]

    def to_record(self) -> dict[str, Any]:
        return {
            "crop_id": self.crop_id,
            "page": self.page,
            "bbox_xywh": self.bbox_xywh,
            "region_xywh": self.region.to_list(),
            "width": self.width,
            "height": self.height,
        }
