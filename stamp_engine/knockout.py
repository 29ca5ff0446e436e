from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .detector import DEFAULT_BACKGROUND_THRESHOLD, ink_mask
from .raster import as_raster


def knockout_background(raster: np.ndarray, threshold: int = DEFAULT_BACKGROUND_THRESHOLD) -> np.ndarray:
    """Copy of ``raster`` with near-white pixels made fully transparent.

    Uses the same background test as detection: a pixel is background when
    R, G and B are all >= threshold. Ink pixels keep their alpha.
    """
    src = as_raster(raster)
    out = src.copy()
    out[~ink_mask(src, threshold), 3] = 0
    return out


@dataclass(frozen=True)
class Knockout:
    threshold: int = DEFAULT_BACKGROUND_THRESHOLD

    @classmethod
    def from_cfg(cls, cfg: dict[str, Any]) -> "Knockout | None":
        if not bool(cfg.get("enabled", False)):
            return None
        return cls(threshold=int(cfg.get("threshold", DEFAULT_BACKGROUND_THRESHOLD)))

    def __call__(self, raster: np.ndarray) -> np.ndarray:
        return knockout_background(raster, self.threshold)
