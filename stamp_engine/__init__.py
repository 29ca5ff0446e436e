"""Stamp / signature region extraction engine.

Finds small islands of ink on mostly blank pages, crops them with padding and
writes them into a job directory:
- pages/crops/<page_id>/<crop_id>.png
- result.json (crop records)
- metrics.json, errors.jsonl

ML background removal and any UI are out of scope.
"""

from __future__ import annotations

from .cropper import CropIdGenerator, detect_and_crop
from .detector import detect_regions
from .raster import RasterError
from .sharpen import sharpen

__all__ = [
    "__version__",
    "CropIdGenerator",
    "RasterError",
    "detect_and_crop",
    "detect_regions",
    "sharpen",
]

__version__ = "0.1.0"
