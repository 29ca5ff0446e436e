"""RGBA raster helpers.

A raster is a ``uint8`` array of shape ``(height, width, 4)``. Everything in
the detection core speaks this one layout; Pillow is only used at the edges
(loading pages, encoding crops).
"""
from __future__ import annotations

from io import BytesIO
from typing import Any

import numpy as np
from PIL import Image


class RasterError(ValueError):
    """Raised when an input cannot be processed as a raster."""


def as_raster(obj: Any) -> np.ndarray:
    """Normalize a Pillow image or an RGB/RGBA array into an RGBA uint8 raster.

    RGB input gets an opaque alpha channel. Arrays are not copied when they
    are already in the right layout.
    """
    if isinstance(obj, Image.Image):
        if obj.width == 0 or obj.height == 0:
            raise RasterError(f"empty image: {obj.width}x{obj.height}")
        return np.asarray(obj.convert("RGBA"), dtype=np.uint8)

    if not isinstance(obj, np.ndarray):
        raise RasterError(f"unsupported raster type: {type(obj).__name__}")
    if obj.dtype != np.uint8:
        raise RasterError(f"raster dtype must be uint8, got {obj.dtype}")
    if obj.ndim != 3 or obj.shape[2] not in (3, 4):
        raise RasterError(f"raster shape must be (h, w, 3|4), got {obj.shape}")
    if obj.shape[0] == 0 or obj.shape[1] == 0:
        raise RasterError(f"empty raster: {obj.shape[1]}x{obj.shape[0]}")

    if obj.shape[2] == 3:
        alpha = np.full(obj.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([obj, alpha], axis=2)
    return obj


def raster_size(raster: np.ndarray) -> tuple[int, int]:
    """(width, height), Pillow order."""
    return int(raster.shape[1]), int(raster.shape[0])


def to_image(raster: np.ndarray) -> Image.Image:
    return Image.fromarray(as_raster(raster))


def encode_png(raster: np.ndarray) -> bytes:
    buf = BytesIO()
    to_image(raster).save(buf, format="PNG")
    return buf.getvalue()


def decode_png(data: bytes) -> np.ndarray:
    with Image.open(BytesIO(data)) as img:
        return as_raster(img)
