from __future__ import annotations

import numpy as np

from .raster import as_raster

DEFAULT_SHARPEN_AMOUNT = 0.5


def sharpen(raster: np.ndarray, amount: float = DEFAULT_SHARPEN_AMOUNT) -> np.ndarray:
    """4-neighbour Laplacian sharpen of the RGB channels.

    result = c + amount * (4c - n - s - e - w)

    Neighbours outside the raster take the centre value (edge replication),
    so border pixels get a weaker response instead of reading out of bounds.
    Reads come from the input only; the input is never modified and a new
    raster of the same shape is returned. Alpha is copied through unchanged.
    """
    src = as_raster(raster)
    rgb = src[:, :, :3].astype(np.float32)

    padded = np.pad(rgb, ((1, 1), (1, 1), (0, 0)), mode="edge")
    n = padded[:-2, 1:-1]
    s = padded[2:, 1:-1]
    w = padded[1:-1, :-2]
    e = padded[1:-1, 2:]

    laplacian = 4.0 * rgb - n - s - e - w
    out_rgb = np.clip(np.rint(rgb + float(amount) * laplacian), 0, 255).astype(np.uint8)

    out = src.copy()
    out[:, :, :3] = out_rgb
    return out
