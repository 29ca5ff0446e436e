"""Block-quantized ink region detection.

The raster is reduced to a coarse occupancy grid (one cell per BxB block),
8-connected groups of content cells are labeled, and each group's bounding
box is mapped back to pixel space. Small boxes are dropped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .raster import as_raster
from .types import Box, Cluster

DEFAULT_BLOCK_SIZE = 5
DEFAULT_BACKGROUND_THRESHOLD = 240

# Orthogonal first, then diagonals.
_NEIGHBOURS = (
    (1, 0), (-1, 0), (0, 1), (0, -1),
    (1, 1), (1, -1), (-1, 1), (-1, -1),
)


@dataclass(frozen=True)
class DetectParams:
    block_size: int = DEFAULT_BLOCK_SIZE
    background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD
    min_region_size: int = 30

    def __post_init__(self) -> None:
        if int(self.block_size) < 1:
            raise ValueError(f"block_size must be >= 1, got {self.block_size}")
        if not 0 <= int(self.background_threshold) <= 256:
            raise ValueError(f"background_threshold must be in 0..256, got {self.background_threshold}")
        if int(self.min_region_size) < 0:
            raise ValueError(f"min_region_size must be >= 0, got {self.min_region_size}")

    @classmethod
    def from_cfg(cls, cfg: dict[str, Any]) -> "DetectParams":
        return cls(
            block_size=int(cfg.get("block_size", DEFAULT_BLOCK_SIZE)),
            background_threshold=int(cfg.get("background_threshold", DEFAULT_BACKGROUND_THRESHOLD)),
            min_region_size=int(cfg.get("min_region_size", 30)),
        )


@dataclass
class Detection:
    grid_shape: tuple[int, int]  # (rows, cols)
    clusters: list[Cluster] = field(default_factory=list)
    boxes: list[Box] = field(default_factory=list)
    filtered_small: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "grid_rows": self.grid_shape[0],
            "grid_cols": self.grid_shape[1],
            "clusters": len(self.clusters),
            "regions": [b.to_list() for b in self.boxes],
            "filtered_small": self.filtered_small,
        }


def ink_mask(raster: np.ndarray, background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD) -> np.ndarray:
    """Per-pixel background test: True where any of R, G, B is below the threshold."""
    rgb = as_raster(raster)[:, :, :3]
    return (rgb < int(background_threshold)).any(axis=2)


def quantize(
    raster: np.ndarray,
    block_size: int = DEFAULT_BLOCK_SIZE,
    background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD,
) -> np.ndarray:
    """Occupancy grid of shape (ceil(h/B), ceil(w/B)).

    A cell is True if any in-bounds pixel of its block fails the background
    test. Edge blocks are padded with background, so only real pixels count.
    """
    b = int(block_size)
    if b < 1:
        raise ValueError(f"block_size must be >= 1, got {block_size}")

    ink = ink_mask(raster, background_threshold)
    h, w = ink.shape
    bh = -(-h // b)
    bw = -(-w // b)

    padded = np.zeros((bh * b, bw * b), dtype=bool)
    padded[:h, :w] = ink
    return padded.reshape(bh, b, bw, b).any(axis=(1, 3))


def label_clusters(grid: np.ndarray) -> tuple[np.ndarray, list[Cluster]]:
    """8-connected component labeling of a boolean grid.

    Returns an int32 label image (0 = background, clusters numbered from 1 in
    row-major order of their first cell) and the cluster bounds. The worklist
    is allocated once at grid size: a cell is pushed only when it is first
    labeled, so it can never overflow.
    """
    grid = np.asarray(grid, dtype=bool)
    if grid.ndim != 2:
        raise ValueError(f"grid must be 2-D, got shape {grid.shape}")

    bh, bw = grid.shape
    total = bh * bw
    if total == 0:
        return np.zeros((bh, bw), dtype=np.int32), []

    cells = grid.ravel().tolist()
    labels = [0] * total
    worklist = [0] * total
    clusters: list[Cluster] = []

    for start in range(total):
        if not cells[start] or labels[start]:
            continue

        label = len(clusters) + 1
        labels[start] = label
        worklist[0] = start
        top = 1

        min_y, min_x = divmod(start, bw)
        max_x, max_y = min_x, min_y
        count = 0

        while top:
            top -= 1
            cy, cx = divmod(worklist[top], bw)
            count += 1

            if cx < min_x:
                min_x = cx
            elif cx > max_x:
                max_x = cx
            if cy < min_y:
                min_y = cy
            elif cy > max_y:
                max_y = cy

            for dx, dy in _NEIGHBOURS:
                nx = cx + dx
                ny = cy + dy
                if 0 <= nx < bw and 0 <= ny < bh:
                    n_idx = ny * bw + nx
                    if cells[n_idx] and not labels[n_idx]:
                        labels[n_idx] = label
                        worklist[top] = n_idx
                        top += 1

        clusters.append(
            Cluster(label=label, min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y, cells=count)
        )

    return np.asarray(labels, dtype=np.int32).reshape(bh, bw), clusters


def cluster_to_box(cluster: Cluster, block_size: int = DEFAULT_BLOCK_SIZE) -> Box:
    b = int(block_size)
    return Box(
        x=cluster.min_x * b,
        y=cluster.min_y * b,
        w=(cluster.max_x - cluster.min_x + 1) * b,
        h=(cluster.max_y - cluster.min_y + 1) * b,
    )


def detect(raster: np.ndarray, params: DetectParams) -> Detection:
    """Run quantize -> label -> reconstruct -> size filter, keeping diagnostics."""
    grid = quantize(raster, params.block_size, params.background_threshold)
    _, clusters = label_clusters(grid)

    out = Detection(grid_shape=(int(grid.shape[0]), int(grid.shape[1])), clusters=clusters)
    for cluster in clusters:
        box = cluster_to_box(cluster, params.block_size)
        # Size heuristic only: drops specks, sometimes text blocks. Boundary is exclusive.
        if box.w <= params.min_region_size or box.h <= params.min_region_size:
            out.filtered_small += 1
            continue
        out.boxes.append(box)
    return out


def detect_regions(
    raster: np.ndarray,
    *,
    block_size: int = DEFAULT_BLOCK_SIZE,
    background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD,
    min_region_size: int,
) -> list[Box]:
    params = DetectParams(
        block_size=block_size,
        background_threshold=background_threshold,
        min_region_size=min_region_size,
    )
    return detect(raster, params).boxes
