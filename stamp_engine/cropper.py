from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass
from typing import Any

import numpy as np

from .detector import DEFAULT_BACKGROUND_THRESHOLD, DEFAULT_BLOCK_SIZE, DetectParams, detect
from .job import JobPaths, record_error
from .raster import as_raster, encode_png, raster_size
from .types import Box, Crop, Page

DEFAULT_PAD_PX = 10


class CropIdGenerator:
    """Crop ids unique within one detection run.

    ids look like ``region-<run>-<n>``: a random run token plus a monotonic
    counter, so many crops in the same clock tick never collide.
    """

    def __init__(self, run_token: str | None = None):
        self.run_token = run_token or uuid.uuid4().hex[:8]
        self._counter = itertools.count()

    def next_id(self) -> str:
        return f"region-{self.run_token}-{next(self._counter):05d}"


@dataclass
class CropStats:
    crops_seen: int = 0
    crops_written: int = 0
    crop_failures: int = 0
    knockouts_written: int = 0


def padded_bounds(box: Box, *, width: int, height: int, pad: int = DEFAULT_PAD_PX) -> tuple[int, int, int, int]:
    """(sx, sy, sw, sh) of the padded box, clamped to the raster."""
    sx = max(0, box.x - pad)
    sy = max(0, box.y - pad)
    sw = min(width - sx, box.w + pad * 2)
    sh = min(height - sy, box.h + pad * 2)
    return sx, sy, sw, sh


def crop_region(raster: np.ndarray, box: Box, *, pad: int = DEFAULT_PAD_PX) -> tuple[tuple[int, int, int, int], np.ndarray]:
    src = as_raster(raster)
    w, h = raster_size(src)
    sx, sy, sw, sh = padded_bounds(box, width=w, height=h, pad=pad)
    pixels = src[sy : sy + sh, sx : sx + sw].copy()
    return (sx, sy, sw, sh), pixels


def detect_and_crop(
    raster: np.ndarray,
    *,
    block_size: int = DEFAULT_BLOCK_SIZE,
    background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD,
    pad: int = DEFAULT_PAD_PX,
    min_region_size: int,
    page: int = 1,
    ids: CropIdGenerator | None = None,
) -> list[Crop]:
    """Detect ink regions and materialize each one as an independent Crop.

    Pass the same ``ids`` generator for every page of a run to keep crop ids
    unique across pages. An empty list means nothing was found; malformed
    input raises RasterError.
    """
    src = as_raster(raster)
    params = DetectParams(
        block_size=block_size,
        background_threshold=background_threshold,
        min_region_size=min_region_size,
    )
    return crops_from_boxes(src, detect(src, params).boxes, pad=pad, page=page, ids=ids)


def crops_from_boxes(
    raster: np.ndarray,
    boxes: list[Box],
    *,
    pad: int = DEFAULT_PAD_PX,
    page: int = 1,
    ids: CropIdGenerator | None = None,
) -> list[Crop]:
    ids = ids or CropIdGenerator()
    out: list[Crop] = []
    for box in boxes:
        (sx, sy, sw, sh), pixels = crop_region(raster, box, pad=pad)
        out.append(
            Crop(
                crop_id=ids.next_id(),
                page=int(page),
                x=sx,
                y=sy,
                width=sw,
                height=sh,
                region=box,
                pixels=pixels,
                png=encode_png(pixels),
            )
        )
    return out


def write_crops_for_page(
    *,
    paths: JobPaths,
    page: Page,
    page_size: tuple[int, int],
    crops: list[Crop],
    knockout: Any = None,
) -> tuple[list[dict[str, Any]], CropStats]:
    """Write crop PNGs and return their result.json records.

    Side effects:
    - Writes PNGs under pages/crops/page_<n>/<crop_id>.png
    - With a knockout callable, also writes pages/knockout/page_<n>/<crop_id>.png

    Knockout PNGs are encoded before the first file is written, so an error
    there leaves nothing on disk.

    Fail-soft:
    - A crop that cannot be written is recorded to errors.jsonl and skipped.
    """
    stats = CropStats()
    records: list[dict[str, Any]] = []

    knockout_pngs: dict[str, bytes] = {}
    if knockout is not None:
        knockout_pngs = {c.crop_id: encode_png(knockout(c.pixels)) for c in crops}

    for crop in crops:
        stats.crops_seen += 1
        rel = f"pages/crops/{page.page_id}/{crop.crop_id}.png"
        try:
            abs_path = paths.job_dir / rel
            abs_path.parent.mkdir(parents=True, exist_ok=True)
            abs_path.write_bytes(crop.png)
        except OSError as e:
            stats.crop_failures += 1
            record_error(paths, page_id=page.page_id, stage="crop", message=f"{crop.crop_id}: {e}")
            continue
        stats.crops_written += 1

        knockout_rel: str | None = None
        if crop.crop_id in knockout_pngs:
            knockout_rel = f"pages/knockout/{page.page_id}/{crop.crop_id}.png"
            try:
                k_abs = paths.job_dir / knockout_rel
                k_abs.parent.mkdir(parents=True, exist_ok=True)
                k_abs.write_bytes(knockout_pngs[crop.crop_id])
                stats.knockouts_written += 1
            except OSError as e:
                record_error(paths, page_id=page.page_id, stage="knockout", message=f"{crop.crop_id}: {e}")
                knockout_rel = None

        rec = crop.to_record()
        rec.update(
            {
                "page_id": page.page_id,
                "source_ref": page.source_ref,
                "page_size": [int(page_size[0]), int(page_size[1])],
                "crop_path": rel,
                "knockout_path": knockout_rel,
            }
        )
        records.append(rec)

    return records, stats
