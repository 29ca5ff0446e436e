from __future__ import annotations

import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .job import job_paths, record_error
from .utils import ensure_job_relative_path, load_json


@dataclass
class ExportStats:
    crops_seen: int = 0
    crops_exported: int = 0
    crops_skipped_unselected: int = 0
    crops_skipped_small: int = 0
    crops_skipped_missing_image: int = 0
    crops_invalid: int = 0


def export_name(crop: dict[str, Any]) -> str:
    return f"stamp_page_{int(crop.get('page') or 0)}_{crop['crop_id']}.png"


def _wanted(crop: dict[str, Any], include_all: bool) -> bool:
    status = crop.get("status") or "candidate"
    if status == "rejected":
        return False
    return include_all or status == "selected"


def export_crops(
    *,
    job_dir: str | Path,
    out_path: str | Path,
    fmt: str = "zip",
    include_all: bool = False,
    min_size: int = 0,
    prefer_knockout: bool = False,
) -> ExportStats:
    """Package crops as PNG files named stamp_page_<page>_<crop_id>.png.

    Rules:
    - By default exports only crops with status == selected
    - include_all exports every crop except rejected ones
    - Crops narrower or shorter than min_size are skipped
    - prefer_knockout uses the background-knocked-out PNG when one exists
    - Missing images => skip crop + warning to errors.jsonl
    - Raises if nothing could be exported
    """
    if fmt not in ("zip", "dir"):
        raise ValueError(f"Unknown export format: {fmt}")

    paths = job_paths(job_dir)
    out_path = Path(out_path)
    stats = ExportStats()

    result = load_json(paths.result_json)
    crops = result.get("crops", []) if isinstance(result, dict) else []

    files: list[tuple[str, Path]] = []
    for c in crops:
        stats.crops_seen += 1
        if not isinstance(c, dict) or not c.get("crop_id") or not c.get("crop_path"):
            stats.crops_invalid += 1
            continue
        if not _wanted(c, include_all):
            stats.crops_skipped_unselected += 1
            continue
        if int(c.get("width") or 0) < min_size or int(c.get("height") or 0) < min_size:
            stats.crops_skipped_small += 1
            continue

        rel = c.get("knockout_path") if prefer_knockout and c.get("knockout_path") else c["crop_path"]
        try:
            src = ensure_job_relative_path(paths.job_dir, rel, field="crop_path")
        except ValueError as e:
            stats.crops_invalid += 1
            record_error(paths, page_id=c.get("page_id"), stage="export", message=str(e))
            continue
        if not src.exists():
            stats.crops_skipped_missing_image += 1
            record_error(paths, page_id=c.get("page_id"), stage="export", message=f"missing image: {rel}")
            continue
        files.append((export_name(c), src))

    if not files:
        raise RuntimeError("no crops to export (select some crops or pass --all)")

    if fmt == "zip":
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, src in files:
                zf.write(src, arcname=name)
    else:
        out_path.mkdir(parents=True, exist_ok=True)
        for name, src in files:
            shutil.copyfile(src, out_path / name)

    stats.crops_exported = len(files)
    return stats
