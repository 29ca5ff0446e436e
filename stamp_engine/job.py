from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json


@dataclass
class JobPaths:
    job_dir: Path
    input_dir: Path
    pages_dir: Path
    crops_dir: Path
    knockout_dir: Path
    stage_detect_dir: Path
    result_json: Path
    metrics_json: Path
    errors_jsonl: Path


def job_paths(job_dir: str | Path) -> JobPaths:
    """Resolve the standard layout of an existing (or about to be created) job dir."""
    job_dir = Path(job_dir)
    pages_dir = job_dir / "pages"
    return JobPaths(
        job_dir=job_dir,
        input_dir=job_dir / "input",
        pages_dir=pages_dir,
        crops_dir=pages_dir / "crops",
        knockout_dir=pages_dir / "knockout",
        stage_detect_dir=job_dir / "stage" / "detect",
        result_json=job_dir / "result.json",
        metrics_json=job_dir / "metrics.json",
        errors_jsonl=job_dir / "errors.jsonl",
    )


def create_job_dirs(workspace: str | Path, job_id: str) -> JobPaths:
    """Create job directories under <workspace>/jobs/<job_id>."""
    paths = job_paths(Path(workspace) / "jobs" / job_id)
    for p in [
        paths.input_dir,
        paths.pages_dir,
        paths.crops_dir,
        paths.knockout_dir,
        paths.stage_detect_dir,
    ]:
        ensure_dir(p)
    return paths


def new_job_id() -> str:
    """Job ID in timeline format: YYYY-MM-DD/HH-MM-SS__<shortid>."""
    now = datetime.now(timezone.utc)
    date_part = now.strftime("%Y-%m-%d")
    time_part = now.strftime("%H-%M-%S")
    short_id = uuid.uuid4().hex[:8]

    return f"{date_part}/{time_part}__{short_id}"


def record_error(paths: JobPaths, page_id: str | None, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"page_id": page_id, "stage": stage, "message": message})


def empty_metrics() -> dict[str, Any]:
    return {
        "created_at": utc_now_iso(),
        "finished": False,
        "completed_at": None,
        "pages_total": 0,
        "pages_processed": 0,
        "pages_failed": 0,
        "pages_empty": 0,
        "clusters_total": 0,
        "regions_filtered_small": 0,
        "crops_total": 0,
        "crops_written": 0,
        "crop_failures": 0,
        "knockouts_written": 0,
    }


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if empty.
    write_json(paths.result_json, {"job": {}, "crops": []})
    write_json(paths.metrics_json, empty_metrics())
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def snapshot_input(paths: JobPaths, input_path: str | Path, input_type: str) -> None:
    src = Path(input_path)
    if input_type in ("pdf", "image") and src.is_file():
        shutil.copy2(src, paths.input_dir / src.name)
    else:
        # For image folders: store a lightweight manifest.
        write_json(paths.input_dir / "manifest.json", {"type": input_type, "path": str(src.resolve())})
