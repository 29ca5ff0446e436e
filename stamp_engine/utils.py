from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def write_json(path: str | Path, data: Any) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def append_jsonl(path: str | Path, obj: dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def ensure_job_relative_path(job_dir: str | Path, rel_path: str | Path, *, field: str = "path") -> Path:
    """Validate that rel_path is a safe, job-relative path and return its absolute Path.

    Security rules:
    - Reject absolute/rooted/drive paths
    - Reject any '..' path segments
    - After resolving, the path must remain within job_dir
    """
    base = Path(job_dir).resolve()

    rel_str = str(rel_path or "").strip().replace("\\", "/")
    if not rel_str:
        raise ValueError(f"unsafe_{field}: empty")

    p = Path(rel_str)

    # Reject absolute paths and drive/UNC paths on Windows.
    if p.is_absolute() or p.drive:
        raise ValueError(f"unsafe_{field}: absolute_or_drive_path: {rel_str}")

    parts = [part for part in p.parts if part not in (".", "")]
    if any(part == ".." for part in parts):
        raise ValueError(f"unsafe_{field}: parent_traversal: {rel_str}")

    abs_p = (base / p).resolve()
    if abs_p != base and base not in abs_p.parents:
        raise ValueError(f"unsafe_{field}: escapes_job_dir: {rel_str}")
    return abs_p
