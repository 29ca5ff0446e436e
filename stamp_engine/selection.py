from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .job import job_paths
from .utils import load_json, utc_now_iso, write_json

_ACTION_STATUS = {"select": "selected", "reject": "rejected", "reset": "candidate"}


@dataclass
class SelectionStats:
    feedback_items: int = 0
    applied: int = 0
    skipped_unknown_crop: int = 0
    skipped_already_applied: int = 0
    skipped_invalid: int = 0


def _load_feedback_items(selection_path: str | Path) -> list[Any]:
    obj = load_json(selection_path)
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        items = obj.get("items")
        if not isinstance(items, list):
            raise ValueError("selection.json object must contain list field: items")
        return items
    raise ValueError("selection.json must be a list or an object with items")


def apply_selection(*, job_dir: str | Path, selection_path: str | Path) -> SelectionStats:
    """Apply reviewer selection to a job's result.json.

    Selection JSON format:
    [
      {"crop_id": "...", "action": "select|reject|reset"}
    ]

    Behavior:
    - select: status=selected (picked for background removal / export)
    - reject: status=rejected (never exported)
    - reset: back to candidate

    Idempotent:
    - Re-applying the same file changes nothing and counts skipped_already_applied.
    """
    paths = job_paths(job_dir)
    result = load_json(paths.result_json)
    crops = result.get("crops", []) if isinstance(result, dict) else []

    # Entries are updated in place; result.json is written back in its original order.
    crops_by_id: dict[str, list[dict[str, Any]]] = {}
    for c in crops:
        if isinstance(c, dict) and isinstance(c.get("crop_id"), str) and c["crop_id"]:
            c.setdefault("status", "candidate")
            crops_by_id.setdefault(c["crop_id"], []).append(c)

    feedback_items = _load_feedback_items(selection_path)
    stats = SelectionStats(feedback_items=len(feedback_items))

    for entry in feedback_items:
        if not isinstance(entry, dict):
            stats.skipped_invalid += 1
            continue
        crop_id = str(entry.get("crop_id") or "")
        status = _ACTION_STATUS.get(str(entry.get("action") or "").lower())
        if not crop_id or status is None:
            stats.skipped_invalid += 1
            continue

        matches = crops_by_id.get(crop_id)
        if not matches:
            stats.skipped_unknown_crop += 1
            continue

        if all(c.get("status") == status for c in matches):
            stats.skipped_already_applied += 1
            continue

        now = utc_now_iso()
        for c in matches:
            c["status"] = status
            c["updated_at"] = now
        stats.applied += 1

    result_out = dict(result) if isinstance(result, dict) else {"job": {}}
    result_out["crops"] = crops
    write_json(paths.result_json, result_out)
    return stats
