from __future__ import annotations

from pathlib import Path
from typing import Any

from PIL import Image

from .utils import ensure_job_relative_path, load_json

CONTRACT_FILES = ("result.json", "metrics.json", "errors.jsonl")
CROP_STATUSES = ("candidate", "selected", "rejected")
_REQUIRED_FIELDS = (
    "crop_id",
    "page",
    "page_id",
    "source_ref",
    "bbox_xywh",
    "region_xywh",
    "width",
    "height",
    "page_size",
    "crop_path",
    "status",
)


def _is_int_list(v: Any, n: int) -> bool:
    return isinstance(v, (list, tuple)) and len(v) == n and all(type(x) is int for x in v)


def _validate_image(job_dir: Path, crop: dict[str, Any], field: str, errors: list[str], *, prefix: str) -> int:
    rel = crop.get(field)
    try:
        p = ensure_job_relative_path(job_dir, str(rel), field=field)
    except ValueError as e:
        errors.append(f"{prefix}: unsafe {field}: {e}")
        return 1
    if not p.exists():
        errors.append(f"{prefix}: missing {field}: {rel}")
        return 1
    try:
        with Image.open(p) as img:
            size = img.size
    except OSError as e:
        errors.append(f"{prefix}: unreadable {field}: {rel}: {e}")
        return 1
    if size != (crop.get("width"), crop.get("height")):
        errors.append(f"{prefix}: {field} size {size[0]}x{size[1]} != {crop.get('width')}x{crop.get('height')}")
        return 1
    return 0


def _validate_crop(job_dir: Path, idx: int, crop: Any, errors: list[str]) -> int:
    if not isinstance(crop, dict):
        errors.append(f"result.json: invalid crop[{idx}]: not an object")
        return 1

    prefix = f"result.json: invalid crop[{idx}] crop_id={crop.get('crop_id')}"
    missing = [k for k in _REQUIRED_FIELDS if k not in crop]
    if missing:
        errors.append(f"{prefix}: missing fields {','.join(missing)}")
        return 1

    invalid = 0
    if crop.get("status") not in CROP_STATUSES:
        errors.append(f"{prefix}: status={crop.get('status')}")
        invalid += 1

    bbox = crop.get("bbox_xywh")
    page_size = crop.get("page_size")
    if not _is_int_list(bbox, 4) or not _is_int_list(page_size, 2) or not _is_int_list(crop.get("region_xywh"), 4):
        errors.append(f"{prefix}: bbox_xywh/region_xywh/page_size must be int lists")
        return invalid + 1

    sx, sy, sw, sh = bbox
    pw, ph = page_size
    if sx < 0 or sy < 0 or sw <= 0 or sh <= 0 or sx + sw > pw or sy + sh > ph:
        errors.append(f"{prefix}: bbox_xywh {bbox} outside page {pw}x{ph}")
        invalid += 1
    if [sw, sh] != [crop.get("width"), crop.get("height")]:
        errors.append(f"{prefix}: width/height do not match bbox_xywh")
        invalid += 1

    invalid += _validate_image(job_dir, crop, "crop_path", errors, prefix=prefix)
    if crop.get("knockout_path"):
        invalid += _validate_image(job_dir, crop, "knockout_path", errors, prefix=prefix)
    return invalid


def validate_job(job_dir: str | Path) -> list[str]:
    """Validate a job directory's output contract. Returns error messages (empty == OK)."""
    job_dir = Path(job_dir)
    errors: list[str] = []

    for f in CONTRACT_FILES:
        if not (job_dir / f).exists():
            errors.append(f"missing: {job_dir / f}")

    try:
        result = load_json(job_dir / "result.json")
    except Exception as e:
        errors.append(f"failed to read result.json: {e}")
        return errors

    crops = result.get("crops") if isinstance(result, dict) else None
    if not isinstance(crops, list):
        errors.append("result.json: crops must be a list")
        return errors

    seen: set[str] = set()
    for idx, crop in enumerate(crops):
        _validate_crop(job_dir, idx, crop, errors)
        if not isinstance(crop, dict):
            continue
        cid = crop.get("crop_id")
        if not isinstance(cid, str) or not cid:
            errors.append(f"result.json: invalid crop[{idx}]: crop_id must be a non-empty str")
        elif cid in seen:
            errors.append(f"result.json: duplicate crop_id {cid}")
        else:
            seen.add(cid)

    return errors
