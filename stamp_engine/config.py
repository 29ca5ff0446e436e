from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .utils import load_json

DEFAULT_CONFIG: dict[str, Any] = {
    "render": {
        "pdf_scale": 2.0,
        "image_upscale": 2.0,
        "sharpen_images": True,
        "sharpen_amount": 0.5,
    },
    # pdf pages are rendered at lower magnification than upscaled images,
    # hence the smaller minimum region size.
    "detect": {
        "pdf": {"block_size": 5, "background_threshold": 240, "min_region_size": 30},
        "image": {"block_size": 5, "background_threshold": 240, "min_region_size": 50},
    },
    "crop": {"pad_px": 10},
    "knockout": {"enabled": False, "threshold": 240},
    "export": {"min_size": 0},
}


@dataclass(frozen=True)
class EngineConfig:
    render: dict[str, Any]
    detect: dict[str, Any]
    crop: dict[str, Any]
    knockout: dict[str, Any]
    export: dict[str, Any]

    def detect_for(self, source_kind: str) -> dict[str, Any]:
        """Detect settings for a page source kind (pdf|image)."""
        if source_kind not in ("pdf", "image"):
            raise ValueError(f"Unknown source kind: {source_kind}")
        return self.detect.get(source_kind, {})


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def config_from_dict(data: dict[str, Any]) -> EngineConfig:
    merged = _merge(DEFAULT_CONFIG, data or {})
    return EngineConfig(
        render=merged["render"],
        detect=merged["detect"],
        crop=merged["crop"],
        knockout=merged["knockout"],
        export=merged["export"],
    )


def load_config(config_path: str | Path | None) -> EngineConfig:
    """Load a JSON config; a missing path or file yields the built-in defaults."""
    if config_path is None or not Path(config_path).exists():
        return config_from_dict({})
    data = load_json(config_path)
    if not isinstance(data, dict):
        raise ValueError(f"config must be a JSON object: {config_path}")
    return config_from_dict(data)
