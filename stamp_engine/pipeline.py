from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Any

from .config import EngineConfig
from .cropper import CropIdGenerator, crops_from_boxes, write_crops_for_page
from .detector import DetectParams, detect
from .job import JobPaths, empty_metrics, record_error
from .knockout import Knockout
from .page_provider import PageProvider, RasterizerConfig
from .raster import raster_size
from .utils import utc_now_iso, write_json
from .writer import JobWriter


@dataclass
class RunOptions:
    input_path: str
    input_type: str  # pdf|image|images
    pdf_scale: float | None = None
    image_upscale: float | None = None
    knockout: bool | None = None


class EnginePipeline:
    def __init__(self, paths: JobPaths, cfg: EngineConfig, opts: RunOptions):
        self.paths = paths
        self.cfg = cfg
        self.opts = opts

        render_cfg = dict(cfg.render)
        if opts.pdf_scale is not None:
            render_cfg["pdf_scale"] = opts.pdf_scale
        if opts.image_upscale is not None:
            render_cfg["image_upscale"] = opts.image_upscale

        knockout_cfg = dict(cfg.knockout)
        if opts.knockout is not None:
            knockout_cfg["enabled"] = opts.knockout

        self.page_provider = PageProvider(
            input_path=opts.input_path,
            input_type=opts.input_type,
            config=RasterizerConfig.from_cfg(render_cfg),
            paths=paths,
        )
        self.detect_params = {
            kind: DetectParams.from_cfg(cfg.detect_for(kind)) for kind in ("pdf", "image")
        }
        self.pad_px = int(cfg.crop.get("pad_px", 10))
        self.knockout = Knockout.from_cfg(knockout_cfg)
        self.writer = JobWriter(paths=paths)

    def _discard_page_outputs(self, page_id: str) -> None:
        shutil.rmtree(self.paths.crops_dir / page_id, ignore_errors=True)
        shutil.rmtree(self.paths.knockout_dir / page_id, ignore_errors=True)
        (self.paths.stage_detect_dir / f"{page_id}.json").unlink(missing_ok=True)

    def run(self, job_id: str) -> dict[str, Any]:
        crops: list[dict[str, Any]] = []
        metrics = empty_metrics()
        # One generator per run: ids stay unique across pages.
        ids = CropIdGenerator()

        job_meta = {
            "job_id": job_id,
            "run_token": ids.run_token,
            "input": {"type": self.opts.input_type, "path": self.opts.input_path},
            "created_at": metrics["created_at"],
        }

        for page, load_raster in self.page_provider.iter_pages():
            metrics["pages_total"] += 1
            stage_name = "rasterize"
            try:
                raster = load_raster()

                stage_name = "page"
                params = self.detect_params[page.source_kind]
                detection = detect(raster, params)
                page_crops = crops_from_boxes(
                    raster,
                    detection.boxes,
                    pad=self.pad_px,
                    page=page.page_number,
                    ids=ids,
                )

                stage = {
                    "page_id": page.page_id,
                    "source_ref": page.source_ref,
                    "page_size": list(raster_size(raster)),
                    "params": {
                        "block_size": params.block_size,
                        "background_threshold": params.background_threshold,
                        "min_region_size": params.min_region_size,
                        "pad_px": self.pad_px,
                    },
                }
                stage.update(detection.to_dict())

                # Everything above is in memory; files are written only from here on.
                records, stats = write_crops_for_page(
                    paths=self.paths,
                    page=page,
                    page_size=raster_size(raster),
                    crops=page_crops,
                    knockout=self.knockout,
                )
                write_json(self.paths.stage_detect_dir / f"{page.page_id}.json", stage)
            except Exception as e:
                # A page is all-or-nothing; the run continues.
                self._discard_page_outputs(page.page_id)
                metrics["pages_failed"] += 1
                record_error(self.paths, page_id=page.page_id, stage=stage_name, message=f"{type(e).__name__}: {e}")
                continue

            now = utc_now_iso()
            for rec in records:
                rec["status"] = "candidate"
                rec["created_at"] = now
                rec["updated_at"] = now
            crops.extend(records)

            metrics["clusters_total"] += len(detection.clusters)
            metrics["regions_filtered_small"] += detection.filtered_small
            metrics["crops_total"] += stats.crops_seen
            metrics["crops_written"] += stats.crops_written
            metrics["crop_failures"] += stats.crop_failures
            metrics["knockouts_written"] += stats.knockouts_written
            if not detection.boxes:
                metrics["pages_empty"] += 1
            metrics["pages_processed"] += 1

        self.writer.write_final(job_meta=job_meta, crops=crops, metrics=metrics)
        return metrics
