from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Iterator

import numpy as np
from PIL import Image

from .job import JobPaths
from .raster import as_raster
from .sharpen import DEFAULT_SHARPEN_AMOUNT, sharpen
from .types import Page
from .utils import ensure_dir

IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}


@dataclass(frozen=True)
class RasterizerConfig:
    pdf_scale: float = 2.0
    image_upscale: float = 2.0
    sharpen_images: bool = True
    sharpen_amount: float = DEFAULT_SHARPEN_AMOUNT

    @classmethod
    def from_cfg(cls, cfg: dict[str, Any]) -> "RasterizerConfig":
        return cls(
            pdf_scale=float(cfg.get("pdf_scale", 2.0)),
            image_upscale=float(cfg.get("image_upscale", 2.0)),
            sharpen_images=bool(cfg.get("sharpen_images", True)),
            sharpen_amount=float(cfg.get("sharpen_amount", DEFAULT_SHARPEN_AMOUNT)),
        )


def flatten_on_white(img: Image.Image) -> Image.Image:
    """Composite onto white so transparent pixels read as background."""
    rgba = img.convert("RGBA")
    white = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    return Image.alpha_composite(white, rgba)


def prepare_image_raster(img: Image.Image, cfg: RasterizerConfig) -> np.ndarray:
    """Upscale-and-sharpen pre-pass for standalone images."""
    img = flatten_on_white(img)
    if cfg.image_upscale != 1.0:
        w = max(1, int(round(img.width * cfg.image_upscale)))
        h = max(1, int(round(img.height * cfg.image_upscale)))
        img = img.resize((w, h), Image.Resampling.LANCZOS)
    raster = as_raster(img)
    if cfg.sharpen_images:
        raster = sharpen(raster, cfg.sharpen_amount)
    return raster


PageLoader = Callable[[], np.ndarray]


@dataclass(frozen=True)
class PageProvider:
    """Enumerates pages; each page comes with a loader that rasterizes it.

    Opening/decoding happens when the loader is called, so a caller can
    treat an unreadable page like any other per-page failure.
    """

    input_path: str
    input_type: str  # pdf|image|images
    config: RasterizerConfig
    paths: JobPaths | None = None

    def iter_pages(self) -> Iterator[tuple[Page, PageLoader]]:
        if self.input_type == "pdf":
            yield from self._iter_pdf_pages()
        elif self.input_type == "image":
            yield from self._iter_image_files([Path(self.input_path)])
        elif self.input_type == "images":
            folder = Path(self.input_path)
            if not folder.exists() or not folder.is_dir():
                raise ValueError(f"--type images expects a folder: {folder}")
            files = sorted([p for p in folder.iterdir() if p.suffix.lower() in IMAGE_EXTS])
            yield from self._iter_image_files(files)
        else:
            raise ValueError(f"Unknown input_type: {self.input_type}")

    def _save_page(self, page_id: str, raster: np.ndarray) -> None:
        if self.paths is None:
            return
        ensure_dir(self.paths.pages_dir)
        Image.fromarray(raster).save(self.paths.pages_dir / f"{page_id}.png", format="PNG")

    def _load_pdf_page(self, doc: Any, index: int, page_id: str) -> np.ndarray:
        import fitz  # PyMuPDF

        matrix = fitz.Matrix(self.config.pdf_scale, self.config.pdf_scale)
        pix = doc.load_page(index).get_pixmap(matrix=matrix, alpha=False)
        with Image.open(BytesIO(pix.tobytes("png"))) as img:
            raster = as_raster(img)
        self._save_page(page_id, raster)
        return raster

    def _load_image_file(self, img_path: Path, page_id: str) -> np.ndarray:
        with Image.open(img_path) as img:
            raster = prepare_image_raster(img, self.config)
        self._save_page(page_id, raster)
        return raster

    def _iter_pdf_pages(self) -> Iterator[tuple[Page, PageLoader]]:
        try:
            import fitz  # PyMuPDF
        except Exception as e:  # pragma: no cover
            raise RuntimeError("PyMuPDF is required for --type pdf. Install pymupdf.") from e

        pdf_path = Path(self.input_path)

        # The document stays open while the caller works through the pages.
        with fitz.open(pdf_path) as doc:
            for i in range(doc.page_count):
                page_num = i + 1
                page_id = f"page_{page_num:03d}"
                page = Page(
                    page_index=i,
                    page_id=page_id,
                    source_ref=f"{pdf_path.name}#page={page_num}",
                    source_kind="pdf",
                )
                yield page, partial(self._load_pdf_page, doc, i, page_id)

    def _iter_image_files(self, files: list[Path]) -> Iterator[tuple[Page, PageLoader]]:
        for i, img_path in enumerate(files):
            page_id = f"page_{i + 1:03d}"
            page = Page(page_index=i, page_id=page_id, source_ref=img_path.name, source_kind="image")
            yield page, partial(self._load_image_file, img_path, page_id)
