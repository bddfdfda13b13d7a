"""Size optimization, repair, flattening and linearization processors."""

from __future__ import annotations

import asyncio
import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from docflow.artifact import PDF_MIME, Artifact

from .base import BaseProcessor, ProcessOutput, SinglePDFProcessor, derive_filename
from .convert import flatten_image
from .engine import load_pdf_engine, open_pdf, save_pdf

# quality -> (JPEG quality, factor applied to RuntimeConfig.max_image_dimension)
QUALITY_PRESETS: dict[str, tuple[int, float]] = {
    "low": (85, 1.0),
    "medium": (70, 1.0),
    "high": (55, 0.75),
    "maximum": (40, 0.5),
}


def recompress_image(data: bytes, quality: int, max_dimension: int) -> bytes | None:
    """
    Downscale and re-encode one image as JPEG.

    Runs in a worker thread. Returns None for images Pillow cannot decode.
    """
    from PIL import Image, UnidentifiedImageError

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError):
        return None

    img = flatten_image(img)
    if max(img.size) > max_dimension:
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


@dataclass
class CompressOptions:
    quality: str = "medium"
    remove_metadata: bool = False
    optimize_images: bool = True


class CompressPDFProcessor(BaseProcessor):
    """
    Reduce PDF size in two stages.

    1. Structural pass (10-60%): rewrite with garbage collection, stream
       deflation and content cleaning.
    2. Image pass (60-95%): recompress embedded images as JPEG in a thread
       pool, keeping a replacement only when it is smaller.

    If the result is not smaller than the input, the input bytes are returned.
    """

    kind = "compress-pdf"
    options_class = CompressOptions

    def __init__(self, config=None):
        super().__init__(config)
        self._pool: ThreadPoolExecutor | None = None

    def validate_options(self, options: CompressOptions) -> str | None:
        if options.quality not in QUALITY_PRESETS:
            return f"Unknown compression level '{options.quality}'."
        return None

    async def cleanup(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None

    async def _process(self, files: list[Artifact], options: CompressOptions) -> ProcessOutput:
        source = files[0]
        jpeg_quality, factor = QUALITY_PRESETS[options.quality]
        max_dimension = max(64, int(self.config.max_image_dimension * factor))
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.parallel_workers,
            thread_name_prefix="docflow-compress",
        )
        loop = asyncio.get_running_loop()

        structural = self.stage(10, 60)
        structural(0, "Optimizing document structure...")
        with open_pdf(source) as doc:
            if options.remove_metadata:
                doc.set_metadata({})
                doc.del_xml_metadata()
            cleaned = await loop.run_in_executor(
                self._pool,
                lambda: save_pdf(doc, garbage=4, clean=True),
            )
        structural(100, "Document structure optimized.")
        await self.checkpoint()

        optimized = 0
        with open_pdf(Artifact(cleaned, source.filename, PDF_MIME)) as doc:
            if options.optimize_images:
                optimized = await self.recompress_images(doc, jpeg_quality, max_dimension)
            await self.checkpoint()
            self.update_progress(95, "Saving compressed PDF...")
            data = save_pdf(doc, garbage=4, clean=True)
            page_count = doc.page_count

        if len(data) >= source.size:
            self.logger.debug("Compression did not shrink %s; keeping original bytes", source.filename)
            data = source.data

        filename = derive_filename(source, "_compressed")
        saved = source.size - len(data)
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {
                "originalSize": source.size,
                "compressedSize": len(data),
                "savingsPercent": round(100.0 * saved / source.size, 1) if source.size else 0.0,
                "imagesOptimized": optimized,
                "pageCount": page_count,
            },
        )

    async def recompress_images(self, doc, quality: int, max_dimension: int) -> int:
        """Recompress distinct, unmasked, 8-bit images. Returns how many were replaced."""
        report = self.stage(60, 95)
        report(0, "Optimizing images...")
        loop = asyncio.get_running_loop()

        pending = []
        seen: set[int] = set()
        for page in doc:
            for info in page.get_images(full=True):
                xref, smask = info[0], info[1]
                if xref in seen or smask:
                    continue
                seen.add(xref)
                raw = doc.extract_image(xref)
                if not raw or raw.get("bpc", 8) < 8:
                    continue
                future = loop.run_in_executor(
                    self._pool, recompress_image, raw["image"], quality, max_dimension
                )
                pending.append((page.number, xref, len(raw["image"]), future))

        replaced = 0
        total = len(pending)
        for n, (page_number, xref, original_size, future) in enumerate(pending, start=1):
            await self.checkpoint()
            result = await future
            if result is not None and len(result) < original_size:
                doc[page_number].replace_image(xref, stream=result)
                replaced += 1
            report(100.0 * n / total, f"Optimized image {n}/{total}...")

        report(100, f"Optimized {replaced} image(s).")
        return replaced


class RepairPDFProcessor(SinglePDFProcessor):
    """Rebuild a damaged PDF: PyMuPDF repairs the xref on load, then rewrite it."""

    kind = "repair-pdf"
    suffix = "_repaired"

    def save(self, doc, options: Any) -> bytes:
        return save_pdf(doc, garbage=4, clean=True)

    async def transform(self, doc, options: Any) -> dict[str, Any]:
        repaired = bool(doc.is_repaired)
        if repaired:
            self.logger.info("Rebuilt cross-reference table while loading")
        return {"wasRepaired": repaired}


@dataclass
class FlattenOptions:
    flatten_forms: bool = True
    flatten_annotations: bool = True


class FlattenPDFProcessor(SinglePDFProcessor):
    """Burn form fields and/or annotations into the page content so they can no longer be edited."""

    kind = "flatten-pdf"
    suffix = "_flattened"
    options_class = FlattenOptions

    def validate_options(self, options: FlattenOptions) -> str | None:
        if not options.flatten_forms and not options.flatten_annotations:
            return "Choose forms, annotations, or both to flatten."
        return None

    async def transform(self, doc, options: FlattenOptions) -> dict[str, Any]:
        fields = annotations = 0
        async for page in self.iter_pages(doc, start=5, end=60):
            if options.flatten_forms:
                fields += len(list(page.widgets()))
            if options.flatten_annotations:
                annotations += len(list(page.annots()))

        self.update_progress(70, "Flattening...")
        doc.bake(annots=options.flatten_annotations, widgets=options.flatten_forms)
        return {"flattenedFields": fields, "flattenedAnnotations": annotations}


def linearization_supported() -> bool:
    """Whether the loaded MuPDF can write linearized files (dropped in MuPDF 1.26)."""
    fitz = load_pdf_engine()
    major, minor = (int(part) for part in fitz.version[1].split(".")[:2])
    return (major, minor) < (1, 26)


class LinearizePDFProcessor(SinglePDFProcessor):
    """
    Rewrite a PDF for fast web view.

    Objects are deduplicated, compacted and their streams cleaned. Where
    the MuPDF build supports it the file is also linearized so viewers can
    show the first page before the download finishes.
    """

    kind = "linearize-pdf"
    suffix = "_linearized"

    def save(self, doc, options: Any) -> bytes:
        if linearization_supported():
            return save_pdf(doc, garbage=4, clean=True, linear=True)
        return save_pdf(doc, garbage=4, clean=True)

    async def transform(self, doc, options: Any) -> dict[str, Any]:
        linear = linearization_supported()
        if not linear:
            self.logger.info("MuPDF %s cannot linearize; writing a compacted file instead", load_pdf_engine().version[1])
        return {"linearized": linear}
