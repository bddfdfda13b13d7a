"""
Format conversion processors.

To PDF: images, plain text, JSON, Word (python-docx), PowerPoint (python-pptx),
and the formats MuPDF opens natively (XPS, EPUB, FB2, MOBI).
From PDF: page images, SVG, greyscale or inverted PDF, JSON text dump,
embedded images, file attachments, ZIP.
"""

from __future__ import annotations

import io
import json
import zipfile
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from docflow.artifact import MIME_TYPES, PDF_MIME, ZIP_MIME, Artifact, extension_of
from docflow.progress import scale_progress

from .base import BaseProcessor, ProcessOutput, derive_filename
from .engine import load_pdf_engine, new_pdf, open_pdf, paper_size, save_pdf
from .errors import ErrorCode, ProcessorError
from .pages import selected_indices

JSON_MIME = MIME_TYPES[".json"]
DOCX_MIME = MIME_TYPES[".docx"]
PPTX_MIME = MIME_TYPES[".pptx"]
TEXT_MIMES = (MIME_TYPES[".txt"], MIME_TYPES[".md"], MIME_TYPES[".csv"])
SVG_MIME = MIME_TYPES[".svg"]
RASTER_MIMES = ("image/png", "image/jpeg", "image/gif", "image/webp", "image/bmp", "image/tiff")

PAGE_SIZES = ("A4", "A3", "A5", "LETTER", "LEGAL")
ORIENTATIONS = ("auto", "portrait", "landscape")
FONT_FAMILIES = {"courier": "cour", "helvetica": "helv", "times": "tiro"}

# format -> (PIL format name, extension, MIME type)
IMAGE_FORMATS: dict[str, tuple[str, str, str]] = {
    "png": ("PNG", ".png", "image/png"),
    "jpeg": ("JPEG", ".jpg", "image/jpeg"),
    "webp": ("WEBP", ".webp", "image/webp"),
    "bmp": ("BMP", ".bmp", "image/bmp"),
    "tiff": ("TIFF", ".tiff", "image/tiff"),
}

PAGE_BREAK = "\f"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def flatten_image(img):
    """Return an RGB or L copy of a PIL image, compositing transparency onto white."""
    from PIL import Image

    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.getchannel("A"))
        return background
    if img.mode not in ("RGB", "L"):
        return img.convert("RGB")
    return img


def encode_image(img, fmt: str, quality: int = 92) -> bytes:
    """Encode a PIL image into one of IMAGE_FORMATS."""
    pil_format = IMAGE_FORMATS[fmt][0]
    if pil_format in ("JPEG", "BMP"):
        img = flatten_image(img)
    buf = io.BytesIO()
    if pil_format in ("JPEG", "WEBP"):
        img.save(buf, format=pil_format, quality=quality)
    else:
        img.save(buf, format=pil_format)
    return buf.getvalue()


def pixmap_to_image(pix):
    """Convert a PyMuPDF pixmap (no alpha) into a PIL image."""
    from PIL import Image

    mode = "L" if pix.n == 1 else "RGB"
    return Image.frombytes(mode, (pix.width, pix.height), pix.samples)


def wrap_text(text: str, max_width: float, fontname: str, fontsize: float) -> list[str]:
    """
    Break a line of text into lines no wider than max_width points.

    Words longer than the line are split mid-word.
    """
    fitz = load_pdf_engine()

    def fits(s: str) -> bool:
        return fitz.get_text_length(s, fontname=fontname, fontsize=fontsize) <= max_width

    if not text:
        return [""]

    lines: list[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if fits(candidate):
            current = candidate
            continue
        if current:
            lines.append(current)
        while word and not fits(word):
            cut = len(word) - 1
            while cut > 1 and not fits(word[:cut]):
                cut -= 1
            lines.append(word[:cut])
            word = word[cut:]
        current = word
    lines.append(current)
    return lines


def _file_error(source: Artifact, kind_label: str, error: Exception) -> ProcessorError:
    return ProcessorError.of(
        ErrorCode.FILE_TYPE_INVALID,
        f"'{source.filename or 'input'}' is not a valid {kind_label} file.",
        str(error) or type(error).__name__,
    )


def unique_name(name: str, used: set[str]) -> str:
    """`name`, or `name` with a _2, _3... counter before the extension if already used."""
    stem, dot, ext = name.rpartition(".")
    candidate, counter = name, 2
    while candidate in used:
        candidate = f"{stem}_{counter}.{ext}" if dot else f"{name}_{counter}"
        counter += 1
    used.add(candidate)
    return candidate


def zip_artifacts(artifacts: list[Artifact]) -> tuple[bytes, list[str]]:
    """Pack artifacts into a ZIP. Returns the archive and its entry names."""
    used: set[str] = set()
    entries = []
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for n, artifact in enumerate(artifacts, start=1):
            entry = unique_name(artifact.filename or f"file_{n}", used)
            zf.writestr(entry, artifact.data)
            entries.append(entry)
    return buf.getvalue(), entries


# -----------------------------------------------------------------------------
# Images -> PDF
# -----------------------------------------------------------------------------


@dataclass
class ImageToPDFOptions:
    page_size: str = "A4"
    orientation: str = "auto"
    margin: float = 36
    center_image: bool = True
    scale_to_fit: bool = True


class ImageToPDFProcessor(BaseProcessor):
    """
    One page per image (per frame for multi-frame TIFF/GIF).

    page_size "FIT" sizes each page to its image plus the margin.
    """

    kind = "image-to-pdf"
    accepted_types = RASTER_MIMES
    options_class = ImageToPDFOptions
    max_files = None

    def validate_options(self, options: ImageToPDFOptions) -> str | None:
        if options.page_size not in PAGE_SIZES + ("FIT",):
            return f"Unknown page size '{options.page_size}'."
        if options.orientation not in ORIENTATIONS:
            return f"Unknown orientation '{options.orientation}'."
        if not 0 <= options.margin <= 144:
            return "Margin must be between 0 and 144 points."
        return None

    def load_frames(self, source: Artifact) -> list[tuple[Any, bytes | None]]:
        """Decode an image into (frame, original JPEG bytes or None) pairs."""
        from PIL import Image, ImageSequence, UnidentifiedImageError

        try:
            img = Image.open(source.cursor())
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise _file_error(source, "image", e) from e

        frames = [frame.copy() for frame in ImageSequence.Iterator(img)]
        if img.format == "JPEG" and len(frames) == 1 and img.mode in ("RGB", "L"):
            return [(frames[0], source.data)]
        return [(frame, None) for frame in frames]

    def page_rect(self, width_pt: float, height_pt: float, options: ImageToPDFOptions):
        fitz = load_pdf_engine()
        if options.page_size == "FIT":
            return fitz.Rect(0, 0, width_pt + 2 * options.margin, height_pt + 2 * options.margin)
        page_w, page_h = paper_size(options.page_size)
        landscape = options.orientation == "landscape" or (
            options.orientation == "auto" and width_pt > height_pt
        )
        if landscape:
            page_w, page_h = page_h, page_w
        return fitz.Rect(0, 0, page_w, page_h)

    def image_rect(self, page_rect, width_pt: float, height_pt: float, options: ImageToPDFOptions):
        fitz = load_pdf_engine()
        area = page_rect + (options.margin, options.margin, -options.margin, -options.margin)
        scale = 1.0
        if options.scale_to_fit or width_pt > area.width or height_pt > area.height:
            scale = min(area.width / width_pt, area.height / height_pt)
            if not options.scale_to_fit:
                scale = min(scale, 1.0)
        w, h = width_pt * scale, height_pt * scale
        if options.center_image:
            x0 = area.x0 + (area.width - w) / 2
            y0 = area.y0 + (area.height - h) / 2
        else:
            x0, y0 = area.x0, area.y0
        return fitz.Rect(x0, y0, x0 + w, y0 + h)

    async def _process(self, files: list[Artifact], options: ImageToPDFOptions) -> ProcessOutput:
        doc = new_pdf()
        try:
            async for source in self.iter_items(files, start=5, end=90, message="Adding image"):
                for frame, original in self.load_frames(source):
                    # 96 dpi pixels -> points
                    width_pt, height_pt = frame.width * 0.75, frame.height * 0.75
                    rect = self.page_rect(width_pt, height_pt, options)
                    page = doc.new_page(width=rect.width, height=rect.height)
                    stream = original if original is not None else encode_image(flatten_image(frame), "png")
                    page.insert_image(self.image_rect(rect, width_pt, height_pt, options), stream=stream)

            self.update_progress(92, "Saving PDF...")
            data = save_pdf(doc)
            page_count = doc.page_count
        finally:
            doc.close()

        filename = derive_filename(files[0], "" if len(files) == 1 else "_combined")
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {"imageCount": len(files), "pageCount": page_count},
        )


# -----------------------------------------------------------------------------
# Text-like documents -> PDF
# -----------------------------------------------------------------------------


@dataclass
class TextLayoutOptions:
    font_size: float = 12
    font_family: str = "courier"
    page_size: str = "A4"
    margin: float = 50


@dataclass
class JsonToPDFOptions(TextLayoutOptions):
    font_size: float = 10


@dataclass
class DocumentToPDFOptions(TextLayoutOptions):
    font_size: float = 11
    font_family: str = "helvetica"


class TextLayoutProcessor(BaseProcessor):
    """Base for converters that turn a document into lines of text on PDF pages."""

    options_class = TextLayoutOptions
    suffix = ""

    def validate_options(self, options: TextLayoutOptions) -> str | None:
        if not 6 <= options.font_size <= 72:
            return "Font size must be between 6 and 72."
        if options.font_family not in FONT_FAMILIES:
            return f"Unknown font family '{options.font_family}'."
        if options.page_size not in PAGE_SIZES:
            return f"Unknown page size '{options.page_size}'."
        if not 0 <= options.margin <= 144:
            return "Margin must be between 0 and 144 points."
        return None

    @abstractmethod
    def read_lines(self, source: Artifact, options: Any) -> list[str]:
        """Extract the lines to lay out. PAGE_BREAK starts a new page."""

    async def layout(self, doc, lines: list[str], options: TextLayoutOptions) -> None:
        width, height = paper_size(options.page_size)
        fontname = FONT_FAMILIES[options.font_family]
        line_height = options.font_size * 1.3
        usable = width - 2 * options.margin
        bottom = height - options.margin

        page = None
        y = 0.0
        total = len(lines)
        for n, raw in enumerate(lines):
            if n % 200 == 0:
                await self.checkpoint()
                self.update_progress(scale_progress(100.0 * n / max(total, 1), 25, 90), "Laying out text...")
            if raw == PAGE_BREAK:
                page = None
                continue
            for line in wrap_text(raw.expandtabs(4), usable, fontname, options.font_size):
                if page is None or y > bottom:
                    page = doc.new_page(width=width, height=height)
                    y = options.margin + options.font_size
                if line:
                    page.insert_text((options.margin, y), line, fontsize=options.font_size, fontname=fontname)
                y += line_height

        if doc.page_count == 0:
            doc.new_page(width=width, height=height)

    async def _process(self, files: list[Artifact], options: TextLayoutOptions) -> ProcessOutput:
        source = files[0]
        self.update_progress(10, "Reading document...")
        lines = self.read_lines(source, options)

        doc = new_pdf()
        try:
            await self.layout(doc, lines, options)
            self.update_progress(92, "Saving PDF...")
            data = save_pdf(doc)
            page_count = doc.page_count
        finally:
            doc.close()

        filename = derive_filename(source, self.suffix)
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {"pageCount": page_count, "lineCount": len(lines)},
        )


class TextToPDFProcessor(TextLayoutProcessor):
    kind = "txt-to-pdf"
    accepted_types = TEXT_MIMES

    def read_lines(self, source: Artifact, options: Any) -> list[str]:
        text = source.data.decode("utf-8-sig", errors="replace")
        return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


class JsonToPDFProcessor(TextLayoutProcessor):
    """Pretty-print a JSON document onto PDF pages."""

    kind = "json-to-pdf"
    accepted_types = (JSON_MIME, "text/plain")
    options_class = JsonToPDFOptions

    def read_lines(self, source: Artifact, options: Any) -> list[str]:
        try:
            value = json.loads(source.data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise _file_error(source, "JSON", e) from e
        return json.dumps(value, indent=2, ensure_ascii=False).split("\n")


class WordToPDFProcessor(TextLayoutProcessor):
    """Render the text of a .docx file (paragraphs, then tables)."""

    kind = "word-to-pdf"
    accepted_types = (DOCX_MIME,)
    options_class = DocumentToPDFOptions

    def read_lines(self, source: Artifact, options: Any) -> list[str]:
        from docx import Document
        from docx.opc.exceptions import PackageNotFoundError

        try:
            document = Document(source.cursor())
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise _file_error(source, "Word", e) from e

        lines: list[str] = []
        for para in document.paragraphs:
            text = para.text.strip()
            is_heading = bool(para.style and para.style.name and "Heading" in para.style.name)
            if is_heading and lines:
                lines.append("")
            lines.append(text)

        for table in document.tables:
            lines.append("")
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    lines.append(" | ".join(cells))
        return lines


class PptxToPDFProcessor(TextLayoutProcessor):
    """Render each slide's text on its own page."""

    kind = "pptx-to-pdf"
    accepted_types = (PPTX_MIME,)
    options_class = DocumentToPDFOptions

    def read_lines(self, source: Artifact, options: Any) -> list[str]:
        from pptx import Presentation
        from pptx.exc import PackageNotFoundError

        try:
            prs = Presentation(source.cursor())
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise _file_error(source, "PowerPoint", e) from e

        lines: list[str] = []
        for slide_num, slide in enumerate(prs.slides, start=1):
            if lines:
                lines.append(PAGE_BREAK)
            title = slide.shapes.title.text.strip() if slide.shapes.title else ""
            lines.append(f"[Slide {slide_num}] {title}".rstrip())
            lines.append("")
            for shape in slide.shapes:
                if shape.has_text_frame:
                    for paragraph in shape.text_frame.paragraphs:
                        text = paragraph.text.strip()
                        if text and text != title:
                            lines.append(text)
                if shape.has_table:
                    for row in shape.table.rows:
                        cells = [cell.text.strip() for cell in row.cells]
                        if any(cells):
                            lines.append(" | ".join(cells))
        return lines


# -----------------------------------------------------------------------------
# E-books / XPS -> PDF
# -----------------------------------------------------------------------------


@dataclass
class EbookToPDFOptions:
    page_size: str = "A4"
    font_size: float = 11


class EbookToPDFProcessor(BaseProcessor):
    """
    Convert a document MuPDF reads natively into PDF.

    Reflowable formats (EPUB, FB2, MOBI) are laid out on `page_size` pages
    at `font_size`; fixed-layout formats (XPS) keep their own pages.
    Subclasses name the MuPDF file type and the accepted MIME types.
    """

    options_class = EbookToPDFOptions
    filetype: str = "epub"
    label: str = "EPUB"

    def validate_options(self, options: EbookToPDFOptions) -> str | None:
        if options.page_size not in PAGE_SIZES:
            return f"Unknown page size '{options.page_size}'."
        if not 6 <= options.font_size <= 72:
            return "Font size must be between 6 and 72."
        return None

    async def _process(self, files: list[Artifact], options: EbookToPDFOptions) -> ProcessOutput:
        fitz = load_pdf_engine()
        source = files[0]
        self.update_progress(5, f"Opening {self.label}...")
        try:
            doc = fitz.open(stream=source.data, filetype=self.filetype)
        except (RuntimeError, ValueError) as e:
            raise _file_error(source, self.label, e) from e

        with doc:
            if doc.is_reflowable:
                width, height = paper_size(options.page_size)
                doc.layout(width=width, height=height, fontsize=options.font_size)
            if doc.page_count == 0:
                raise ProcessorError.of(ErrorCode.FILE_TYPE_INVALID, f"'{source.filename or 'input'}' has no pages.")
            await self.checkpoint()
            self.update_progress(30, "Converting to PDF...")
            data = doc.convert_to_pdf()
            page_count = doc.page_count

        filename = derive_filename(source, "")
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {"pageCount": page_count, "sourceFormat": self.filetype},
        )


class XpsToPDFProcessor(EbookToPDFProcessor):
    kind = "xps-to-pdf"
    filetype = "xps"
    label = "XPS"
    accepted_types = (MIME_TYPES[".xps"], MIME_TYPES[".oxps"])


class EpubToPDFProcessor(EbookToPDFProcessor):
    kind = "epub-to-pdf"
    filetype = "epub"
    label = "EPUB"
    accepted_types = (MIME_TYPES[".epub"],)


class Fb2ToPDFProcessor(EbookToPDFProcessor):
    kind = "fb2-to-pdf"
    filetype = "fb2"
    label = "FictionBook"
    accepted_types = (MIME_TYPES[".fb2"], "application/xml", "text/xml")


class MobiToPDFProcessor(EbookToPDFProcessor):
    kind = "mobi-to-pdf"
    filetype = "mobi"
    label = "MOBI"
    accepted_types = (MIME_TYPES[".mobi"], "application/vnd.amazon.ebook")


# -----------------------------------------------------------------------------
# PDF -> images
# -----------------------------------------------------------------------------


@dataclass
class PDFToImageOptions:
    format: str = "png"
    quality: float = 0.92
    scale: float = 2.0
    pages: str = ""


class PDFToImageProcessor(BaseProcessor):
    """
    Render pages to images.

    One selected page yields a single image; several are packaged into
    `<stem>_images.zip`.
    """

    kind = "pdf-to-image"
    options_class = PDFToImageOptions

    def validate_options(self, options: PDFToImageOptions) -> str | None:
        if options.format not in IMAGE_FORMATS:
            return f"Unsupported image format '{options.format}'."
        if not 0 < options.quality <= 1:
            return "Quality must be greater than 0 and at most 1."
        if not 0.25 <= options.scale <= 8:
            return "Scale must be between 0.25 and 8."
        return None

    async def _process(self, files: list[Artifact], options: PDFToImageOptions) -> ProcessOutput:
        fitz = load_pdf_engine()
        source = files[0]
        _, ext, mime_type = IMAGE_FORMATS[options.format]
        quality = max(1, min(100, round(options.quality * 100)))
        matrix = fitz.Matrix(options.scale, options.scale)

        images: list[Artifact] = []
        with open_pdf(source) as doc:
            indices = selected_indices(options.pages, doc.page_count)
            async for page in self.iter_pages(doc, indices, start=5, end=85):
                pix = page.get_pixmap(matrix=matrix, alpha=False)
                data = encode_image(pixmap_to_image(pix), options.format, quality)
                name = f"{source.stem}_page_{page.number + 1}{ext}"
                images.append(Artifact(data, name, mime_type))

        metadata = {"pageCount": len(images), "format": options.format}
        if len(images) == 1:
            return self.success_output(images[0], images[0].filename, metadata)

        self.update_progress(90, "Packaging images...")
        data, _ = zip_artifacts(images)
        filename = f"{source.stem}_images.zip"
        return self.success_output(Artifact(data, filename, ZIP_MIME), filename, metadata)


@dataclass
class PDFToSVGOptions:
    pages: str = ""
    text_as_path: bool = True


class PDFToSVGProcessor(BaseProcessor):
    """
    Export pages as SVG drawings.

    One selected page yields a single SVG; several are packaged into
    `<stem>_svg.zip`. With text_as_path off, text stays selectable text.
    """

    kind = "pdf-to-svg"
    options_class = PDFToSVGOptions

    async def _process(self, files: list[Artifact], options: PDFToSVGOptions) -> ProcessOutput:
        source = files[0]
        drawings: list[Artifact] = []
        with open_pdf(source) as doc:
            indices = selected_indices(options.pages, doc.page_count)
            async for page in self.iter_pages(doc, indices, start=5, end=85):
                svg = page.get_svg_image(text_as_path=options.text_as_path)
                name = f"{source.stem}_page_{page.number + 1}.svg"
                drawings.append(Artifact(svg.encode("utf-8"), name, SVG_MIME))

        metadata = {"pageCount": len(drawings)}
        if len(drawings) == 1:
            return self.success_output(drawings[0], drawings[0].filename, metadata)

        self.update_progress(90, "Packaging drawings...")
        data, _ = zip_artifacts(drawings)
        filename = f"{source.stem}_svg.zip"
        return self.success_output(Artifact(data, filename, ZIP_MIME), filename, metadata)


# -----------------------------------------------------------------------------
# Rasterized PDFs
# -----------------------------------------------------------------------------


class RasterPDFProcessor(BaseProcessor):
    """
    Rebuild a PDF from page images rendered at the configured render DPI.

    Subclasses implement `render()`; pages keep their size.
    """

    suffix: str = "_raster"

    async def _process(self, files: list[Artifact], options: Any) -> ProcessOutput:
        source = files[0]
        out = new_pdf()
        try:
            with open_pdf(source) as doc:
                async for page in self.iter_pages(doc, start=5, end=90):
                    pix = self.render(page)
                    target = out.new_page(width=page.rect.width, height=page.rect.height)
                    target.insert_image(target.rect, pixmap=pix)
            self.update_progress(92, "Saving PDF...")
            data = save_pdf(out)
            page_count = out.page_count
        finally:
            out.close()

        filename = derive_filename(source, self.suffix)
        return self.success_output(Artifact(data, filename, PDF_MIME), filename, {"pageCount": page_count})

    @abstractmethod
    def render(self, page):
        """Pixmap (without alpha) for one page."""


class PDFToGreyscaleProcessor(RasterPDFProcessor):
    """Rasterize every page in greyscale."""

    kind = "pdf-to-greyscale"
    suffix = "_greyscale"

    def render(self, page):
        fitz = load_pdf_engine()
        return page.get_pixmap(dpi=self.config.render_dpi, colorspace=fitz.csGRAY, alpha=False)


class InvertColorsProcessor(RasterPDFProcessor):
    """Rasterize every page with its colors inverted (white paper turns black)."""

    kind = "invert-colors"
    suffix = "_inverted"

    def render(self, page):
        pix = page.get_pixmap(dpi=self.config.render_dpi, alpha=False)
        pix.invert_irect()
        return pix


# -----------------------------------------------------------------------------
# PDF -> JSON / embedded images / ZIP
# -----------------------------------------------------------------------------


@dataclass
class PDFToJsonOptions:
    extract_text: bool = True
    extract_metadata: bool = True


class PDFToJsonProcessor(BaseProcessor):
    kind = "pdf-to-json"
    options_class = PDFToJsonOptions

    async def _process(self, files: list[Artifact], options: PDFToJsonOptions) -> ProcessOutput:
        source = files[0]
        with open_pdf(source) as doc:
            result: dict[str, Any] = {"filename": source.filename, "pageCount": doc.page_count}
            if options.extract_metadata:
                result["metadata"] = {k: v for k, v in (doc.metadata or {}).items() if v}
            pages = []
            async for page in self.iter_pages(doc, start=10, end=90):
                entry: dict[str, Any] = {
                    "number": page.number + 1,
                    "width": round(page.rect.width, 2),
                    "height": round(page.rect.height, 2),
                }
                if options.extract_text:
                    entry["text"] = page.get_text()
                pages.append(entry)
            result["pages"] = pages

        data = json.dumps(result, indent=2, ensure_ascii=False).encode("utf-8")
        filename = f"{source.stem}.json"
        return self.success_output(Artifact(data, filename, JSON_MIME), filename, {"pageCount": len(pages)})


@dataclass
class ExtractImagesOptions:
    format: str = "png"
    min_size: int = 100


class ExtractImagesProcessor(BaseProcessor):
    """
    Pull embedded images out of a PDF, one artifact per distinct image.

    format "original" keeps the stored encoding; otherwise images are
    re-encoded. Images narrower or shorter than min_size pixels are skipped.
    """

    kind = "extract-images"
    options_class = ExtractImagesOptions

    def validate_options(self, options: ExtractImagesOptions) -> str | None:
        if options.format != "original" and options.format not in IMAGE_FORMATS:
            return f"Unsupported image format '{options.format}'."
        if options.min_size < 0:
            return "Minimum size cannot be negative."
        return None

    def convert(self, raw: dict, options: ExtractImagesOptions) -> tuple[bytes, str, str]:
        if options.format == "original":
            ext = "." + raw["ext"].lower()
            return raw["image"], ext, MIME_TYPES.get(ext, "application/octet-stream")
        from PIL import Image

        img = Image.open(io.BytesIO(raw["image"]))
        _, ext, mime_type = IMAGE_FORMATS[options.format]
        return encode_image(img, options.format, self.config.image_quality), ext, mime_type

    async def _process(self, files: list[Artifact], options: ExtractImagesOptions) -> ProcessOutput:
        source = files[0]
        images: list[Artifact] = []
        seen: set[int] = set()
        skipped = 0

        with open_pdf(source) as doc:
            async for page in self.iter_pages(doc, start=5, end=90):
                for info in page.get_images(full=True):
                    xref = info[0]
                    if xref in seen:
                        continue
                    seen.add(xref)
                    raw = doc.extract_image(xref)
                    if not raw or raw.get("width", 0) < options.min_size or raw.get("height", 0) < options.min_size:
                        skipped += 1
                        continue
                    data, ext, mime_type = self.convert(raw, options)
                    name = f"{source.stem}_image_{len(images) + 1}{ext}"
                    images.append(Artifact(data, name, mime_type))

        if not images:
            raise ProcessorError.of(
                ErrorCode.PROCESSING_FAILED,
                "No images found in the PDF.",
                f"{skipped} image(s) were smaller than {options.min_size}px." if skipped else None,
                recoverable=False,
                suggested_action="Lower the minimum image size or use a PDF that contains images.",
            )

        return self.success_output(
            images,
            ", ".join(a.filename for a in images),
            {"imageCount": len(images), "skipped": skipped},
        )


class ExtractAttachmentsProcessor(BaseProcessor):
    """
    Save the files embedded in a PDF.

    A single attachment comes out as itself; several are packaged into
    `<stem>_attachments.zip`.
    """

    kind = "extract-attachments"

    async def _process(self, files: list[Artifact], options: Any) -> ProcessOutput:
        source = files[0]
        attachments: list[Artifact] = []
        with open_pdf(source) as doc:
            names = doc.embfile_names()
            async for name in self.iter_items(names, start=10, end=85, message="Extracting attachment"):
                info = doc.embfile_info(name)
                filename = info.get("ufilename") or info.get("filename") or name
                mime_type = MIME_TYPES.get(extension_of(filename) or "", "application/octet-stream")
                attachments.append(Artifact(doc.embfile_get(name), filename, mime_type))

        if not attachments:
            raise ProcessorError.of(
                ErrorCode.PROCESSING_FAILED,
                "No attachments found in the PDF.",
                recoverable=False,
                suggested_action="Use a PDF that has embedded files.",
            )

        metadata = {"attachmentCount": len(attachments), "attachments": [a.filename for a in attachments]}
        if len(attachments) == 1:
            return self.success_output(attachments[0], attachments[0].filename, metadata)

        self.update_progress(90, "Packaging attachments...")
        data, entries = zip_artifacts(attachments)
        metadata["attachments"] = entries
        filename = f"{source.stem}_attachments.zip"
        return self.success_output(Artifact(data, filename, ZIP_MIME), filename, metadata)


@dataclass
class PDFToZipOptions:
    output_filename: str = "pdfs.zip"


class PDFToZipProcessor(BaseProcessor):
    """Package every input file into one ZIP archive."""

    kind = "pdf-to-zip"
    accepted_types = ()
    options_class = PDFToZipOptions
    max_files = None

    def validate_options(self, options: PDFToZipOptions) -> str | None:
        if not options.output_filename.strip():
            return "Output filename cannot be empty."
        return None

    async def _process(self, files: list[Artifact], options: PDFToZipOptions) -> ProcessOutput:
        used: set[str] = set()
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            async for n, artifact in self.iter_items(list(enumerate(files, start=1)), message="Adding file"):
                entry = unique_name(artifact.filename or f"file_{n}.pdf", used)
                zf.writestr(entry, artifact.data)

        filename = options.output_filename
        if not filename.lower().endswith(".zip"):
            filename += ".zip"
        return self.success_output(
            Artifact(buf.getvalue(), filename, ZIP_MIME),
            filename,
            {"fileCount": len(files), "entries": sorted(used)},
        )
