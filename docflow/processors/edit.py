"""
Content edits: watermark, page numbers, header/footer, metadata, annotations,
page background, blank-page removal and a generated table of contents.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from .base import SinglePDFProcessor
from .convert import FONT_FAMILIES, wrap_text
from .engine import load_pdf_engine
from .errors import ErrorCode, ProcessorError

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

WATERMARK_POSITIONS = ("center", "diagonal", "top-left", "top-right", "bottom-left", "bottom-right")
NUMBER_POSITIONS = ("bottom-center", "bottom-left", "bottom-right", "top-center", "top-left", "top-right")
NUMBER_FORMATS = ("number", "roman", "page-of-total")
METADATA_FIELDS = ("title", "author", "subject", "keywords", "creator", "producer")
BACKGROUND_TARGETS = ("all", "first", "odd", "even")

_ROMAN = (
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
    (100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
    (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
)


def hex_to_rgb(color: str) -> tuple[float, float, float]:
    """'#RRGGBB' -> (r, g, b) floats in 0..1."""
    value = color.lstrip("#")
    return tuple(int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))  # type: ignore[return-value]


def to_roman(number: int) -> str:
    result = []
    for value, numeral in _ROMAN:
        while number >= value:
            result.append(numeral)
            number -= value
    return "".join(result)


def _check_color(color: str, field_name: str = "Color") -> str | None:
    if not HEX_COLOR_RE.match(color):
        return f"{field_name} must be a hex value like #336699."
    return None


def _anchor(rect, text_width: float, font_size: float, position: str, margin: float):
    """Baseline origin for a line of text at a named position on a page rect."""
    vertical, _, horizontal = position.partition("-")
    if horizontal == "left":
        x = rect.x0 + margin
    elif horizontal == "right":
        x = rect.x1 - margin - text_width
    else:
        x = rect.x0 + (rect.width - text_width) / 2
    if vertical == "top":
        y = rect.y0 + margin + font_size
    else:
        y = rect.y1 - margin
    return x, y


# -----------------------------------------------------------------------------
# Watermark
# -----------------------------------------------------------------------------


@dataclass
class WatermarkOptions:
    text: str = "WATERMARK"
    font_size: float = 48
    opacity: float = 0.3
    rotation: float = -45
    color: str = "#888888"
    position: str = "center"


class AddWatermarkProcessor(SinglePDFProcessor):
    """Stamp a text watermark on every page."""

    kind = "add-watermark"
    suffix = "_watermarked"
    options_class = WatermarkOptions

    def validate_options(self, options: WatermarkOptions) -> str | None:
        if not options.text.strip():
            return "Watermark text cannot be empty."
        if not 6 <= options.font_size <= 200:
            return "Font size must be between 6 and 200."
        if not 0 < options.opacity <= 1:
            return "Opacity must be greater than 0 and at most 1."
        if options.position not in WATERMARK_POSITIONS:
            return f"Unknown watermark position '{options.position}'."
        return _check_color(options.color)

    async def transform(self, doc, options: WatermarkOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        color = hex_to_rgb(options.color)
        text_width = fitz.get_text_length(options.text, fontname="helv", fontsize=options.font_size)

        async for page in self.iter_pages(doc):
            rect = page.rect
            if options.position in ("center", "diagonal"):
                pivot = fitz.Point(rect.x0 + rect.width / 2, rect.y0 + rect.height / 2)
                origin = fitz.Point(pivot.x - text_width / 2, pivot.y + options.font_size / 3)
            else:
                x, y = _anchor(rect, text_width, options.font_size, options.position, 36)
                origin = fitz.Point(x, y)
                pivot = fitz.Point(x + text_width / 2, y - options.font_size / 3)

            angle = options.rotation
            if options.position == "diagonal":
                angle = -math.degrees(math.atan2(rect.height, rect.width))

            page.insert_text(
                origin,
                options.text,
                fontsize=options.font_size,
                fontname="helv",
                color=color,
                fill_opacity=options.opacity,
                morph=(pivot, fitz.Matrix(angle)) if angle else None,
                overlay=True,
            )
        return {"watermark": options.text}


# -----------------------------------------------------------------------------
# Page numbers / header & footer
# -----------------------------------------------------------------------------


@dataclass
class PageNumberOptions:
    position: str = "bottom-center"
    format: str = "number"
    start_number: int = 1
    font_size: float = 12
    font_color: str = "#000000"
    margin: float = 30
    skip_first_page: bool = False


class PageNumbersProcessor(SinglePDFProcessor):
    kind = "page-numbers"
    suffix = "_numbered"
    options_class = PageNumberOptions

    def validate_options(self, options: PageNumberOptions) -> str | None:
        if options.position not in NUMBER_POSITIONS:
            return f"Unknown position '{options.position}'."
        if options.format not in NUMBER_FORMATS:
            return f"Unknown number format '{options.format}'."
        if options.start_number < 1:
            return "Start number must be at least 1."
        if not 6 <= options.font_size <= 72:
            return "Font size must be between 6 and 72."
        if not 0 <= options.margin <= 200:
            return "Margin must be between 0 and 200."
        return _check_color(options.font_color, "Font color")

    def label_for(self, number: int, total: int, options: PageNumberOptions) -> str:
        if options.format == "roman":
            return to_roman(number)
        if options.format == "page-of-total":
            return f"Page {number} of {total}"
        return str(number)

    async def transform(self, doc, options: PageNumberOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        color = hex_to_rgb(options.font_color)
        first = 1 if options.skip_first_page else 0
        numbered = range(first, doc.page_count)
        total = len(numbered) + options.start_number - 1

        async for page in self.iter_pages(doc, numbered):
            number = options.start_number + page.number - first
            label = self.label_for(number, total, options)
            width = fitz.get_text_length(label, fontname="helv", fontsize=options.font_size)
            x, y = _anchor(page.rect, width, options.font_size, options.position, options.margin)
            page.insert_text(
                fitz.Point(x, y),
                label,
                fontsize=options.font_size,
                fontname="helv",
                color=color,
            )
        return {"numberedPages": len(numbered)}


@dataclass
class HeaderFooterOptions:
    header_text: str = ""
    footer_text: str = ""
    font_size: float = 12
    font_color: str = "#000000"
    margin: float = 30


class HeaderFooterProcessor(SinglePDFProcessor):
    """
    Add a centered header and/or footer line to every page.

    "{page}" and "{total}" in either text are replaced per page.
    """

    kind = "header-footer"
    suffix = "_header_footer"
    options_class = HeaderFooterOptions

    def validate_options(self, options: HeaderFooterOptions) -> str | None:
        if not 6 <= options.font_size <= 72:
            return "Font size must be between 6 and 72."
        if not 0 <= options.margin <= 200:
            return "Margin must be between 0 and 200."
        return _check_color(options.font_color, "Font color")

    async def transform(self, doc, options: HeaderFooterOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        color = hex_to_rgb(options.font_color)
        total = doc.page_count
        lines = [
            (text, position)
            for text, position in ((options.header_text, "top-center"), (options.footer_text, "bottom-center"))
            if text.strip()
        ]
        if not lines:
            self.logger.debug("No header or footer text given; leaving pages unchanged")
            return {"header": False, "footer": False}

        async for page in self.iter_pages(doc):
            for template, position in lines:
                text = template.replace("{page}", str(page.number + 1)).replace("{total}", str(total))
                width = fitz.get_text_length(text, fontname="helv", fontsize=options.font_size)
                x, y = _anchor(page.rect, width, options.font_size, position, options.margin)
                page.insert_text(fitz.Point(x, y), text, fontsize=options.font_size, fontname="helv", color=color)

        return {"header": bool(options.header_text.strip()), "footer": bool(options.footer_text.strip())}


# -----------------------------------------------------------------------------
# Metadata
# -----------------------------------------------------------------------------


@dataclass
class EditMetadataOptions:
    """Empty fields keep the document's existing value."""

    title: str = ""
    author: str = ""
    subject: str = ""
    keywords: str = ""
    creator: str = ""
    producer: str = ""


class EditMetadataProcessor(SinglePDFProcessor):
    kind = "edit-metadata"
    suffix = "_metadata"
    options_class = EditMetadataOptions

    async def transform(self, doc, options: EditMetadataOptions) -> dict[str, Any]:
        metadata = dict(doc.metadata or {})
        changed = []
        for name in METADATA_FIELDS:
            value = getattr(options, name).strip()
            if value:
                metadata[name] = value
                changed.append(name)
        doc.set_metadata(metadata)
        self.update_progress(80, f"Updated {len(changed)} metadata field(s).")
        return {"updatedFields": changed}


class RemoveMetadataProcessor(SinglePDFProcessor):
    kind = "remove-metadata"
    suffix = "_clean"

    async def transform(self, doc, options: Any) -> dict[str, Any]:
        doc.set_metadata({})
        doc.del_xml_metadata()
        return {"metadataRemoved": True}


# -----------------------------------------------------------------------------
# Annotations
# -----------------------------------------------------------------------------


@dataclass
class RemoveAnnotationsOptions:
    remove_comments: bool = True
    remove_highlights: bool = True
    remove_links: bool = False


class RemoveAnnotationsProcessor(SinglePDFProcessor):
    """
    Strip annotations.

    Highlights are the text-markup types (highlight, underline, strike-out,
    squiggly); every other non-widget annotation counts as a comment.
    """

    kind = "remove-annotations"
    suffix = "_no_annotations"
    options_class = RemoveAnnotationsOptions

    async def transform(self, doc, options: RemoveAnnotationsOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        markup = {
            fitz.PDF_ANNOT_HIGHLIGHT,
            fitz.PDF_ANNOT_UNDERLINE,
            fitz.PDF_ANNOT_STRIKE_OUT,
            fitz.PDF_ANNOT_SQUIGGLY,
        }
        removed = {"comments": 0, "highlights": 0, "links": 0}

        async for page in self.iter_pages(doc):
            doomed = []
            for annot in page.annots():
                is_markup = annot.type[0] in markup
                if is_markup and options.remove_highlights:
                    doomed.append((annot.xref, "highlights"))
                elif not is_markup and options.remove_comments:
                    doomed.append((annot.xref, "comments"))
            for xref, bucket in doomed:
                page.delete_annot(page.load_annot(xref))
                removed[bucket] += 1

            if options.remove_links:
                for link in page.get_links():
                    page.delete_link(link)
                    removed["links"] += 1

        return {"removed": removed}


# -----------------------------------------------------------------------------
# Background / blank pages
# -----------------------------------------------------------------------------

# Grey levels at or above this count as paper
PAPER_LEVEL = 250
_PAPER_BYTES = bytes(range(PAPER_LEVEL, 256))


@dataclass
class BackgroundColorOptions:
    color: str = "#FFFFFF"
    apply_to: str = "all"


class BackgroundColorProcessor(SinglePDFProcessor):
    """
    Paint a solid background behind the existing page content.

    apply_to picks "all" pages, only the "first", or the "odd"/"even" pages
    (1-based, so "odd" starts with page 1).
    """

    kind = "background-color"
    suffix = "_background"
    options_class = BackgroundColorOptions

    def validate_options(self, options: BackgroundColorOptions) -> str | None:
        if options.apply_to not in BACKGROUND_TARGETS:
            return f"Unknown page selection '{options.apply_to}'."
        return _check_color(options.color)

    async def transform(self, doc, options: BackgroundColorOptions) -> dict[str, Any]:
        total = doc.page_count
        if options.apply_to == "first":
            indices = [0]
        elif options.apply_to == "odd":
            indices = list(range(0, total, 2))
        elif options.apply_to == "even":
            indices = list(range(1, total, 2))
        else:
            indices = list(range(total))

        fill = hex_to_rgb(options.color)
        async for page in self.iter_pages(doc, indices):
            page.draw_rect(page.rect, color=None, fill=fill, overlay=False)
        return {"color": options.color, "coloredPages": len(indices)}


def is_blank_page(page, threshold: float) -> bool:
    """
    Whether a page is blank: it has no text, and at least `threshold` of its
    rendered pixels are paper white.
    """
    fitz = load_pdf_engine()
    if page.get_text().strip():
        return False
    pix = page.get_pixmap(matrix=fitz.Matrix(0.5, 0.5), colorspace=fitz.csGRAY, alpha=False)
    samples = pix.samples
    if not samples:
        return True
    ink = len(samples.translate(None, _PAPER_BYTES))
    return 1 - ink / len(samples) >= threshold


@dataclass
class RemoveBlankPagesOptions:
    threshold: float = 0.99


class RemoveBlankPagesProcessor(SinglePDFProcessor):
    kind = "remove-blank-pages"
    suffix = "_no_blanks"
    options_class = RemoveBlankPagesOptions

    def validate_options(self, options: RemoveBlankPagesOptions) -> str | None:
        if not 0.5 <= options.threshold <= 1:
            return "Threshold must be between 0.5 and 1."
        return None

    async def transform(self, doc, options: RemoveBlankPagesOptions) -> dict[str, Any]:
        total = doc.page_count
        blank = set()
        async for page in self.iter_pages(doc, start=5, end=80):
            if is_blank_page(page, options.threshold):
                blank.add(page.number)

        if len(blank) == total:
            raise ProcessorError.of(
                ErrorCode.PROCESSING_FAILED,
                "Every page of the document is blank.",
                f"The PDF has {total} pages.",
                recoverable=False,
                suggested_action="Raise the blank threshold or check the input document.",
            )
        if blank:
            doc.select([i for i in range(total) if i not in blank])
        self.logger.debug("Removed %d blank page(s) of %d", len(blank), total)
        return {"sourcePageCount": total, "removedPages": sorted(i + 1 for i in blank)}


# -----------------------------------------------------------------------------
# Table of contents
# -----------------------------------------------------------------------------


@dataclass
class TableOfContentsOptions:
    title: str = "Table of Contents"
    font_size: float = 12
    font_family: str = "helvetica"
    add_bookmark: bool = True


class TableOfContentsProcessor(SinglePDFProcessor):
    """
    Insert a linked contents listing at the front of the document.

    Entries come from the document's bookmarks; a document without any gets
    one entry per page. Every entry links to its target page and shows that
    page's number in the output. With add_bookmark, the listing itself is
    added to the top of the bookmarks.
    """

    kind = "table-of-contents"
    suffix = "_toc"
    options_class = TableOfContentsOptions

    def validate_options(self, options: TableOfContentsOptions) -> str | None:
        if not options.title.strip():
            return "Title cannot be empty."
        if not 6 <= options.font_size <= 36:
            return "Font size must be between 6 and 36."
        if options.font_family not in FONT_FAMILIES:
            return f"Unknown font family '{options.font_family}'."
        return None

    async def transform(self, doc, options: TableOfContentsOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        fontname = FONT_FAMILIES[options.font_family]
        size = options.font_size
        title_size = size * 1.6
        line_height = size * 1.6
        margin = 72.0

        entries = [(level, title, page) for level, title, page, *_ in doc.get_toc(simple=True)]
        if not entries:
            entries = [(1, f"Page {n}", n) for n in range(1, doc.page_count + 1)]

        first = doc[0].rect
        width, height = first.width, first.height
        body_top = margin + title_size * 2
        per_page = max(1, int((height - body_top - margin) // line_height))
        toc_pages = -(-len(entries) // per_page)
        for i in range(toc_pages):
            doc.new_page(pno=i, width=width, height=height)

        async for n, (level, title, page_no) in self.iter_items(
            list(enumerate(entries)), start=20, end=85, message="Writing entry"
        ):
            sheet = doc[n // per_page]
            if n % per_page == 0:
                sheet.insert_text((margin, margin + title_size), options.title, fontname=fontname, fontsize=title_size)

            y = body_top + (n % per_page + 1) * line_height
            x = margin + min(level - 1, 5) * 18
            label = str(page_no + toc_pages) if page_no > 0 else ""
            label_width = fitz.get_text_length(label, fontname=fontname, fontsize=size)
            room = width - margin - x - label_width - size
            text = wrap_text(title, room, fontname, size)[0] if room > size else ""
            sheet.insert_text((x, y), text, fontname=fontname, fontsize=size)
            if label:
                sheet.insert_text((width - margin - label_width, y), label, fontname=fontname, fontsize=size)
                sheet.insert_link({
                    "kind": fitz.LINK_GOTO,
                    "from": fitz.Rect(x, y - size, width - margin, y + size * 0.3),
                    "page": page_no - 1 + toc_pages,
                    "to": fitz.Point(0, 0),
                })

        if options.add_bookmark:
            # Existing bookmarks point at page objects, so they already follow the inserted pages
            doc.set_toc([[1, options.title, 1]] + doc.get_toc(simple=True))
        return {"entryCount": len(entries), "tocPages": toc_pages}
