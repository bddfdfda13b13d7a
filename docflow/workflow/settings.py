"""
Settings translation.

Workflow nodes carry loosely-typed settings (whatever the editor or JSON
document stored, camelCase keys). Each processor kind has a translator that
turns those settings into the processor's options dataclass.

Translators never raise: a missing, mistyped or out-of-range value falls back
to the documented default for that field, so `translate_settings(kind, {})`
always yields options the processor accepts.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any, Callable

from docflow.processors.convert import (
    FONT_FAMILIES,
    IMAGE_FORMATS,
    DocumentToPDFOptions,
    EbookToPDFOptions,
    ExtractImagesOptions,
    ImageToPDFOptions,
    JsonToPDFOptions,
    PDFToImageOptions,
    PDFToJsonOptions,
    PDFToSVGOptions,
    PDFToZipOptions,
    TextLayoutOptions,
)
from docflow.processors.edit import (
    BACKGROUND_TARGETS,
    NUMBER_FORMATS,
    NUMBER_POSITIONS,
    WATERMARK_POSITIONS,
    BackgroundColorOptions,
    EditMetadataOptions,
    HeaderFooterOptions,
    PageNumberOptions,
    RemoveAnnotationsOptions,
    RemoveBlankPagesOptions,
    TableOfContentsOptions,
    WatermarkOptions,
)
from docflow.processors.layout import (
    DIVISION_TYPES,
    GRID_LAYOUTS,
    PAGES_PER_SHEET,
    STACK_DIRECTIONS,
    CombineSinglePageOptions,
    DividePagesOptions,
    FixPageSizeOptions,
    GridCombineOptions,
    NUpOptions,
    PosterizeOptions,
)
from docflow.processors.optimize import QUALITY_PRESETS, CompressOptions, FlattenOptions
from docflow.processors.organize import (
    ROTATION_ANGLES,
    SPLIT_MODES,
    AddBlankPageOptions,
    AlternateMergeOptions,
    MergeOptions,
    OrganizeOptions,
    PageSelectionOptions,
    RotateOptions,
    SplitOptions,
)
from docflow.processors.security import (
    ChangePermissionsOptions,
    DecryptOptions,
    EncryptOptions,
    SanitizeOptions,
)

Settings = Mapping[str, Any]
Translator = Callable[[Settings], Any]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")

IMAGE_TO_PDF_KINDS = ("image-to-pdf", "jpg-to-pdf", "png-to-pdf", "webp-to-pdf", "bmp-to-pdf", "tiff-to-pdf")

# kind -> fixed output format (None: taken from settings)
PDF_TO_IMAGE_KINDS: dict[str, str | None] = {
    "pdf-to-image": None,
    "pdf-to-jpg": "jpeg",
    "pdf-to-png": "png",
    "pdf-to-webp": "webp",
    "pdf-to-bmp": "bmp",
    "pdf-to-tiff": "tiff",
}


# -----------------------------------------------------------------------------
# Field readers
# -----------------------------------------------------------------------------


def read_number(
    settings: Settings,
    key: str,
    default: float,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """
    Read a finite number (int, float or numeric string).

    Booleans, NaN/inf, unparsable strings and values outside
    [minimum, maximum] all yield `default`.
    """
    value = settings.get(key)
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default

    if not math.isfinite(number):
        return default
    if minimum is not None and number < minimum:
        return default
    if maximum is not None and number > maximum:
        return default
    return number


def read_int(
    settings: Settings,
    key: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Like read_number, but non-integral values also fall back."""
    number = read_number(settings, key, float(default), minimum=minimum, maximum=maximum)
    if not number.is_integer():
        return default
    return int(number)


def read_bool(settings: Settings, key: str, default: bool) -> bool:
    """Only real booleans count; "true", 1 and friends fall back."""
    value = settings.get(key)
    return value if isinstance(value, bool) else default


def read_str(settings: Settings, key: str, default: str = "") -> str:
    """A non-blank string, else `default`."""
    value = settings.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return default


def read_choice(settings: Settings, key: str, choices: tuple[str, ...], default: str) -> str:
    """One of `choices` (matched case-insensitively, returned as listed)."""
    value = settings.get(key)
    if isinstance(value, str):
        wanted = value.strip().lower()
        for choice in choices:
            if choice.lower() == wanted:
                return choice
    return default


def read_color(settings: Settings, key: str, default: str) -> str:
    """A "#RRGGBB" color ("#RGB" and missing "#" are normalized)."""
    value = settings.get(key)
    if not isinstance(value, str):
        return default
    match = _HEX_RE.match(value.strip())
    if not match:
        return default
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return "#" + digits.upper()


def read_int_list(settings: Settings, key: str, default: tuple[int, ...] = ()) -> tuple[int, ...]:
    """
    A list of integers, given as a list or a comma-separated string.

    Any element that is not an integer makes the whole value fall back.
    """
    value = settings.get(key)
    if isinstance(value, str):
        items: list[Any] = [part for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        return default

    result: list[int] = []
    for item in items:
        if isinstance(item, bool):
            return default
        if isinstance(item, int):
            result.append(item)
        elif isinstance(item, float) and item.is_integer():
            result.append(int(item))
        elif isinstance(item, str) and item.strip().lstrip("-").isdigit():
            result.append(int(item.strip()))
        else:
            return default
    return tuple(result)


# -----------------------------------------------------------------------------
# Organize
# -----------------------------------------------------------------------------


def translate_merge(settings: Settings) -> MergeOptions:
    return MergeOptions(
        preserve_bookmarks=read_bool(settings, "preserveBookmarks", True),
        output_filename=read_str(settings, "filename", "merged.pdf"),
    )


def translate_split(settings: Settings) -> SplitOptions:
    mode = read_choice(settings, "splitMode", SPLIT_MODES, "every")
    ranges = read_str(settings, "pageRanges", "")
    if mode == "ranges" and not ranges.strip():
        mode = "single"
    return SplitOptions(
        mode=mode,
        pages_per_split=read_int(settings, "pagesPerSplit", 1, minimum=1),
        ranges=ranges,
    )


def translate_page_selection(settings: Settings) -> PageSelectionOptions:
    return PageSelectionOptions(pages=read_str(settings, "pageRange", "1"))


def translate_rotate(settings: Settings) -> RotateOptions:
    angle = read_int(settings, "angle", 90)
    return RotateOptions(
        angle=angle if angle in ROTATION_ANGLES else 90,
        pages=read_str(settings, "pageRange", ""),
    )


def translate_alternate_merge(settings: Settings) -> AlternateMergeOptions:
    return AlternateMergeOptions(reverse_second=read_bool(settings, "reverseSecond", False))


def translate_add_blank_page(settings: Settings) -> AddBlankPageOptions:
    raw = settings.get("position")
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        position = str(read_int(settings, "position", 0, minimum=0)) if raw >= 0 else "end"
    else:
        position = read_str(settings, "position", "end").strip().lower()
        if position not in ("start", "end") and not position.isdigit():
            position = "end"
    return AddBlankPageOptions(
        position=position,
        count=read_int(settings, "count", 1, minimum=1, maximum=100),
    )


def translate_organize(settings: Settings) -> OrganizeOptions:
    return OrganizeOptions(page_order=read_int_list(settings, "pageOrder"))


def translate_divide_pages(settings: Settings) -> DividePagesOptions:
    return DividePagesOptions(division=read_choice(settings, "divisionType", tuple(DIVISION_TYPES), "vertical"))


def translate_n_up(settings: Settings) -> NUpOptions:
    pages_per_sheet = read_int(settings, "pagesPerSheet", 4)
    return NUpOptions(
        pages_per_sheet=pages_per_sheet if pages_per_sheet in PAGES_PER_SHEET else 4,
        page_size=read_choice(settings, "pageSize", _PAGE_SIZES, "A4"),
        orientation=read_choice(settings, "orientation", ("auto", "portrait", "landscape"), "auto"),
        use_margins=read_bool(settings, "useMargins", True),
        add_border=read_bool(settings, "addBorder", False),
    )


def translate_combine_single_page(settings: Settings) -> CombineSinglePageOptions:
    return CombineSinglePageOptions(
        direction=read_choice(settings, "orientation", STACK_DIRECTIONS, "vertical"),
        spacing=read_number(settings, "spacing", 0, minimum=0, maximum=200),
        background_color=read_color(settings, "backgroundColor", "#FFFFFF"),
        add_separator=read_bool(settings, "addSeparator", False),
    )


def translate_grid_combine(settings: Settings) -> GridCombineOptions:
    return GridCombineOptions(
        layout=read_choice(settings, "gridLayout", GRID_LAYOUTS, "2x2"),
        spacing=read_number(settings, "spacing", 10, minimum=0, maximum=50),
        page_size=read_choice(settings, "pageSize", _PAGE_SIZES, "A4"),
        add_border=read_bool(settings, "addBorder", False),
    )


def translate_posterize(settings: Settings) -> PosterizeOptions:
    return PosterizeOptions(
        columns=read_int(settings, "columns", 2, minimum=1, maximum=10),
        rows=read_int(settings, "rows", 2, minimum=1, maximum=10),
        overlap=read_number(settings, "overlap", 10, minimum=0, maximum=200),
    )


def translate_fix_page_size(settings: Settings) -> FixPageSizeOptions:
    return FixPageSizeOptions(
        target_size=read_choice(settings, "targetSize", _PAGE_SIZES, "A4"),
        orientation=read_choice(settings, "orientation", ("auto", "portrait", "landscape"), "auto"),
    )


# -----------------------------------------------------------------------------
# Edit
# -----------------------------------------------------------------------------


def translate_watermark(settings: Settings) -> WatermarkOptions:
    return WatermarkOptions(
        text=read_str(settings, "text", "WATERMARK"),
        font_size=read_number(settings, "fontSize", 48, minimum=6, maximum=200),
        opacity=read_number(settings, "opacity", 0.3, minimum=0.01, maximum=1),
        rotation=read_number(settings, "rotation", -45, minimum=-360, maximum=360),
        color=read_color(settings, "color", "#888888"),
        position=read_choice(settings, "position", WATERMARK_POSITIONS, "center"),
    )


def translate_page_numbers(settings: Settings) -> PageNumberOptions:
    return PageNumberOptions(
        position=read_choice(settings, "position", NUMBER_POSITIONS, "bottom-center"),
        format=read_choice(settings, "format", NUMBER_FORMATS, "number"),
        start_number=read_int(settings, "startNumber", 1, minimum=1),
        font_size=read_number(settings, "fontSize", 12, minimum=6, maximum=72),
        font_color=read_color(settings, "fontColor", "#000000"),
        margin=read_number(settings, "margin", 30, minimum=0, maximum=200),
        skip_first_page=read_bool(settings, "skipFirstPage", False),
    )


def translate_header_footer(settings: Settings) -> HeaderFooterOptions:
    return HeaderFooterOptions(
        header_text=read_str(settings, "headerText", ""),
        footer_text=read_str(settings, "footerText", ""),
        font_size=read_number(settings, "fontSize", 12, minimum=6, maximum=72),
        font_color=read_color(settings, "fontColor", "#000000"),
        margin=read_number(settings, "margin", 30, minimum=0, maximum=200),
    )


def translate_edit_metadata(settings: Settings) -> EditMetadataOptions:
    keywords = settings.get("keywords")
    if isinstance(keywords, (list, tuple)):
        keywords = ", ".join(str(k).strip() for k in keywords if isinstance(k, str) and k.strip())
        settings = {**settings, "keywords": keywords}
    return EditMetadataOptions(
        title=read_str(settings, "title"),
        author=read_str(settings, "author"),
        subject=read_str(settings, "subject"),
        keywords=read_str(settings, "keywords"),
        creator=read_str(settings, "creator"),
        producer=read_str(settings, "producer"),
    )


def translate_remove_annotations(settings: Settings) -> RemoveAnnotationsOptions:
    return RemoveAnnotationsOptions(
        remove_comments=read_bool(settings, "removeComments", True),
        remove_highlights=read_bool(settings, "removeHighlights", True),
        remove_links=read_bool(settings, "removeLinks", False),
    )


def translate_background_color(settings: Settings) -> BackgroundColorOptions:
    return BackgroundColorOptions(
        color=read_color(settings, "color", "#FFFFFF"),
        apply_to=read_choice(settings, "applyTo", BACKGROUND_TARGETS, "all"),
    )


def translate_remove_blank_pages(settings: Settings) -> RemoveBlankPagesOptions:
    return RemoveBlankPagesOptions(threshold=read_number(settings, "threshold", 0.99, minimum=0.5, maximum=1))


def translate_table_of_contents(settings: Settings) -> TableOfContentsOptions:
    font_family = read_str(settings, "fontFamily", "helvetica").strip().lower()
    # Short PDF base-font names ("helv", "tiro", "cour") are accepted too
    short_names = {short: name for name, short in FONT_FAMILIES.items()}
    font_family = short_names.get(font_family, font_family)
    return TableOfContentsOptions(
        title=read_str(settings, "title", "Table of Contents"),
        font_size=read_number(settings, "fontSize", 12, minimum=6, maximum=36),
        font_family=font_family if font_family in FONT_FAMILIES else "helvetica",
        add_bookmark=read_bool(settings, "addBookmark", True),
    )


# -----------------------------------------------------------------------------
# Convert
# -----------------------------------------------------------------------------

_PAGE_SIZES = ("A4", "A3", "A5", "LETTER", "LEGAL")


def translate_image_to_pdf(settings: Settings) -> ImageToPDFOptions:
    return ImageToPDFOptions(
        page_size=read_choice(settings, "pageSize", _PAGE_SIZES + ("FIT",), "A4"),
        orientation=read_choice(settings, "orientation", ("auto", "portrait", "landscape"), "auto"),
        margin=read_number(settings, "margin", 36, minimum=0, maximum=144),
        center_image=read_bool(settings, "centerImage", True),
        scale_to_fit=read_bool(settings, "scaleToFit", True),
    )


def _text_layout(settings: Settings, defaults: TextLayoutOptions) -> dict[str, Any]:
    return {
        "font_size": read_number(settings, "fontSize", defaults.font_size, minimum=6, maximum=72),
        "font_family": read_choice(settings, "fontFamily", ("courier", "helvetica", "times"), defaults.font_family),
        "page_size": read_choice(settings, "pageSize", _PAGE_SIZES, defaults.page_size),
        "margin": read_number(settings, "margin", defaults.margin, minimum=0, maximum=144),
    }


def translate_txt_to_pdf(settings: Settings) -> TextLayoutOptions:
    return TextLayoutOptions(**_text_layout(settings, TextLayoutOptions()))


def translate_json_to_pdf(settings: Settings) -> JsonToPDFOptions:
    return JsonToPDFOptions(**_text_layout(settings, JsonToPDFOptions()))


def translate_document_to_pdf(settings: Settings) -> DocumentToPDFOptions:
    return DocumentToPDFOptions(**_text_layout(settings, DocumentToPDFOptions()))


def pdf_to_image_translator(fixed_format: str | None) -> Translator:
    """Translator for pdf-to-image, or one of its per-format aliases."""

    def translate(settings: Settings) -> PDFToImageOptions:
        fmt = fixed_format
        if fmt is None:
            fmt = read_choice(settings, "format", tuple(IMAGE_FORMATS) + ("jpg",), "png")
            if fmt == "jpg":
                fmt = "jpeg"
        return PDFToImageOptions(
            format=fmt,
            quality=read_number(settings, "quality", 0.92, minimum=0.01, maximum=1),
            scale=read_number(settings, "scale", 2.0, minimum=0.25, maximum=8),
            pages=read_str(settings, "pageRange", ""),
        )

    return translate


def translate_pdf_to_json(settings: Settings) -> PDFToJsonOptions:
    return PDFToJsonOptions(
        extract_text=read_bool(settings, "extractText", True),
        extract_metadata=read_bool(settings, "extractMetadata", True),
    )


def translate_extract_images(settings: Settings) -> ExtractImagesOptions:
    fmt = read_choice(settings, "format", tuple(IMAGE_FORMATS) + ("jpg", "original"), "png")
    return ExtractImagesOptions(
        format="jpeg" if fmt == "jpg" else fmt,
        min_size=read_int(settings, "minSize", 100, minimum=0),
    )


def translate_pdf_to_zip(settings: Settings) -> PDFToZipOptions:
    return PDFToZipOptions(output_filename=read_str(settings, "filename", "pdfs.zip"))


def translate_pdf_to_svg(settings: Settings) -> PDFToSVGOptions:
    return PDFToSVGOptions(
        pages=read_str(settings, "pageRange", ""),
        text_as_path=read_bool(settings, "textAsPath", True),
    )


def translate_ebook_to_pdf(settings: Settings) -> EbookToPDFOptions:
    return EbookToPDFOptions(
        page_size=read_choice(settings, "pageSize", _PAGE_SIZES, "A4"),
        font_size=read_number(settings, "fontSize", 11, minimum=6, maximum=72),
    )


# -----------------------------------------------------------------------------
# Optimize / security
# -----------------------------------------------------------------------------


def translate_compress(settings: Settings) -> CompressOptions:
    return CompressOptions(
        quality=read_choice(settings, "quality", tuple(QUALITY_PRESETS), "medium"),
        remove_metadata=read_bool(settings, "removeMetadata", False),
        optimize_images=read_bool(settings, "optimizeImages", True),
    )


def translate_flatten(settings: Settings) -> FlattenOptions:
    forms = read_bool(settings, "flattenForms", True)
    annotations = read_bool(settings, "flattenAnnotations", True)
    if not forms and not annotations:
        forms = annotations = True
    return FlattenOptions(flatten_forms=forms, flatten_annotations=annotations)


def _permissions(settings: Settings) -> dict[str, bool]:
    return {
        "allow_printing": read_bool(settings, "allowPrinting", True),
        "allow_copying": read_bool(settings, "allowCopying", False),
        "allow_modifying": read_bool(settings, "allowModifying", False),
        "allow_annotating": read_bool(settings, "allowAnnotating", True),
    }


def translate_encrypt(settings: Settings) -> EncryptOptions:
    user_password = read_str(settings, "userPassword", "")
    owner_password = read_str(settings, "ownerPassword", "")
    return EncryptOptions(
        user_password=user_password if len(user_password) <= 127 else "",
        owner_password=owner_password if len(owner_password) <= 127 else "",
        **_permissions(settings),
    )


def translate_change_permissions(settings: Settings) -> ChangePermissionsOptions:
    return ChangePermissionsOptions(password=read_str(settings, "password", ""), **_permissions(settings))


def translate_decrypt(settings: Settings) -> DecryptOptions:
    return DecryptOptions(password=read_str(settings, "password", ""))


def translate_sanitize(settings: Settings) -> SanitizeOptions:
    return SanitizeOptions(
        remove_javascript=read_bool(settings, "removeJavaScript", True),
        remove_attachments=read_bool(settings, "removeAttachments", True),
        remove_links=read_bool(settings, "removeLinks", True),
        flatten_forms=read_bool(settings, "flattenForms", True),
        remove_metadata=read_bool(settings, "removeMetadata", True),
        remove_annotations=read_bool(settings, "removeAnnotations", False),
    )


def translate_nothing(settings: Settings) -> dict:
    return {}


# -----------------------------------------------------------------------------
# Table
# -----------------------------------------------------------------------------

TRANSLATORS: dict[str, Translator] = {
    "merge-pdf": translate_merge,
    "split-pdf": translate_split,
    "extract-pages": translate_page_selection,
    "delete-pages": translate_page_selection,
    "rotate-pdf": translate_rotate,
    "reverse-pages": translate_nothing,
    "alternate-merge": translate_alternate_merge,
    "add-blank-page": translate_add_blank_page,
    "organize-pdf": translate_organize,
    "divide-pages": translate_divide_pages,
    "n-up-pdf": translate_n_up,
    "combine-single-page": translate_combine_single_page,
    "grid-combine": translate_grid_combine,
    "posterize-pdf": translate_posterize,
    "fix-page-size": translate_fix_page_size,
    "add-watermark": translate_watermark,
    "page-numbers": translate_page_numbers,
    "header-footer": translate_header_footer,
    "edit-metadata": translate_edit_metadata,
    "remove-metadata": translate_nothing,
    "remove-annotations": translate_remove_annotations,
    "background-color": translate_background_color,
    "remove-blank-pages": translate_remove_blank_pages,
    "table-of-contents": translate_table_of_contents,
    "invert-colors": translate_nothing,
    "txt-to-pdf": translate_txt_to_pdf,
    "json-to-pdf": translate_json_to_pdf,
    "word-to-pdf": translate_document_to_pdf,
    "pptx-to-pdf": translate_document_to_pdf,
    "xps-to-pdf": translate_ebook_to_pdf,
    "epub-to-pdf": translate_ebook_to_pdf,
    "fb2-to-pdf": translate_ebook_to_pdf,
    "mobi-to-pdf": translate_ebook_to_pdf,
    "pdf-to-svg": translate_pdf_to_svg,
    "pdf-to-greyscale": translate_nothing,
    "pdf-to-json": translate_pdf_to_json,
    "extract-images": translate_extract_images,
    "extract-attachments": translate_nothing,
    "pdf-to-zip": translate_pdf_to_zip,
    "compress-pdf": translate_compress,
    "repair-pdf": translate_nothing,
    "flatten-pdf": translate_flatten,
    "linearize-pdf": translate_nothing,
    "encrypt-pdf": translate_encrypt,
    "decrypt-pdf": translate_decrypt,
    "remove-restrictions": translate_decrypt,
    "change-permissions": translate_change_permissions,
    "sanitize-pdf": translate_sanitize,
}
TRANSLATORS.update({kind: translate_image_to_pdf for kind in IMAGE_TO_PDF_KINDS})
TRANSLATORS.update({kind: pdf_to_image_translator(fmt) for kind, fmt in PDF_TO_IMAGE_KINDS.items()})


def translate_settings(kind: str, settings: Settings | None) -> Any:
    """
    Translate a node's raw settings into options for its processor kind.

    Args:
        kind: Processor kind, e.g. "split-pdf"
        settings: Raw node settings (anything that is not a mapping counts as empty)

    Returns:
        The kind's options dataclass, or an empty dict for unknown kinds
    """
    if not isinstance(settings, Mapping):
        settings = {}
    translator = TRANSLATORS.get(kind)
    if translator is None:
        return {}
    return translator(settings)
