"""
Processor registry - maps a node "kind" to the processor that runs it.

Each entry bundles a processor factory with the settings translator for that
kind and a little catalogue information (label, category, formats) used for
listing tools and checking connections between them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from docflow.processors import (
    AddBlankPageProcessor,
    AddWatermarkProcessor,
    AlternateMergeProcessor,
    BackgroundColorProcessor,
    BaseProcessor,
    ChangePermissionsProcessor,
    CombineSinglePageProcessor,
    CompressPDFProcessor,
    DecryptPDFProcessor,
    DeletePagesProcessor,
    DividePagesProcessor,
    EditMetadataProcessor,
    EncryptPDFProcessor,
    EpubToPDFProcessor,
    ExtractAttachmentsProcessor,
    ExtractImagesProcessor,
    ExtractPagesProcessor,
    Fb2ToPDFProcessor,
    FixPageSizeProcessor,
    FlattenPDFProcessor,
    GridCombineProcessor,
    HeaderFooterProcessor,
    ImageToPDFProcessor,
    InvertColorsProcessor,
    JsonToPDFProcessor,
    LinearizePDFProcessor,
    MergePDFProcessor,
    MobiToPDFProcessor,
    NUpPDFProcessor,
    OrganizePDFProcessor,
    PageNumbersProcessor,
    PDFToGreyscaleProcessor,
    PDFToImageProcessor,
    PDFToJsonProcessor,
    PDFToSVGProcessor,
    PDFToZipProcessor,
    PosterizePDFProcessor,
    PptxToPDFProcessor,
    RemoveAnnotationsProcessor,
    RemoveBlankPagesProcessor,
    RemoveMetadataProcessor,
    RemoveRestrictionsProcessor,
    RepairPDFProcessor,
    ReversePagesProcessor,
    RotatePDFProcessor,
    SanitizePDFProcessor,
    SplitPDFProcessor,
    TableOfContentsProcessor,
    TextToPDFProcessor,
    WordToPDFProcessor,
    XpsToPDFProcessor,
)

from .settings import IMAGE_TO_PDF_KINDS, PDF_TO_IMAGE_KINDS, TRANSLATORS, Settings, Translator

ANY_FORMAT = "*"


@dataclass(frozen=True)
class ProcessorEntry:
    """
    A registered processor kind.

    Attributes:
        kind: Node kind, e.g. "merge-pdf"
        factory: Zero-argument callable returning a new processor instance
        translator: Settings -> options translator for this kind
        label: Human-readable name
        category: Grouping used when listing kinds
        accepted_formats: Input formats ("pdf", "image", "txt", ..., or "*")
        output_format: Format of the produced artifacts
    """

    kind: str
    factory: Callable[[], BaseProcessor]
    translator: Translator
    label: str = ""
    category: str = "other"
    accepted_formats: tuple[str, ...] = ("pdf",)
    output_format: str = "pdf"

    def accepts_format(self, fmt: str) -> bool:
        return ANY_FORMAT in self.accepted_formats or fmt in self.accepted_formats

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "label": self.label or self.kind,
            "category": self.category,
            "accepted_formats": list(self.accepted_formats),
            "output_format": self.output_format,
        }


class ProcessorRegistry:
    """Kind -> ProcessorEntry table."""

    def __init__(self, entries: list[ProcessorEntry] | None = None):
        self._entries: dict[str, ProcessorEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: ProcessorEntry) -> ProcessorEntry:
        if entry.kind in self._entries:
            raise ValueError(f"Processor kind '{entry.kind}' is already registered")
        self._entries[entry.kind] = entry
        return entry

    def register(
        self,
        kind: str,
        factory: Callable[[], BaseProcessor],
        translator: Translator | None = None,
        **info: Any,
    ) -> ProcessorEntry:
        """
        Register a processor factory for a kind.

        Args:
            kind: Node kind
            factory: Callable returning a fresh processor (a processor class works)
            translator: Settings translator (default: the built-in one for the
                kind, or pass-through of the raw settings)
            **info: label, category, accepted_formats, output_format
        """
        if translator is None:
            translator = TRANSLATORS.get(kind, _passthrough)
        return self.add(ProcessorEntry(kind=kind, factory=factory, translator=translator, **info))

    def __contains__(self, kind: object) -> bool:
        return kind in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProcessorEntry]:
        return iter(self._entries.values())

    def get(self, kind: str) -> ProcessorEntry | None:
        return self._entries.get(kind)

    def create(self, kind: str) -> BaseProcessor:
        """New processor instance for a kind. Raises KeyError if unregistered."""
        entry = self._entries.get(kind)
        if entry is None:
            raise KeyError(f"No processor registered for kind '{kind}'")
        return entry.factory()

    def translate(self, kind: str, settings: Settings | None) -> Any:
        """Translate settings for a kind. Raises KeyError if unregistered."""
        entry = self._entries.get(kind)
        if entry is None:
            raise KeyError(f"No processor registered for kind '{kind}'")
        return entry.translator(settings if isinstance(settings, Mapping) else {})

    def kinds(self) -> list[str]:
        return sorted(self._entries)


def _passthrough(settings: Settings) -> dict:
    return dict(settings)


# -----------------------------------------------------------------------------
# Built-in table
# -----------------------------------------------------------------------------

_BUILTINS: list[tuple[str, Callable[[], BaseProcessor], str, str, tuple[str, ...], str]] = [
    # kind, factory, label, category, accepted formats, output format
    ("merge-pdf", MergePDFProcessor, "Merge PDF", "organize", ("pdf",), "pdf"),
    ("split-pdf", SplitPDFProcessor, "Split PDF", "organize", ("pdf",), "pdf"),
    ("extract-pages", ExtractPagesProcessor, "Extract Pages", "organize", ("pdf",), "pdf"),
    ("delete-pages", DeletePagesProcessor, "Delete Pages", "organize", ("pdf",), "pdf"),
    ("rotate-pdf", RotatePDFProcessor, "Rotate PDF", "organize", ("pdf",), "pdf"),
    ("reverse-pages", ReversePagesProcessor, "Reverse Pages", "organize", ("pdf",), "pdf"),
    ("alternate-merge", AlternateMergeProcessor, "Alternate Merge", "organize", ("pdf",), "pdf"),
    ("add-blank-page", AddBlankPageProcessor, "Add Blank Page", "organize", ("pdf",), "pdf"),
    ("organize-pdf", OrganizePDFProcessor, "Organize PDF", "organize", ("pdf",), "pdf"),
    ("divide-pages", DividePagesProcessor, "Divide Pages", "organize", ("pdf",), "pdf"),
    ("n-up-pdf", NUpPDFProcessor, "N-Up PDF", "organize", ("pdf",), "pdf"),
    ("combine-single-page", CombineSinglePageProcessor, "Combine to Single Page", "organize", ("pdf",), "pdf"),
    ("grid-combine", GridCombineProcessor, "Grid Combine", "organize", ("pdf",), "pdf"),
    ("posterize-pdf", PosterizePDFProcessor, "Posterize PDF", "organize", ("pdf",), "pdf"),
    ("add-watermark", AddWatermarkProcessor, "Add Watermark", "edit", ("pdf",), "pdf"),
    ("page-numbers", PageNumbersProcessor, "Page Numbers", "edit", ("pdf",), "pdf"),
    ("header-footer", HeaderFooterProcessor, "Header & Footer", "edit", ("pdf",), "pdf"),
    ("edit-metadata", EditMetadataProcessor, "Edit Metadata", "edit", ("pdf",), "pdf"),
    ("remove-metadata", RemoveMetadataProcessor, "Remove Metadata", "edit", ("pdf",), "pdf"),
    ("remove-annotations", RemoveAnnotationsProcessor, "Remove Annotations", "edit", ("pdf",), "pdf"),
    ("background-color", BackgroundColorProcessor, "Background Color", "edit", ("pdf",), "pdf"),
    ("invert-colors", InvertColorsProcessor, "Invert Colors", "edit", ("pdf",), "pdf"),
    ("remove-blank-pages", RemoveBlankPagesProcessor, "Remove Blank Pages", "edit", ("pdf",), "pdf"),
    ("table-of-contents", TableOfContentsProcessor, "Table of Contents", "edit", ("pdf",), "pdf"),
    ("txt-to-pdf", TextToPDFProcessor, "Text to PDF", "convert-to-pdf", ("txt",), "pdf"),
    ("json-to-pdf", JsonToPDFProcessor, "JSON to PDF", "convert-to-pdf", ("json", "txt"), "pdf"),
    ("word-to-pdf", WordToPDFProcessor, "Word to PDF", "convert-to-pdf", ("docx",), "pdf"),
    ("pptx-to-pdf", PptxToPDFProcessor, "PowerPoint to PDF", "convert-to-pdf", ("pptx",), "pdf"),
    ("xps-to-pdf", XpsToPDFProcessor, "XPS to PDF", "convert-to-pdf", ("xps",), "pdf"),
    ("epub-to-pdf", EpubToPDFProcessor, "EPUB to PDF", "convert-to-pdf", ("epub",), "pdf"),
    ("fb2-to-pdf", Fb2ToPDFProcessor, "FB2 to PDF", "convert-to-pdf", ("fb2",), "pdf"),
    ("mobi-to-pdf", MobiToPDFProcessor, "MOBI to PDF", "convert-to-pdf", ("mobi",), "pdf"),
    ("pdf-to-greyscale", PDFToGreyscaleProcessor, "PDF to Greyscale", "convert-from-pdf", ("pdf",), "pdf"),
    ("pdf-to-svg", PDFToSVGProcessor, "PDF to SVG", "convert-from-pdf", ("pdf",), "svg"),
    ("pdf-to-json", PDFToJsonProcessor, "PDF to JSON", "convert-from-pdf", ("pdf",), "json"),
    ("extract-images", ExtractImagesProcessor, "Extract Images", "convert-from-pdf", ("pdf",), "image"),
    ("extract-attachments", ExtractAttachmentsProcessor, "Extract Attachments", "convert-from-pdf", ("pdf",), "file"),
    ("pdf-to-zip", PDFToZipProcessor, "Package to ZIP", "convert-from-pdf", (ANY_FORMAT,), "zip"),
    ("compress-pdf", CompressPDFProcessor, "Compress PDF", "optimize", ("pdf",), "pdf"),
    ("repair-pdf", RepairPDFProcessor, "Repair PDF", "optimize", ("pdf",), "pdf"),
    ("flatten-pdf", FlattenPDFProcessor, "Flatten PDF", "optimize", ("pdf",), "pdf"),
    ("fix-page-size", FixPageSizeProcessor, "Fix Page Size", "optimize", ("pdf",), "pdf"),
    ("linearize-pdf", LinearizePDFProcessor, "Linearize PDF", "optimize", ("pdf",), "pdf"),
    ("encrypt-pdf", EncryptPDFProcessor, "Encrypt PDF", "security", ("pdf",), "pdf"),
    ("decrypt-pdf", DecryptPDFProcessor, "Decrypt PDF", "security", ("pdf",), "pdf"),
    ("change-permissions", ChangePermissionsProcessor, "Change Permissions", "security", ("pdf",), "pdf"),
    ("remove-restrictions", RemoveRestrictionsProcessor, "Remove Restrictions", "security", ("pdf",), "pdf"),
    ("sanitize-pdf", SanitizePDFProcessor, "Sanitize PDF", "security", ("pdf",), "pdf"),
]


def build_default_registry() -> ProcessorRegistry:
    """A new registry holding every built-in processor kind."""
    registry = ProcessorRegistry()
    for kind, factory, label, category, accepted, output in _BUILTINS:
        registry.register(
            kind,
            factory,
            label=label,
            category=category,
            accepted_formats=accepted,
            output_format=output,
        )

    for kind in IMAGE_TO_PDF_KINDS:
        name = kind.split("-to-")[0].upper()
        registry.register(
            kind,
            ImageToPDFProcessor,
            label="Image to PDF" if name == "IMAGE" else f"{name} to PDF",
            category="convert-to-pdf",
            accepted_formats=("image",),
            output_format="pdf",
        )

    for kind in PDF_TO_IMAGE_KINDS:
        name = kind.split("-to-")[1].upper()
        registry.register(
            kind,
            PDFToImageProcessor,
            label="PDF to Image" if name == "IMAGE" else f"PDF to {name}",
            category="convert-from-pdf",
            accepted_formats=("pdf",),
            output_format="image",
        )
    return registry


# Process-wide default registry, built on first use
_default_registry: ProcessorRegistry | None = None


def default_registry() -> ProcessorRegistry:
    """The shared built-in registry, created once."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_default_registry()
    return _default_registry


def reset_default_registry() -> None:
    """Drop the shared registry so the next access rebuilds it."""
    global _default_registry
    _default_registry = None
