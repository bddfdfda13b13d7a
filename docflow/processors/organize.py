"""Page organization processors: merge, split, extract, delete, rotate, reorder."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from docflow.artifact import PDF_MIME, Artifact

from .base import BaseProcessor, ProcessOutput, SinglePDFProcessor, derive_filename
from .engine import new_pdf, open_pdf, save_pdf
from .errors import ErrorCode, ProcessorError
from .pages import PageRange, PageRangeError, page_range_error, parse_page_ranges, selected_indices

SPLIT_MODES = ("every", "ranges", "single")
ROTATION_ANGLES = (90, 180, 270, -90)


# -----------------------------------------------------------------------------
# Merge
# -----------------------------------------------------------------------------


@dataclass
class MergeOptions:
    preserve_bookmarks: bool = True
    output_filename: str = "merged.pdf"


class MergePDFProcessor(BaseProcessor):
    """Concatenate several PDFs in input order."""

    kind = "merge-pdf"
    options_class = MergeOptions
    min_files = 2
    max_files = None

    def validate_options(self, options: MergeOptions) -> str | None:
        if not options.output_filename.strip():
            return "Output filename cannot be empty."
        return None

    async def _process(self, files: list[Artifact], options: MergeOptions) -> ProcessOutput:
        merged = new_pdf()
        toc: list[list[Any]] = []
        try:
            async for source in self.iter_items(files, start=5, end=85, message="Merging file"):
                with open_pdf(source) as doc:
                    offset = merged.page_count
                    if options.preserve_bookmarks:
                        for level, title, page, *_ in doc.get_toc(simple=True):
                            toc.append([level, title, page + offset])
                    merged.insert_pdf(doc)

            if toc:
                try:
                    merged.set_toc(toc)
                except ValueError as e:
                    self.logger.warning("Dropping bookmarks that could not be merged: %s", e)

            self.update_progress(90, "Saving merged PDF...")
            data = save_pdf(merged)
            page_count = merged.page_count
        finally:
            merged.close()

        filename = options.output_filename
        if not filename.lower().endswith(".pdf"):
            filename += ".pdf"
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {"fileCount": len(files), "pageCount": page_count},
        )


# -----------------------------------------------------------------------------
# Split
# -----------------------------------------------------------------------------


@dataclass
class SplitOptions:
    mode: str = "every"
    pages_per_split: int = 1
    ranges: str = ""


class SplitPDFProcessor(BaseProcessor):
    """Split one PDF into several documents."""

    kind = "split-pdf"
    options_class = SplitOptions

    def validate_options(self, options: SplitOptions) -> str | None:
        if options.mode not in SPLIT_MODES:
            return f"Unknown split mode '{options.mode}'."
        if options.pages_per_split < 1:
            return "Pages per split must be at least 1."
        if options.mode == "ranges" and not options.ranges.strip():
            return "At least one page range is required for splitting."
        return None

    def plan_ranges(self, options: SplitOptions, total_pages: int) -> list[PageRange]:
        if options.mode == "ranges":
            try:
                return parse_page_ranges(options.ranges, total_pages)
            except PageRangeError as e:
                raise page_range_error(e, total_pages) from e
        step = 1 if options.mode == "single" else options.pages_per_split
        return [
            PageRange(start, min(start + step - 1, total_pages))
            for start in range(1, total_pages + 1, step)
        ]

    async def _process(self, files: list[Artifact], options: SplitOptions) -> ProcessOutput:
        source = files[0]
        self.update_progress(5, "Loading source PDF...")

        outputs: list[Artifact] = []
        with open_pdf(source) as doc:
            total_pages = doc.page_count
            ranges = self.plan_ranges(options, total_pages)
            self.update_progress(15, f"Source PDF has {total_pages} pages.")

            async for r in self.iter_items(ranges, start=15, end=90, message="Extracting range"):
                part = new_pdf()
                try:
                    part.insert_pdf(doc, from_page=r.start - 1, to_page=r.end - 1)
                    data = save_pdf(part)
                finally:
                    part.close()
                filename = derive_filename(source, f"_pages_{r.label()}")
                outputs.append(Artifact(data, filename, PDF_MIME))

        names = [a.filename for a in outputs]
        return self.success_output(
            outputs,
            ", ".join(names),
            {
                "rangeCount": len(outputs),
                "sourcePageCount": total_pages,
                "outputFiles": names,
            },
        )


# -----------------------------------------------------------------------------
# Page selection edits
# -----------------------------------------------------------------------------


@dataclass
class PageSelectionOptions:
    pages: str = "1"


class ExtractPagesProcessor(SinglePDFProcessor):
    """Keep only the selected pages, in the order given."""

    kind = "extract-pages"
    suffix = "_extracted"
    options_class = PageSelectionOptions

    def validate_options(self, options: PageSelectionOptions) -> str | None:
        if not options.pages.strip():
            return "Select at least one page to extract."
        return None

    async def transform(self, doc, options: PageSelectionOptions) -> dict[str, Any]:
        source_pages = doc.page_count
        indices = selected_indices(options.pages, source_pages)
        doc.select(indices)
        self.update_progress(80, f"Extracted {len(indices)} pages.")
        return {"sourcePageCount": source_pages, "extractedPages": [i + 1 for i in indices]}


class DeletePagesProcessor(SinglePDFProcessor):
    """Remove the selected pages."""

    kind = "delete-pages"
    suffix = "_deleted"
    options_class = PageSelectionOptions

    def validate_options(self, options: PageSelectionOptions) -> str | None:
        if not options.pages.strip():
            return "Select at least one page to delete."
        return None

    async def transform(self, doc, options: PageSelectionOptions) -> dict[str, Any]:
        source_pages = doc.page_count
        remove = set(selected_indices(options.pages, source_pages))
        keep = [i for i in range(source_pages) if i not in remove]
        if not keep:
            raise ProcessorError.of(
                ErrorCode.INVALID_PAGE_RANGE,
                "Cannot delete every page of the document.",
                f"The PDF has {source_pages} pages.",
            )
        doc.select(keep)
        return {"sourcePageCount": source_pages, "deletedPages": sorted(i + 1 for i in remove)}


@dataclass
class RotateOptions:
    angle: int = 90
    pages: str = ""


class RotatePDFProcessor(SinglePDFProcessor):
    kind = "rotate-pdf"
    suffix = "_rotated"
    options_class = RotateOptions

    def validate_options(self, options: RotateOptions) -> str | None:
        if options.angle not in ROTATION_ANGLES:
            return f"Rotation angle must be one of {', '.join(map(str, ROTATION_ANGLES))}."
        return None

    async def transform(self, doc, options: RotateOptions) -> dict[str, Any]:
        indices = selected_indices(options.pages, doc.page_count)
        async for page in self.iter_pages(doc, indices):
            page.set_rotation((page.rotation + options.angle) % 360)
        return {"angle": options.angle, "rotatedPages": len(indices)}


class ReversePagesProcessor(SinglePDFProcessor):
    kind = "reverse-pages"
    suffix = "_reversed"

    async def transform(self, doc, options: Any) -> None:
        doc.select(list(reversed(range(doc.page_count))))


@dataclass
class OrganizeOptions:
    page_order: tuple[int, ...] = ()


class OrganizePDFProcessor(SinglePDFProcessor):
    """Rearrange pages into an explicit order (pages may repeat or be dropped)."""

    kind = "organize-pdf"
    suffix = "_organized"
    options_class = OrganizeOptions

    async def transform(self, doc, options: OrganizeOptions) -> dict[str, Any]:
        total = doc.page_count
        if not options.page_order:
            return {"pageOrder": list(range(1, total + 1))}
        invalid = [p for p in options.page_order if p < 1 or p > total]
        if invalid:
            raise ProcessorError.of(
                ErrorCode.INVALID_PAGE_RANGE,
                f"Page order references pages outside the document: {invalid}.",
                f"The PDF has {total} pages.",
            )
        doc.select([p - 1 for p in options.page_order])
        return {"pageOrder": list(options.page_order)}


# -----------------------------------------------------------------------------
# Alternate merge / blank pages
# -----------------------------------------------------------------------------


@dataclass
class AlternateMergeOptions:
    reverse_second: bool = False


class AlternateMergeProcessor(BaseProcessor):
    """
    Interleave the pages of two PDFs (a1, b1, a2, b2, ...).

    Typical use: recombining odd and even pages from a single-sided scan,
    with the second document reversed.
    """

    kind = "alternate-merge"
    options_class = AlternateMergeOptions
    min_files = 2
    max_files = 2

    async def _process(self, files: list[Artifact], options: AlternateMergeOptions) -> ProcessOutput:
        merged = new_pdf()
        try:
            with open_pdf(files[0]) as first, open_pdf(files[1]) as second:
                count_a, count_b = first.page_count, second.page_count
                order_b = list(range(count_b))
                if options.reverse_second:
                    order_b.reverse()

                async for i in self.iter_items(range(max(count_a, count_b)), message="Interleaving page"):
                    if i < count_a:
                        merged.insert_pdf(first, from_page=i, to_page=i)
                    if i < count_b:
                        merged.insert_pdf(second, from_page=order_b[i], to_page=order_b[i])

            self.update_progress(92, "Saving PDF...")
            data = save_pdf(merged)
            page_count = merged.page_count
        finally:
            merged.close()

        filename = derive_filename(files[0], "_alternate_merged")
        return self.success_output(
            Artifact(data, filename, PDF_MIME),
            filename,
            {"pageCount": page_count},
        )


@dataclass
class AddBlankPageOptions:
    position: str = "end"
    count: int = 1


class AddBlankPageProcessor(SinglePDFProcessor):
    """
    Insert blank pages.

    `position` is "start", "end", or a page number N meaning "after page N"
    (0 is the same as "start"). New pages copy the size of their neighbour.
    """

    kind = "add-blank-page"
    suffix = "_blank_added"
    options_class = AddBlankPageOptions

    def validate_options(self, options: AddBlankPageOptions) -> str | None:
        if not 1 <= options.count <= 100:
            return "Count must be between 1 and 100."
        position = options.position.strip().lower()
        if position not in ("start", "end") and not position.isdigit():
            return f"Invalid position '{options.position}'."
        return None

    async def transform(self, doc, options: AddBlankPageOptions) -> dict[str, Any]:
        total = doc.page_count
        position = options.position.strip().lower()
        if position == "start":
            index = 0
        elif position == "end":
            index = total
        else:
            index = int(position)
            if index > total:
                raise ProcessorError.of(
                    ErrorCode.INVALID_PAGE_RANGE,
                    f"Position {index} exceeds total pages ({total}).",
                )

        neighbour = doc[max(index - 1, 0)]
        width, height = neighbour.rect.width, neighbour.rect.height
        for _ in range(options.count):
            await self.checkpoint()
            doc.new_page(pno=index if index < doc.page_count else -1, width=width, height=height)
        return {"insertedPages": options.count, "insertedAt": index}
