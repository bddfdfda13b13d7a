"""
Page layout processors: cut pages apart, put several pages on one sheet,
stack a document onto a single page, and normalize page sizes.

All of them build a new document and draw the source pages into it with
`Page.show_pdf_page()`, so text and vector content survive unrasterized.
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any

from docflow.artifact import PDF_MIME, Artifact

from .base import BaseProcessor, ProcessOutput, derive_filename
from .convert import ORIENTATIONS, PAGE_SIZES
from .edit import _check_color, hex_to_rgb
from .engine import load_pdf_engine, new_pdf, open_pdf, paper_size, save_pdf
from .errors import ErrorCode, ProcessorError

# division -> (columns, rows)
DIVISION_TYPES: dict[str, tuple[int, int]] = {
    "vertical": (2, 1),
    "horizontal": (1, 2),
    "grid-2x2": (2, 2),
    "grid-3x3": (3, 3),
}

# pages per sheet -> (columns, rows); 2-up turns to 1x2 on portrait sheets
PAGES_PER_SHEET: dict[int, tuple[int, int]] = {2: (2, 1), 4: (2, 2), 9: (3, 3), 16: (4, 4)}

# "<columns>x<rows>"
GRID_LAYOUTS = ("1x2", "2x1", "2x2", "2x3", "3x2", "3x3", "4x4")

STACK_DIRECTIONS = ("vertical", "horizontal")

SHEET_MARGIN = 18.0
NUP_GUTTER = 9.0

# Largest page side most viewers open, in points
MAX_PAGE_SIDE = 14400


# -----------------------------------------------------------------------------
# Geometry helpers
# -----------------------------------------------------------------------------


def sheet_size(name: str, landscape: bool) -> tuple[float, float]:
    width, height = paper_size(name)
    return (height, width) if landscape else (width, height)


def grid_cells(width: float, height: float, columns: int, rows: int, margin: float, spacing: float) -> list:
    """Cell rects of a columns x rows grid on a sheet, row by row."""
    fitz = load_pdf_engine()
    cell_w = (width - 2 * margin - spacing * (columns - 1)) / columns
    cell_h = (height - 2 * margin - spacing * (rows - 1)) / rows
    cells = []
    for row in range(rows):
        for col in range(columns):
            x0 = margin + col * (cell_w + spacing)
            y0 = margin + row * (cell_h + spacing)
            cells.append(fitz.Rect(x0, y0, x0 + cell_w, y0 + cell_h))
    return cells


def split_rect(rect, columns: int, rows: int, overlap: float = 0.0) -> list:
    """
    Tile a rect into columns x rows pieces, row by row.

    Each piece is grown by `overlap` points on every side, then clipped back
    to the rect.
    """
    fitz = load_pdf_engine()
    tile_w = rect.width / columns
    tile_h = rect.height / rows
    tiles = []
    for row in range(rows):
        for col in range(columns):
            tile = fitz.Rect(
                rect.x0 + col * tile_w - overlap,
                rect.y0 + row * tile_h - overlap,
                rect.x0 + (col + 1) * tile_w + overlap,
                rect.y0 + (row + 1) * tile_h + overlap,
            )
            tiles.append(tile & rect)
    return tiles


def show_page(target, rect, doc, index: int, clip=None) -> bool:
    """Draw a source page into `rect` of `target`. Pages with no content are skipped."""
    if not doc[index].get_contents():
        return False
    target.show_pdf_page(rect, doc, index, clip=clip)
    return True


# -----------------------------------------------------------------------------
# Base
# -----------------------------------------------------------------------------


class LayoutProcessor(BaseProcessor):
    """
    Build a new PDF from the inputs' pages.

    Subclasses implement `build()`, which fills the empty output document.
    The result is saved as `<first input stem><suffix>.pdf`.
    """

    suffix: str = "_layout"

    async def _process(self, files: list[Artifact], options: Any) -> ProcessOutput:
        out = new_pdf()
        try:
            metadata = await self.build(out, files, options) or {}
            await self.checkpoint()
            self.update_progress(92, "Saving PDF...")
            data = save_pdf(out)
            metadata.setdefault("pageCount", out.page_count)
        finally:
            out.close()

        filename = derive_filename(files[0], self.suffix)
        return self.success_output(Artifact(data, filename, PDF_MIME), filename, metadata)

    @abstractmethod
    async def build(self, out, files: list[Artifact], options: Any) -> dict[str, Any] | None:
        """Draw into `out`. May return metadata for the output envelope."""

    async def fill_sheets(self, out, pages: list, size: tuple[float, float], cells: list, border: bool) -> None:
        """Place (document, page index) pairs into grid cells, starting a sheet whenever the grid is full."""
        width, height = size
        sheet = None
        async for n, (doc, index) in self.iter_items(list(enumerate(pages)), start=5, end=90, message="Placing page"):
            slot = n % len(cells)
            if slot == 0:
                sheet = out.new_page(width=width, height=height)
            show_page(sheet, cells[slot], doc, index)
            if border:
                sheet.draw_rect(cells[slot], color=(0, 0, 0), width=0.5)


# -----------------------------------------------------------------------------
# Divide / posterize
# -----------------------------------------------------------------------------


@dataclass
class DividePagesOptions:
    division: str = "vertical"


class DividePagesProcessor(LayoutProcessor):
    """
    Cut every page into equal pieces, each becoming a page of its own.

    "vertical" cuts down the middle (left half, right half), "horizontal"
    across it (top, bottom). Grid divisions are read row by row.
    """

    kind = "divide-pages"
    suffix = "_divided"
    options_class = DividePagesOptions

    def validate_options(self, options: DividePagesOptions) -> str | None:
        if options.division not in DIVISION_TYPES:
            return f"Unsupported division type '{options.division}'."
        return None

    async def build(self, out, files: list[Artifact], options: DividePagesOptions) -> dict[str, Any]:
        columns, rows = DIVISION_TYPES[options.division]
        with open_pdf(files[0]) as doc:
            async for page in self.iter_pages(doc, start=5, end=90):
                for tile in split_rect(page.rect, columns, rows):
                    target = out.new_page(width=tile.width, height=tile.height)
                    show_page(target, target.rect, doc, page.number, clip=tile)
            source_pages = doc.page_count
        return {"sourcePageCount": source_pages, "piecesPerPage": columns * rows}


@dataclass
class PosterizeOptions:
    columns: int = 2
    rows: int = 2
    overlap: float = 10.0


class PosterizePDFProcessor(LayoutProcessor):
    """
    Enlarge each page across several sheets for printing as a poster.

    Every tile is scaled up onto a sheet the size of its source page. Tiles
    overlap their neighbours by `overlap` points to leave room for gluing.
    """

    kind = "posterize-pdf"
    suffix = "_poster"
    options_class = PosterizeOptions

    def validate_options(self, options: PosterizeOptions) -> str | None:
        if not 1 <= options.columns <= 10 or not 1 <= options.rows <= 10:
            return "Columns and rows must each be between 1 and 10."
        if not 0 <= options.overlap <= 200:
            return "Overlap must be between 0 and 200 points."
        return None

    async def build(self, out, files: list[Artifact], options: PosterizeOptions) -> dict[str, Any]:
        with open_pdf(files[0]) as doc:
            async for page in self.iter_pages(doc, start=5, end=90):
                rect = page.rect
                for tile in split_rect(rect, options.columns, options.rows, options.overlap):
                    target = out.new_page(width=rect.width, height=rect.height)
                    show_page(target, target.rect, doc, page.number, clip=tile)
            source_pages = doc.page_count
        return {
            "sourcePageCount": source_pages,
            "tilesPerPage": options.columns * options.rows,
        }


# -----------------------------------------------------------------------------
# Several pages per sheet
# -----------------------------------------------------------------------------


@dataclass
class NUpOptions:
    pages_per_sheet: int = 4
    page_size: str = "A4"
    orientation: str = "auto"
    use_margins: bool = True
    add_border: bool = False


class NUpPDFProcessor(LayoutProcessor):
    """
    Print several pages on each sheet.

    With orientation "auto", 2-up sheets are landscape and the rest portrait.
    """

    kind = "n-up-pdf"
    suffix = "_nup"
    options_class = NUpOptions

    def validate_options(self, options: NUpOptions) -> str | None:
        if options.pages_per_sheet not in PAGES_PER_SHEET:
            return f"Pages per sheet must be one of {', '.join(map(str, PAGES_PER_SHEET))}."
        if options.page_size.upper() not in PAGE_SIZES:
            return f"Unsupported page size '{options.page_size}'."
        if options.orientation not in ORIENTATIONS:
            return f"Unsupported orientation '{options.orientation}'."
        return None

    async def build(self, out, files: list[Artifact], options: NUpOptions) -> dict[str, Any]:
        columns, rows = PAGES_PER_SHEET[options.pages_per_sheet]
        if options.orientation == "auto":
            landscape = columns > rows
        else:
            landscape = options.orientation == "landscape"
        if columns != rows and not landscape:
            columns, rows = rows, columns

        width, height = sheet_size(options.page_size, landscape)
        margin, gutter = (SHEET_MARGIN, NUP_GUTTER) if options.use_margins else (0.0, 0.0)
        cells = grid_cells(width, height, columns, rows, margin, gutter)

        with open_pdf(files[0]) as doc:
            pages = [(doc, i) for i in range(doc.page_count)]
            await self.fill_sheets(out, pages, (width, height), cells, options.add_border)
        return {
            "sourcePageCount": len(pages),
            "pagesPerSheet": options.pages_per_sheet,
            "sheetCount": out.page_count,
        }


@dataclass
class GridCombineOptions:
    layout: str = "2x2"
    spacing: float = 10.0
    page_size: str = "A4"
    add_border: bool = False


class GridCombineProcessor(LayoutProcessor):
    """
    Lay the pages of one or more PDFs out in a grid, in input order.

    Layouts are "<columns>x<rows>"; sheets wider than tall are landscape.
    """

    kind = "grid-combine"
    suffix = "_grid"
    options_class = GridCombineOptions
    max_files = None

    def validate_options(self, options: GridCombineOptions) -> str | None:
        if options.layout not in GRID_LAYOUTS:
            return f"Unsupported grid layout '{options.layout}'."
        if not 0 <= options.spacing <= 50:
            return "Spacing must be between 0 and 50 points."
        if options.page_size.upper() not in PAGE_SIZES:
            return f"Unsupported page size '{options.page_size}'."
        return None

    async def build(self, out, files: list[Artifact], options: GridCombineOptions) -> dict[str, Any]:
        columns, rows = (int(n) for n in options.layout.split("x"))
        width, height = sheet_size(options.page_size, columns > rows)
        cells = grid_cells(width, height, columns, rows, SHEET_MARGIN, options.spacing)

        with ExitStack() as stack:
            docs = [stack.enter_context(open_pdf(source)) for source in files]
            pages = [(doc, i) for doc in docs for i in range(doc.page_count)]
            await self.fill_sheets(out, pages, (width, height), cells, options.add_border)
        return {
            "fileCount": len(files),
            "sourcePageCount": len(pages),
            "layout": options.layout,
            "sheetCount": out.page_count,
        }


# -----------------------------------------------------------------------------
# Single page / page size
# -----------------------------------------------------------------------------


@dataclass
class CombineSinglePageOptions:
    direction: str = "vertical"
    spacing: float = 0.0
    background_color: str = "#FFFFFF"
    add_separator: bool = False


class CombineSinglePageProcessor(LayoutProcessor):
    """
    Stack every page onto one long page.

    "vertical" stacks top to bottom, "horizontal" left to right; narrower
    pages are centred across the stack.
    """

    kind = "combine-single-page"
    suffix = "_single_page"
    options_class = CombineSinglePageOptions

    def validate_options(self, options: CombineSinglePageOptions) -> str | None:
        if options.direction not in STACK_DIRECTIONS:
            return f"Unsupported direction '{options.direction}'."
        if not 0 <= options.spacing <= 200:
            return "Spacing must be between 0 and 200 points."
        return _check_color(options.background_color, "Background color")

    async def build(self, out, files: list[Artifact], options: CombineSinglePageOptions) -> dict[str, Any]:
        fitz = load_pdf_engine()
        vertical = options.direction == "vertical"
        spacing = options.spacing

        with open_pdf(files[0]) as doc:
            rects = [page.rect for page in doc]
            gaps = spacing * (len(rects) - 1)
            if vertical:
                width = max(r.width for r in rects)
                height = sum(r.height for r in rects) + gaps
            else:
                width = sum(r.width for r in rects) + gaps
                height = max(r.height for r in rects)
            if max(width, height) > MAX_PAGE_SIDE:
                raise ProcessorError.of(
                    ErrorCode.PROCESSING_FAILED,
                    "The combined page would be too large.",
                    f"{width:.0f} x {height:.0f} pt exceeds the {MAX_PAGE_SIDE} pt limit.",
                    recoverable=False,
                    suggested_action="Split the document first, or combine fewer pages.",
                )

            sheet = out.new_page(width=width, height=height)
            if options.background_color != "#FFFFFF":
                sheet.draw_rect(sheet.rect, color=None, fill=hex_to_rgb(options.background_color))

            offset = 0.0
            async for page in self.iter_pages(doc, start=5, end=90):
                rect = page.rect
                if options.add_separator and page.number > 0:
                    middle = offset - spacing / 2
                    if vertical:
                        sheet.draw_line((0, middle), (width, middle), color=(0.6, 0.6, 0.6), width=1)
                    else:
                        sheet.draw_line((middle, 0), (middle, height), color=(0.6, 0.6, 0.6), width=1)
                if vertical:
                    x0 = (width - rect.width) / 2
                    target = fitz.Rect(x0, offset, x0 + rect.width, offset + rect.height)
                    offset += rect.height + spacing
                else:
                    y0 = (height - rect.height) / 2
                    target = fitz.Rect(offset, y0, offset + rect.width, y0 + rect.height)
                    offset += rect.width + spacing
                show_page(sheet, target, doc, page.number)

        return {"sourcePageCount": len(rects), "width": round(width, 2), "height": round(height, 2)}


@dataclass
class FixPageSizeOptions:
    target_size: str = "A4"
    orientation: str = "auto"


class FixPageSizeProcessor(LayoutProcessor):
    """
    Scale every page onto a standard paper size, centred and undistorted.

    With orientation "auto" each page keeps its own orientation. Bookmarks
    are carried over.
    """

    kind = "fix-page-size"
    suffix = "_resized"
    options_class = FixPageSizeOptions

    def validate_options(self, options: FixPageSizeOptions) -> str | None:
        if options.target_size.upper() not in PAGE_SIZES:
            return f"Unsupported page size '{options.target_size}'."
        if options.orientation not in ORIENTATIONS:
            return f"Unsupported orientation '{options.orientation}'."
        return None

    async def build(self, out, files: list[Artifact], options: FixPageSizeOptions) -> dict[str, Any]:
        resized = 0
        with open_pdf(files[0]) as doc:
            async for page in self.iter_pages(doc, start=5, end=90):
                rect = page.rect
                if options.orientation == "auto":
                    landscape = rect.width > rect.height
                else:
                    landscape = options.orientation == "landscape"
                width, height = sheet_size(options.target_size, landscape)
                if abs(rect.width - width) > 1 or abs(rect.height - height) > 1:
                    resized += 1
                target = out.new_page(width=width, height=height)
                show_page(target, target.rect, doc, page.number)
            toc = doc.get_toc(simple=True)

        if toc:
            try:
                out.set_toc(toc)
            except ValueError as e:
                self.logger.warning("Dropping bookmarks that could not be copied: %s", e)
        return {"targetSize": options.target_size.upper(), "resizedPages": resized}
