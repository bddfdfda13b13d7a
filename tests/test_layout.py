import asyncio

import pytest

from docflow.artifact import PDF_MIME, Artifact
from docflow.processors import (
    CombineSinglePageProcessor,
    DividePagesProcessor,
    FixPageSizeProcessor,
    GridCombineProcessor,
    NUpPDFProcessor,
    PosterizePDFProcessor,
)
from docflow.processors.base import ProcessInput
from docflow.processors.errors import ErrorCode
from docflow.processors.layout import (
    CombineSinglePageOptions,
    DividePagesOptions,
    FixPageSizeOptions,
    GridCombineOptions,
    NUpOptions,
    PosterizeOptions,
    grid_cells,
    split_rect,
)


def run(processor, files, options=None):
    return asyncio.run(processor.process(ProcessInput(files=files, options=options)))


def page_texts(open_output, artifact):
    doc = open_output(artifact)
    try:
        return [page.get_text() for page in doc]
    finally:
        doc.close()


def page_sizes(open_output, artifact):
    doc = open_output(artifact)
    try:
        return [(round(page.rect.width, 1), round(page.rect.height, 1)) for page in doc]
    finally:
        doc.close()


# -----------------------------------------------------------------------------
# Geometry
# -----------------------------------------------------------------------------


def test_split_rect_with_overlap():
    import pymupdf as fitz

    tiles = split_rect(fitz.Rect(0, 0, 100, 200), 2, 2, overlap=10)
    assert len(tiles) == 4
    assert tiles[0] == fitz.Rect(0, 0, 60, 110)
    assert tiles[1] == fitz.Rect(40, 0, 100, 110)
    assert tiles[3] == fitz.Rect(40, 90, 100, 200)


def test_grid_cells_row_by_row():
    import pymupdf as fitz

    cells = grid_cells(200, 100, 2, 1, margin=10, spacing=0)
    assert cells == [fitz.Rect(10, 10, 100, 90), fitz.Rect(100, 10, 190, 90)]


# -----------------------------------------------------------------------------
# Divide / posterize
# -----------------------------------------------------------------------------


def test_divide_pages_vertical(make_pdf, open_output):
    source = Artifact(make_pdf(2), "doc.pdf", PDF_MIME)
    output = run(DividePagesProcessor(), [source])
    assert output.success
    assert output.filename == "doc_divided.pdf"
    assert output.metadata == {"sourcePageCount": 2, "piecesPerPage": 2, "pageCount": 4}
    assert page_sizes(open_output, output.artifact) == [(297.5, 842.0)] * 4
    texts = page_texts(open_output, output.artifact)
    assert "Page 1" in texts[0]
    assert "Page 2" in texts[2]


def test_divide_pages_grid(pdf_artifact, open_output):
    output = run(DividePagesProcessor(), [pdf_artifact], DividePagesOptions(division="grid-3x3"))
    assert output.metadata["pageCount"] == 27


def test_divide_pages_keeps_blank_pages(make_pdf, open_output):
    import pymupdf as fitz

    doc = fitz.open(stream=make_pdf(1), filetype="pdf")
    doc.new_page(width=595, height=842)
    source = Artifact(doc.tobytes(), "doc.pdf", PDF_MIME)
    doc.close()

    output = run(DividePagesProcessor(), [source], DividePagesOptions(division="horizontal"))
    assert output.success
    assert page_sizes(open_output, output.artifact) == [(595.0, 421.0)] * 4


def test_divide_pages_unknown_division(pdf_artifact):
    output = run(DividePagesProcessor(), [pdf_artifact], DividePagesOptions(division="diagonal"))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_posterize_tiles_each_page(make_pdf, open_output):
    source = Artifact(make_pdf(1), "doc.pdf", PDF_MIME)
    output = run(PosterizePDFProcessor(), [source], PosterizeOptions(columns=2, rows=2, overlap=10))
    assert output.filename == "doc_poster.pdf"
    assert output.metadata["tilesPerPage"] == 4
    assert page_sizes(open_output, output.artifact) == [(595.0, 842.0)] * 4
    assert "Page 1" in page_texts(open_output, output.artifact)[0]


def test_posterize_rejects_huge_grid(pdf_artifact):
    output = run(PosterizePDFProcessor(), [pdf_artifact], PosterizeOptions(columns=11))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


# -----------------------------------------------------------------------------
# Several pages per sheet
# -----------------------------------------------------------------------------


def test_n_up_four_per_sheet(make_pdf, open_output):
    source = Artifact(make_pdf(5), "doc.pdf", PDF_MIME)
    output = run(NUpPDFProcessor(), [source])
    assert output.filename == "doc_nup.pdf"
    assert output.metadata["sheetCount"] == 2
    assert page_sizes(open_output, output.artifact) == [(595.0, 842.0)] * 2
    first, second = page_texts(open_output, output.artifact)
    assert "Page 1" in first and "Page 4" in first
    assert "Page 5" in second


def test_n_up_two_per_sheet_orientation(make_pdf, open_output):
    source = Artifact(make_pdf(4), "doc.pdf", PDF_MIME)
    auto = run(NUpPDFProcessor(), [source], NUpOptions(pages_per_sheet=2))
    assert page_sizes(open_output, auto.artifact) == [(842.0, 595.0)] * 2

    portrait = run(NUpPDFProcessor(), [source], NUpOptions(pages_per_sheet=2, orientation="portrait"))
    assert page_sizes(open_output, portrait.artifact) == [(595.0, 842.0)] * 2


def test_n_up_border_and_no_margins(pdf_artifact, open_output):
    options = NUpOptions(pages_per_sheet=9, use_margins=False, add_border=True)
    output = run(NUpPDFProcessor(), [pdf_artifact], options)
    assert output.metadata["sheetCount"] == 1
    doc = open_output(output.artifact)
    assert len(doc[0].get_drawings()) >= 3
    doc.close()


def test_n_up_rejects_unsupported_count(pdf_artifact):
    output = run(NUpPDFProcessor(), [pdf_artifact], NUpOptions(pages_per_sheet=3))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_grid_combine_several_files(make_pdf, open_output):
    a = Artifact(make_pdf(2, text="Alpha"), "a.pdf", PDF_MIME)
    b = Artifact(make_pdf(1, text="Beta"), "b.pdf", PDF_MIME)
    output = run(GridCombineProcessor(), [a, b])
    assert output.filename == "a_grid.pdf"
    assert output.metadata == {
        "fileCount": 2,
        "sourcePageCount": 3,
        "layout": "2x2",
        "sheetCount": 1,
        "pageCount": 1,
    }
    (text,) = page_texts(open_output, output.artifact)
    for label in ("Alpha 1", "Alpha 2", "Beta 1"):
        assert label in text


def test_grid_combine_wide_layout_is_landscape(make_pdf, open_output):
    source = Artifact(make_pdf(7), "doc.pdf", PDF_MIME)
    output = run(GridCombineProcessor(), [source], GridCombineOptions(layout="3x2", spacing=0))
    assert page_sizes(open_output, output.artifact) == [(842.0, 595.0)] * 2


def test_grid_combine_unknown_layout(pdf_artifact):
    output = run(GridCombineProcessor(), [pdf_artifact], GridCombineOptions(layout="5x5"))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


# -----------------------------------------------------------------------------
# Single page / page size
# -----------------------------------------------------------------------------


def test_combine_single_page_vertical(pdf_artifact, open_output):
    options = CombineSinglePageOptions(spacing=10, add_separator=True)
    output = run(CombineSinglePageProcessor(), [pdf_artifact], options)
    assert output.filename == "doc_single_page.pdf"
    assert page_sizes(open_output, output.artifact) == [(595.0, 2546.0)]
    (text,) = page_texts(open_output, output.artifact)
    for n in (1, 2, 3):
        assert f"Page {n}" in text


def test_combine_single_page_horizontal_with_background(make_pdf, open_output):
    source = Artifact(make_pdf(2, width=300, height=400), "doc.pdf", PDF_MIME)
    options = CombineSinglePageOptions(direction="horizontal", background_color="#FF0000")
    output = run(CombineSinglePageProcessor(), [source], options)
    assert page_sizes(open_output, output.artifact) == [(600.0, 400.0)]
    doc = open_output(output.artifact)
    assert doc[0].get_pixmap(alpha=False).pixel(300, 390) == (255, 0, 0)
    doc.close()


def test_combine_single_page_too_long(make_pdf):
    source = Artifact(make_pdf(20), "doc.pdf", PDF_MIME)
    output = run(CombineSinglePageProcessor(), [source])
    assert output.error.code == ErrorCode.PROCESSING_FAILED
    assert output.error.recoverable is False


def test_combine_single_page_bad_color(pdf_artifact):
    options = CombineSinglePageOptions(background_color="red")
    output = run(CombineSinglePageProcessor(), [pdf_artifact], options)
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_fix_page_size_follows_orientation(make_pdf, open_output):
    square = Artifact(make_pdf(2, width=300, height=300), "square.pdf", PDF_MIME)
    output = run(FixPageSizeProcessor(), [square])
    assert output.filename == "square_resized.pdf"
    assert output.metadata["resizedPages"] == 2
    assert page_sizes(open_output, output.artifact) == [(595.0, 842.0)] * 2
    assert "Page 1" in page_texts(open_output, output.artifact)[0]

    wide = Artifact(make_pdf(1, width=800, height=400), "wide.pdf", PDF_MIME)
    output = run(FixPageSizeProcessor(), [wide], FixPageSizeOptions(target_size="LETTER"))
    assert page_sizes(open_output, output.artifact) == [(792.0, 612.0)]


def test_fix_page_size_keeps_bookmarks(make_pdf, open_output):
    import pymupdf as fitz

    doc = fitz.open(stream=make_pdf(2, width=400, height=400), filetype="pdf")
    doc.set_toc([[1, "Intro", 1], [1, "End", 2]])
    source = Artifact(doc.tobytes(), "doc.pdf", PDF_MIME)
    doc.close()

    output = run(FixPageSizeProcessor(), [source])
    result = open_output(output.artifact)
    assert result.get_toc(simple=True) == [[1, "Intro", 1], [1, "End", 2]]
    result.close()


def test_fix_page_size_a4_input_unchanged_count(pdf_artifact):
    output = run(FixPageSizeProcessor(), [pdf_artifact])
    assert output.metadata["resizedPages"] == 0
    assert output.metadata["pageCount"] == 3


@pytest.mark.parametrize(
    "processor",
    [DividePagesProcessor, NUpPDFProcessor, CombineSinglePageProcessor, PosterizePDFProcessor, FixPageSizeProcessor],
)
def test_layout_rejects_non_pdf(processor, make_png):
    output = run(processor(), [Artifact(make_png(), "photo.png", "image/png")])
    assert output.error.code == ErrorCode.FILE_TYPE_INVALID
