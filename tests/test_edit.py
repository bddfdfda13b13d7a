import asyncio

from docflow.artifact import PDF_MIME, Artifact
from docflow.processors import (
    AddWatermarkProcessor,
    BackgroundColorProcessor,
    EditMetadataProcessor,
    HeaderFooterProcessor,
    PageNumbersProcessor,
    RemoveAnnotationsProcessor,
    RemoveBlankPagesProcessor,
    RemoveMetadataProcessor,
    TableOfContentsProcessor,
)
from docflow.processors.base import ProcessInput
from docflow.processors.edit import (
    BackgroundColorOptions,
    EditMetadataOptions,
    HeaderFooterOptions,
    PageNumberOptions,
    RemoveAnnotationsOptions,
    RemoveBlankPagesOptions,
    TableOfContentsOptions,
    WatermarkOptions,
    hex_to_rgb,
    is_blank_page,
    to_roman,
)
from docflow.processors.errors import ErrorCode


def run(processor, files, options=None):
    return asyncio.run(processor.process(ProcessInput(files=files, options=options)))


def text_of(open_output, artifact, index=0):
    doc = open_output(artifact)
    try:
        return doc[index].get_text()
    finally:
        doc.close()


def test_hex_to_rgb():
    assert hex_to_rgb("#FF0000") == (1.0, 0.0, 0.0)
    assert hex_to_rgb("#000000") == (0.0, 0.0, 0.0)


def test_to_roman():
    assert to_roman(1) == "I"
    assert to_roman(4) == "IV"
    assert to_roman(14) == "XIV"
    assert to_roman(1994) == "MCMXCIV"


def test_watermark(pdf_artifact, open_output):
    options = WatermarkOptions(text="CONFIDENTIAL", rotation=0, position="top-left")
    output = run(AddWatermarkProcessor(), [pdf_artifact], options)
    assert output.success
    assert output.filename == "doc_watermarked.pdf"
    assert output.metadata["pageCount"] == 3
    assert "CONFIDENTIAL" in text_of(open_output, output.artifact, 2)


def test_watermark_rotated_default(pdf_artifact):
    output = run(AddWatermarkProcessor(), [pdf_artifact], WatermarkOptions(text="DRAFT"))
    assert output.success


def test_watermark_rejects_bad_options(pdf_artifact):
    assert run(AddWatermarkProcessor(), [pdf_artifact], WatermarkOptions(text=" ")).error.code == ErrorCode.INVALID_OPTIONS
    assert run(AddWatermarkProcessor(), [pdf_artifact], WatermarkOptions(opacity=0)).error.code == ErrorCode.INVALID_OPTIONS
    assert run(AddWatermarkProcessor(), [pdf_artifact], WatermarkOptions(color="grey")).error.code == ErrorCode.INVALID_OPTIONS


def test_page_numbers(make_pdf, open_output):
    source = Artifact(make_pdf(3, text="Body"), "doc.pdf", PDF_MIME)
    output = run(PageNumbersProcessor(), [source], PageNumberOptions(format="page-of-total"))
    assert output.filename == "doc_numbered.pdf"
    assert "Page 2 of 3" in text_of(open_output, output.artifact, 1)


def test_page_numbers_roman_skipping_first(make_pdf, open_output):
    source = Artifact(make_pdf(3, text="Body"), "doc.pdf", PDF_MIME)
    options = PageNumberOptions(format="roman", skip_first_page=True)
    output = run(PageNumbersProcessor(), [source], options)
    assert output.metadata["numberedPages"] == 2
    assert text_of(open_output, output.artifact, 0).strip() == "Body 1"
    assert "II" in text_of(open_output, output.artifact, 2)


def test_page_numbers_start_must_be_positive(pdf_artifact):
    output = run(PageNumbersProcessor(), [pdf_artifact], PageNumberOptions(start_number=0))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_header_footer(pdf_artifact, open_output):
    options = HeaderFooterOptions(header_text="Quarterly", footer_text="Report {page}/{total}")
    output = run(HeaderFooterProcessor(), [pdf_artifact], options)
    assert output.filename == "doc_header_footer.pdf"
    text = text_of(open_output, output.artifact, 0)
    assert "Quarterly" in text
    assert "Report 1/3" in text


def test_edit_metadata_keeps_untouched_fields(make_pdf, open_output):
    source = Artifact(make_pdf(1, metadata={"title": "Old", "author": "Someone"}), "doc.pdf", PDF_MIME)
    output = run(EditMetadataProcessor(), [source], EditMetadataOptions(title="New", subject="Numbers"))
    assert output.filename == "doc_metadata.pdf"
    assert output.metadata["updatedFields"] == ["title", "subject"]
    doc = open_output(output.artifact)
    assert doc.metadata["title"] == "New"
    assert doc.metadata["author"] == "Someone"
    doc.close()


def test_remove_metadata(make_pdf, open_output):
    source = Artifact(make_pdf(1, metadata={"title": "Secret plan", "author": "Someone"}), "doc.pdf", PDF_MIME)
    output = run(RemoveMetadataProcessor(), [source])
    assert output.filename == "doc_clean.pdf"
    doc = open_output(output.artifact)
    assert not doc.metadata.get("title")
    assert not doc.metadata.get("author")
    doc.close()


def _annotated_pdf():
    import pymupdf as fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Highlighted text", fontsize=14)
    page.add_text_annot((300, 300), "A comment")
    page.add_highlight_annot(fitz.Rect(70, 58, 200, 76))
    page.insert_link({"kind": fitz.LINK_URI, "from": fitz.Rect(72, 400, 200, 420), "uri": "https://example.com"})
    data = doc.tobytes()
    doc.close()
    return Artifact(data, "notes.pdf", PDF_MIME)


def test_remove_comments_only(open_output):
    options = RemoveAnnotationsOptions(remove_comments=True, remove_highlights=False)
    output = run(RemoveAnnotationsProcessor(), [_annotated_pdf()], options)
    assert output.filename == "notes_no_annotations.pdf"
    assert output.metadata["removed"] == {"comments": 1, "highlights": 0, "links": 0}
    doc = open_output(output.artifact)
    assert len(list(doc[0].annots())) == 1
    assert len(doc[0].get_links()) == 1
    doc.close()


def test_remove_everything(open_output):
    options = RemoveAnnotationsOptions(remove_links=True)
    output = run(RemoveAnnotationsProcessor(), [_annotated_pdf()], options)
    assert output.metadata["removed"] == {"comments": 1, "highlights": 1, "links": 1}
    doc = open_output(output.artifact)
    assert list(doc[0].annots()) == []
    assert doc[0].get_links() == []
    doc.close()


# -----------------------------------------------------------------------------
# Background / blank pages
# -----------------------------------------------------------------------------


def _corner_pixel(open_output, artifact, index):
    doc = open_output(artifact)
    try:
        return doc[index].get_pixmap(alpha=False).pixel(5, 5)
    finally:
        doc.close()


def test_background_color_all_pages(pdf_artifact, open_output):
    output = run(BackgroundColorProcessor(), [pdf_artifact], BackgroundColorOptions(color="#FF0000"))
    assert output.filename == "doc_background.pdf"
    assert output.metadata["coloredPages"] == 3
    assert _corner_pixel(open_output, output.artifact, 2) == (255, 0, 0)
    assert "Page 1" in text_of(open_output, output.artifact)


def test_background_color_odd_pages_only(pdf_artifact, open_output):
    options = BackgroundColorOptions(color="#0000FF", apply_to="odd")
    output = run(BackgroundColorProcessor(), [pdf_artifact], options)
    assert output.metadata["coloredPages"] == 2
    assert _corner_pixel(open_output, output.artifact, 0) == (0, 0, 255)
    assert _corner_pixel(open_output, output.artifact, 1) == (255, 255, 255)


def test_background_color_rejects_bad_target(pdf_artifact):
    options = BackgroundColorOptions(apply_to="middle")
    output = run(BackgroundColorProcessor(), [pdf_artifact], options)
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def _with_blank_pages(make_pdf, blank_at):
    import pymupdf as fitz

    doc = fitz.open(stream=make_pdf(3), filetype="pdf")
    for index in blank_at:
        doc.new_page(pno=index, width=595, height=842)
    data = doc.tobytes()
    doc.close()
    return Artifact(data, "scan.pdf", PDF_MIME)


def test_is_blank_page(make_pdf):
    import pymupdf as fitz

    doc = fitz.open(stream=make_pdf(1), filetype="pdf")
    blank = doc.new_page()
    assert is_blank_page(blank, 0.99)
    assert not is_blank_page(doc[0], 0.99)

    blank.draw_rect(blank.rect, color=None, fill=(0, 0, 0))
    assert not is_blank_page(blank, 0.99)
    doc.close()


def test_remove_blank_pages(make_pdf, open_output):
    source = _with_blank_pages(make_pdf, [1, 3])
    output = run(RemoveBlankPagesProcessor(), [source])
    assert output.filename == "scan_no_blanks.pdf"
    assert output.metadata["removedPages"] == [2, 4]
    assert output.metadata["sourcePageCount"] == 5
    assert output.metadata["pageCount"] == 3
    doc = open_output(output.artifact)
    assert ["Page 1", "Page 2", "Page 3"] == [page.get_text().strip() for page in doc]
    doc.close()


def test_remove_blank_pages_nothing_blank(pdf_artifact):
    output = run(RemoveBlankPagesProcessor(), [pdf_artifact])
    assert output.success
    assert output.metadata["removedPages"] == []


def test_remove_blank_pages_all_blank():
    import pymupdf as fitz

    doc = fitz.open()
    doc.new_page()
    doc.new_page()
    source = Artifact(doc.tobytes(), "empty.pdf", PDF_MIME)
    doc.close()

    output = run(RemoveBlankPagesProcessor(), [source])
    assert output.error.code == ErrorCode.PROCESSING_FAILED
    assert output.error.recoverable is False


def test_remove_blank_pages_threshold_range(pdf_artifact):
    output = run(RemoveBlankPagesProcessor(), [pdf_artifact], RemoveBlankPagesOptions(threshold=0.2))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


# -----------------------------------------------------------------------------
# Table of contents
# -----------------------------------------------------------------------------


def test_table_of_contents_lists_pages(pdf_artifact, open_output):
    output = run(TableOfContentsProcessor(), [pdf_artifact])
    assert output.filename == "doc_toc.pdf"
    assert output.metadata == {"entryCount": 3, "tocPages": 1, "pageCount": 4}
    doc = open_output(output.artifact)
    listing = doc[0].get_text()
    assert "Table of Contents" in listing
    assert "Page 1" in listing and "Page 3" in listing
    assert [link["page"] for link in doc[0].get_links()] == [1, 2, 3]
    assert doc.get_toc(simple=True) == [[1, "Table of Contents", 1]]
    assert "Page 1" in doc[1].get_text()
    doc.close()


def test_table_of_contents_uses_bookmarks(make_pdf, open_output):
    import pymupdf as fitz

    doc = fitz.open(stream=make_pdf(3), filetype="pdf")
    doc.set_toc([[1, "Introduction", 1], [2, "Details", 2], [1, "Appendix", 3]])
    source = Artifact(doc.tobytes(), "book.pdf", PDF_MIME)
    doc.close()

    options = TableOfContentsOptions(title="Contents", font_family="times")
    output = run(TableOfContentsProcessor(), [source], options)
    result = open_output(output.artifact)
    listing = result[0].get_text()
    for title in ("Contents", "Introduction", "Details", "Appendix"):
        assert title in listing
    assert result.get_toc(simple=True) == [
        [1, "Contents", 1],
        [1, "Introduction", 2],
        [2, "Details", 3],
        [1, "Appendix", 4],
    ]
    result.close()


def test_table_of_contents_spans_several_pages(make_pdf, open_output):
    source = Artifact(make_pdf(60), "long.pdf", PDF_MIME)
    options = TableOfContentsOptions(add_bookmark=False)
    output = run(TableOfContentsProcessor(), [source], options)
    assert output.metadata["tocPages"] == 2
    assert output.metadata["pageCount"] == 62
    doc = open_output(output.artifact)
    assert doc.get_toc() == []
    assert doc[1].get_links()[-1]["page"] == 61
    doc.close()


def test_table_of_contents_rejects_empty_title(pdf_artifact):
    output = run(TableOfContentsProcessor(), [pdf_artifact], TableOfContentsOptions(title="  "))
    assert output.error.code == ErrorCode.INVALID_OPTIONS
