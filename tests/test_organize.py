import asyncio

from docflow.artifact import PDF_MIME, Artifact
from docflow.processors import (
    AddBlankPageProcessor,
    AlternateMergeProcessor,
    DeletePagesProcessor,
    ExtractPagesProcessor,
    MergePDFProcessor,
    OrganizePDFProcessor,
    ReversePagesProcessor,
    RotatePDFProcessor,
    SplitPDFProcessor,
)
from docflow.processors.base import ProcessInput
from docflow.processors.errors import ErrorCode
from docflow.processors.organize import (
    AddBlankPageOptions,
    AlternateMergeOptions,
    OrganizeOptions,
    PageSelectionOptions,
    RotateOptions,
    SplitOptions,
)


def run(processor, files, options=None):
    return asyncio.run(processor.process(ProcessInput(files=files, options=options)))


def page_texts(open_output, artifact):
    doc = open_output(artifact)
    try:
        return [page.get_text().strip() for page in doc]
    finally:
        doc.close()


def test_merge_two_documents(make_pdf, open_output):
    a = Artifact(make_pdf(2, text="A"), "a.pdf", PDF_MIME)
    b = Artifact(make_pdf(1, text="B"), "b.pdf", PDF_MIME)
    output = run(MergePDFProcessor(), [a, b])
    assert output.success
    assert output.filename == "merged.pdf"
    assert output.metadata["fileCount"] == 2
    assert output.metadata["pageCount"] == 3
    assert page_texts(open_output, output.artifact) == ["A 1", "A 2", "B 1"]


def test_merge_needs_two_files(pdf_artifact):
    output = run(MergePDFProcessor(), [pdf_artifact])
    assert output.error.code == ErrorCode.INVALID_OPTIONS
    assert output.error.message == "At least 2 files are required."


def test_merge_rejects_non_pdf_input(pdf_artifact):
    output = run(MergePDFProcessor(), [pdf_artifact, Artifact(b"x", "x.png", "image/png")])
    assert output.error.code == ErrorCode.FILE_TYPE_INVALID


def test_split_every_page(pdf_artifact):
    output = run(SplitPDFProcessor(), [pdf_artifact])
    assert output.success
    assert [a.filename for a in output.artifacts] == [
        "doc_pages_1.pdf",
        "doc_pages_2.pdf",
        "doc_pages_3.pdf",
    ]
    assert output.metadata["rangeCount"] == 3
    assert output.metadata["sourcePageCount"] == 3


def test_split_every_two_pages(pdf_artifact):
    output = run(SplitPDFProcessor(), [pdf_artifact], SplitOptions(mode="every", pages_per_split=2))
    assert [a.filename for a in output.artifacts] == ["doc_pages_1-2.pdf", "doc_pages_3.pdf"]


def test_split_by_ranges(pdf_artifact, open_output):
    output = run(SplitPDFProcessor(), [pdf_artifact], SplitOptions(mode="ranges", ranges="3, 1-2"))
    assert output.metadata["outputFiles"] == ["doc_pages_3.pdf", "doc_pages_1-2.pdf"]
    assert page_texts(open_output, output.artifacts[0]) == ["Page 3"]


def test_split_range_out_of_bounds(pdf_artifact):
    output = run(SplitPDFProcessor(), [pdf_artifact], SplitOptions(mode="ranges", ranges="2-5"))
    assert output.error.code == ErrorCode.INVALID_PAGE_RANGE
    assert "exceeds total pages" in output.error.message


def test_split_ranges_mode_needs_ranges(pdf_artifact):
    output = run(SplitPDFProcessor(), [pdf_artifact], SplitOptions(mode="ranges", ranges=" "))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_extract_pages(pdf_artifact, open_output):
    output = run(ExtractPagesProcessor(), [pdf_artifact], PageSelectionOptions(pages="3,1"))
    assert output.filename == "doc_extracted.pdf"
    assert output.metadata["pageCount"] == 2
    assert page_texts(open_output, output.artifact) == ["Page 3", "Page 1"]


def test_extract_defaults_to_first_page(pdf_artifact, open_output):
    output = run(ExtractPagesProcessor(), [pdf_artifact])
    assert page_texts(open_output, output.artifact) == ["Page 1"]


def test_delete_pages(pdf_artifact, open_output):
    output = run(DeletePagesProcessor(), [pdf_artifact], PageSelectionOptions(pages="2"))
    assert output.filename == "doc_deleted.pdf"
    assert page_texts(open_output, output.artifact) == ["Page 1", "Page 3"]


def test_delete_every_page_is_rejected(pdf_artifact):
    output = run(DeletePagesProcessor(), [pdf_artifact], PageSelectionOptions(pages="1-3"))
    assert output.error.code == ErrorCode.INVALID_PAGE_RANGE


def test_rotate_selected_pages(pdf_artifact, open_output):
    output = run(RotatePDFProcessor(), [pdf_artifact], RotateOptions(angle=90, pages="2"))
    assert output.filename == "doc_rotated.pdf"
    doc = open_output(output.artifact)
    assert [page.rotation for page in doc] == [0, 90, 0]
    doc.close()


def test_rotate_counter_clockwise(pdf_artifact, open_output):
    output = run(RotatePDFProcessor(), [pdf_artifact], RotateOptions(angle=-90))
    doc = open_output(output.artifact)
    assert [page.rotation for page in doc] == [270, 270, 270]
    doc.close()


def test_rotate_invalid_angle(pdf_artifact):
    output = run(RotatePDFProcessor(), [pdf_artifact], RotateOptions(angle=45))
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_reverse_pages(pdf_artifact, open_output):
    output = run(ReversePagesProcessor(), [pdf_artifact])
    assert output.filename == "doc_reversed.pdf"
    assert page_texts(open_output, output.artifact) == ["Page 3", "Page 2", "Page 1"]


def test_organize_pages(pdf_artifact, open_output):
    output = run(OrganizePDFProcessor(), [pdf_artifact], OrganizeOptions(page_order=(2, 2, 1)))
    assert output.filename == "doc_organized.pdf"
    assert page_texts(open_output, output.artifact) == ["Page 2", "Page 2", "Page 1"]


def test_organize_invalid_page(pdf_artifact):
    output = run(OrganizePDFProcessor(), [pdf_artifact], OrganizeOptions(page_order=(1, 4)))
    assert output.error.code == ErrorCode.INVALID_PAGE_RANGE


def test_alternate_merge(make_pdf, open_output):
    odd = Artifact(make_pdf(2, text="Odd"), "odd.pdf", PDF_MIME)
    even = Artifact(make_pdf(2, text="Even"), "even.pdf", PDF_MIME)
    output = run(AlternateMergeProcessor(), [odd, even], AlternateMergeOptions(reverse_second=True))
    assert output.filename == "odd_alternate_merged.pdf"
    assert page_texts(open_output, output.artifact) == ["Odd 1", "Even 2", "Odd 2", "Even 1"]


def test_alternate_merge_needs_exactly_two(pdf_artifact):
    output = run(AlternateMergeProcessor(), [pdf_artifact] * 3)
    assert output.error.code == ErrorCode.INVALID_OPTIONS


def test_add_blank_pages_after_page(pdf_artifact, open_output):
    output = run(AddBlankPageProcessor(), [pdf_artifact], AddBlankPageOptions(position="1", count=2))
    assert output.filename == "doc_blank_added.pdf"
    assert page_texts(open_output, output.artifact) == ["Page 1", "", "", "Page 2", "Page 3"]


def test_add_blank_page_at_start_and_end(pdf_artifact, open_output):
    start = run(AddBlankPageProcessor(), [pdf_artifact], AddBlankPageOptions(position="start"))
    assert page_texts(open_output, start.artifact)[0] == ""
    end = run(AddBlankPageProcessor(), [pdf_artifact])
    assert page_texts(open_output, end.artifact)[-1] == ""


def test_add_blank_page_position_out_of_range(pdf_artifact):
    output = run(AddBlankPageProcessor(), [pdf_artifact], AddBlankPageOptions(position="9"))
    assert output.error.code == ErrorCode.INVALID_PAGE_RANGE
