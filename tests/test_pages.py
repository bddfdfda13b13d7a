import pytest

from docflow.processors.errors import ErrorCode, ProcessorError
from docflow.processors.pages import (
    PageRange,
    PageRangeError,
    parse_page_ranges,
    parse_page_selection,
    selected_indices,
)


def test_parse_mixed_selection():
    ranges = parse_page_ranges("1-3, 5, 8-", 10)
    assert ranges == [PageRange(1, 3), PageRange(5, 5), PageRange(8, 10)]
    assert [r.label() for r in ranges] == ["1-3", "5", "8-10"]


def test_open_start_range():
    assert parse_page_ranges("-4", 10) == [PageRange(1, 4)]


def test_empty_selection_is_an_error():
    with pytest.raises(PageRangeError, match="No pages selected"):
        parse_page_ranges("  ", 5)
    with pytest.raises(PageRangeError, match="No pages selected"):
        parse_page_ranges(",,", 5)


@pytest.mark.parametrize(
    "text, message",
    [
        ("0", "Start page must be at least 1"),
        ("4-2", "cannot be less than start page"),
        ("7", "exceeds total pages"),
        ("2-9", "End page (9) exceeds total pages (5)"),
        ("abc", "Invalid page selection"),
        ("-", "Invalid page selection"),
    ],
)
def test_invalid_selections(text, message):
    with pytest.raises(PageRangeError) as exc:
        parse_page_ranges(text, 5)
    assert message in str(exc.value)


def test_selection_keeps_written_order_without_duplicates():
    assert parse_page_selection("3, 1-3", 5) == [3, 1, 2]


def test_selected_indices_empty_means_all_pages():
    assert selected_indices("", 3) == [0, 1, 2]
    assert selected_indices("2-3", 3) == [1, 2]


def test_selected_indices_wraps_errors():
    with pytest.raises(ProcessorError) as exc:
        selected_indices("9", 3)
    assert exc.value.error.code == ErrorCode.INVALID_PAGE_RANGE
    assert exc.value.error.details == "The PDF has 3 pages."
