"""
Page selection parsing.

Selections are written the way users type them in a print dialog:
"1-3, 5, 8-" means pages 1, 2, 3, 5 and 8 through the last page.
Page numbers are 1-based everywhere in this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import ErrorCode, ProcessorError

_PART_RE = re.compile(r"^\s*(\d*)\s*(-)?\s*(\d*)\s*$")


class PageRangeError(ValueError):
    """A selection is malformed or points outside the document."""


@dataclass(frozen=True)
class PageRange:
    """Inclusive 1-based page range."""

    start: int
    end: int

    @property
    def pages(self) -> range:
        return range(self.start, self.end + 1)

    @property
    def indices(self) -> list[int]:
        """0-based page indices."""
        return [p - 1 for p in self.pages]

    def __len__(self) -> int:
        return max(0, self.end - self.start + 1)

    def label(self) -> str:
        return str(self.start) if self.start == self.end else f"{self.start}-{self.end}"


def validate_page_ranges(ranges: list[PageRange], total_pages: int) -> str | None:
    """Return a message describing the first invalid range, or None."""
    for i, r in enumerate(ranges, start=1):
        if r.start < 1:
            return f"Range {i}: Start page must be at least 1."
        if r.end < r.start:
            return f"Range {i}: End page ({r.end}) cannot be less than start page ({r.start})."
        if r.start > total_pages:
            return f"Range {i}: Start page ({r.start}) exceeds total pages ({total_pages})."
        if r.end > total_pages:
            return f"Range {i}: End page ({r.end}) exceeds total pages ({total_pages})."
    return None


def parse_page_ranges(text: str, total_pages: int) -> list[PageRange]:
    """
    Parse a selection string into ranges, in the order written.

    Args:
        text: Selection such as "1-3, 5, 8-" ("-4" means 1-4, "7-" means 7-last)
        total_pages: Page count of the document

    Returns:
        List of PageRange

    Raises:
        PageRangeError: If the text is empty, malformed, or out of bounds
    """
    if not text or not text.strip():
        raise PageRangeError("No pages selected.")

    ranges: list[PageRange] = []
    for part in text.split(","):
        if not part.strip():
            continue
        match = _PART_RE.match(part)
        if not match:
            raise PageRangeError(f"Invalid page selection: '{part.strip()}'.")
        first, dash, last = match.groups()
        if not dash:
            if not first:
                raise PageRangeError(f"Invalid page selection: '{part.strip()}'.")
            start = end = int(first)
        else:
            if not first and not last:
                raise PageRangeError(f"Invalid page selection: '{part.strip()}'.")
            start = int(first) if first else 1
            end = int(last) if last else total_pages
        ranges.append(PageRange(start, end))

    if not ranges:
        raise PageRangeError("No pages selected.")

    message = validate_page_ranges(ranges, total_pages)
    if message:
        raise PageRangeError(message)
    return ranges


def parse_page_selection(text: str, total_pages: int) -> list[int]:
    """Parse a selection into unique 1-based page numbers, in the order written."""
    seen: set[int] = set()
    pages: list[int] = []
    for r in parse_page_ranges(text, total_pages):
        for page in r.pages:
            if page not in seen:
                seen.add(page)
                pages.append(page)
    return pages


def page_range_error(error: PageRangeError, total_pages: int) -> ProcessorError:
    """Wrap a PageRangeError as an INVALID_PAGE_RANGE processor error."""
    return ProcessorError.of(
        ErrorCode.INVALID_PAGE_RANGE,
        str(error),
        f"The PDF has {total_pages} pages.",
    )


def selected_indices(text: str, total_pages: int) -> list[int]:
    """
    0-based indices for a selection, raising INVALID_PAGE_RANGE on error.

    An empty selection means every page.
    """
    if not text or not text.strip():
        return list(range(total_pages))
    try:
        return [p - 1 for p in parse_page_selection(text, total_pages)]
    except PageRangeError as e:
        raise page_range_error(e, total_pages) from e
