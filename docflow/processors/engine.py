"""
PyMuPDF engine access.

The engine is loaded once per process and reused by every processor.
`reset_pdf_engine()` drops it again (tests use this to start clean).
"""

from __future__ import annotations

import logging
from typing import Any

from docflow.artifact import Artifact

from .errors import ErrorCode, ProcessorError

logger = logging.getLogger(__name__)

_engine: Any = None


def load_pdf_engine():
    """Return the PyMuPDF module, initializing it on first use."""
    global _engine
    if _engine is None:
        import pymupdf as fitz

        # Errors surface as exceptions; don't also print them to stderr
        fitz.TOOLS.mupdf_display_errors(False)
        _engine = fitz
        logger.debug("Loaded PyMuPDF %s", getattr(fitz, "VersionBind", "?"))
    return _engine


def reset_pdf_engine() -> None:
    """Release the cached engine and empty its object store."""
    global _engine
    if _engine is not None:
        _engine.TOOLS.store_shrink(100)
    _engine = None


def engine_loaded() -> bool:
    return _engine is not None


def new_pdf():
    """Create an empty PDF document."""
    fitz = load_pdf_engine()
    return fitz.open()


def open_pdf(artifact: Artifact, password: str | None = None):
    """
    Open an artifact as a PDF document.

    Args:
        artifact: Input artifact
        password: Password to try if the document requires one

    Returns:
        An open fitz.Document (caller closes it)

    Raises:
        ProcessorError: FILE_TYPE_INVALID if the bytes are not a PDF,
            PDF_ENCRYPTED if a password is needed and missing/wrong
    """
    fitz = load_pdf_engine()
    name = artifact.filename or "input"

    try:
        doc = fitz.open(stream=artifact.data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ProcessorError.of(
            ErrorCode.FILE_TYPE_INVALID,
            f"'{name}' is not a valid PDF file.",
            str(e),
        ) from e

    if doc.needs_pass:
        if not password or not doc.authenticate(password):
            doc.close()
            raise ProcessorError.of(
                ErrorCode.PDF_ENCRYPTED,
                f"'{name}' is password protected.",
                "A valid password is required to open this file." if password else None,
            )

    if doc.page_count == 0:
        doc.close()
        raise ProcessorError.of(
            ErrorCode.FILE_TYPE_INVALID,
            f"'{name}' has no pages.",
        )

    return doc


def save_pdf(doc, *, garbage: int = 3, deflate: bool = True, **kwargs) -> bytes:
    """Serialize a document to bytes."""
    return doc.tobytes(garbage=garbage, deflate=deflate, **kwargs)


def paper_size(name: str) -> tuple[float, float]:
    """Portrait (width, height) in points for a paper name like "A4"."""
    fitz = load_pdf_engine()
    width, height = fitz.paper_size(name.lower())
    if width <= 0 or height <= 0:
        width, height = fitz.paper_size("a4")
    return width, height
