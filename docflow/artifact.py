"""
Artifacts - the binary payloads that flow between workflow steps.

An artifact is raw bytes plus an optional filename and MIME type. Artifacts
are immutable: every processor produces new artifacts and never touches the
ones it was given, so a single output can be shared by any number of
downstream steps.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path


PDF_MIME = "application/pdf"
ZIP_MIME = "application/zip"
DEFAULT_MIME = PDF_MIME


# -----------------------------------------------------------------------------
# Type tables
# -----------------------------------------------------------------------------

# Extension -> MIME type. Anything not listed is treated as a PDF document.
MIME_TYPES: dict[str, str] = {
    # Archives
    ".zip": ZIP_MIME,
    ".cbz": "application/vnd.comicbook+zip",
    # Raster images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    # Vector images
    ".svg": "image/svg+xml",
    # Plain text
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    # Structured text
    ".json": "application/json",
    ".xml": "application/xml",
    ".html": "text/html",
    ".htm": "text/html",
    # Office documents
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    # E-books and fixed-layout documents
    ".epub": "application/epub+zip",
    ".fb2": "application/x-fictionbook+xml",
    ".mobi": "application/x-mobipocket-ebook",
    ".xps": "application/vnd.ms-xpsdocument",
    ".oxps": "application/oxps",
    # Documents
    ".pdf": PDF_MIME,
}

# Preferred extension for a MIME type (first wins for duplicates like jpg/jpeg)
EXTENSIONS: dict[str, str] = {}
for _ext, _mime in MIME_TYPES.items():
    EXTENSIONS.setdefault(_mime, _ext)

# Magic byte signatures -> extension, checked in order
SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF", ".pdf"),
    (b"\x89PNG", ".png"),
    (b"\xff\xd8\xff", ".jpg"),
    (b"GIF87a", ".gif"),
    (b"GIF89a", ".gif"),
    (b"BM", ".bmp"),
    (b"II*\x00", ".tiff"),
    (b"MM\x00*", ".tiff"),
    (b"PK\x03\x04", ".zip"),
    (b"PK\x05\x06", ".zip"),
]


def guess_mime_type(filename: str | None) -> str:
    """
    Infer a MIME type from a filename's extension.

    Args:
        filename: Filename or path (may be None)

    Returns:
        MIME type from MIME_TYPES, or the PDF type for anything unknown
    """
    ext = extension_of(filename)
    if ext is None:
        return DEFAULT_MIME
    return MIME_TYPES.get(ext, DEFAULT_MIME)


def extension_for_mime(mime_type: str | None) -> str | None:
    """Preferred extension (with dot) for a MIME type, or None."""
    if not mime_type:
        return None
    return EXTENSIONS.get(mime_type.split(";", 1)[0].strip().lower())


def sniff_extension(data: bytes) -> str | None:
    """Detect a file extension from magic bytes, or None if unrecognized."""
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return ".webp"
    for signature, ext in SIGNATURES:
        if data.startswith(signature):
            return ext
    return None


def extension_of(filename: str | None) -> str | None:
    """Lowercased extension including the dot, or None."""
    if not filename:
        return None
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return "." + name.rsplit(".", 1)[-1].lower()


# -----------------------------------------------------------------------------
# Artifact
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Artifact:
    """
    An immutable binary payload with optional name/type metadata.

    Attributes:
        data: Raw content bytes
        filename: Declared filename, if any
        mime_type: Declared MIME type, if any
    """

    data: bytes = field(repr=False)
    filename: str | None = None
    mime_type: str | None = None

    def __post_init__(self):
        if isinstance(self.data, (bytearray, memoryview)):
            object.__setattr__(self, "data", bytes(self.data))
        elif not isinstance(self.data, bytes):
            raise TypeError(f"Artifact data must be bytes, got {type(self.data).__name__}")

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> "Artifact":
        """Read a file from disk into an artifact named after it."""
        path = Path(path)
        return cls(
            data=path.read_bytes(),
            filename=path.name,
            mime_type=mime_type or guess_mime_type(path.name),
        )

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str | None:
        """Extension of the declared filename, including the dot."""
        return extension_of(self.filename)

    @property
    def stem(self) -> str:
        """Declared filename without extension ("document" if unnamed)."""
        if not self.filename:
            return "document"
        name = self.filename.replace("\\", "/").rsplit("/", 1)[-1]
        return name.rsplit(".", 1)[0] if "." in name else name

    @property
    def effective_mime_type(self) -> str:
        """Declared MIME type, falling back to inference from the filename."""
        return self.mime_type or guess_mime_type(self.filename)

    def with_metadata(
        self,
        *,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> "Artifact":
        """
        Return a new artifact with replaced metadata and the same bytes.

        Args:
            filename: New filename (keeps the current one if None)
            mime_type: New MIME type (keeps the current one if None)
        """
        return Artifact(
            data=self.data,
            filename=filename if filename is not None else self.filename,
            mime_type=mime_type if mime_type is not None else self.mime_type,
        )

    def cursor(self) -> BytesIO:
        """Seekable read cursor over the content."""
        return BytesIO(self.data)

    def sha256(self) -> str:
        """Hex-encoded SHA-256 of the content."""
        return hashlib.sha256(self.data).hexdigest()

    def to_dict(self) -> dict:
        """Metadata summary for JSON output (content is not included)."""
        return {
            "filename": self.filename,
            "mime_type": self.effective_mime_type,
            "size": self.size,
            "sha256": self.sha256(),
        }
