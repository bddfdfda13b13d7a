"""
Artifact coercion - give resolved inputs the name and type a processor needs.

Intermediate outputs often arrive without a filename or MIME type (or with
only one of them). Processors validate by MIME type and name their outputs
after their inputs, so every artifact is given both before dispatch. Only
metadata is synthesized; the bytes are passed through untouched.
"""

from __future__ import annotations

from typing import Iterable

from docflow.artifact import Artifact, extension_for_mime, guess_mime_type, sniff_extension


def synthetic_filename(kind: str, position: int, artifact: Artifact) -> str:
    """
    Filename for an unnamed artifact, e.g. "compress-pdf-input-1.pdf".

    The extension comes from the declared MIME type, then from the content's
    magic bytes, then defaults to ".pdf".
    """
    ext = extension_for_mime(artifact.mime_type) or sniff_extension(artifact.data) or ".pdf"
    return f"{kind}-input-{position}{ext}"


def coerce_artifact(artifact: Artifact, kind: str, position: int) -> Artifact:
    """
    Fill in a missing filename and MIME type.

    Args:
        artifact: Resolved input artifact
        kind: Kind of the node that will consume it
        position: 1-based position in the node's input list

    Returns:
        The same artifact if nothing was missing, otherwise a copy sharing
        the same bytes
    """
    if artifact.filename and artifact.mime_type:
        return artifact
    filename = artifact.filename or synthetic_filename(kind, position, artifact)
    mime_type = artifact.mime_type or guess_mime_type(filename)
    return artifact.with_metadata(filename=filename, mime_type=mime_type)


def coerce_artifacts(artifacts: Iterable[Artifact], kind: str) -> list[Artifact]:
    """Coerce a node's whole input list (positions are 1-based)."""
    return [coerce_artifact(artifact, kind, n) for n, artifact in enumerate(artifacts, start=1)]
