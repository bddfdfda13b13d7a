"""
Processor contract.

Every transformation (merge, split, compress, ...) is a BaseProcessor
subclass. The workflow executor only ever calls `process()` and `cancel()`,
so dozens of very different processors can be driven the same way:

    processor = SplitPDFProcessor()
    output = await processor.process(
        ProcessInput(files=[artifact], options=SplitOptions(mode="single")),
        on_progress=lambda percent, message: print(percent, message),
    )
    if output.success:
        for part in output.artifacts:
            ...

`process()` never raises. Bad input, cancellation and library failures all
come back as a failed ProcessOutput carrying a ProcessingError.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Sequence, TypeVar

from docflow.artifact import PDF_MIME, Artifact
from docflow.progress import MonotonicProgress, ProgressCallback, ProgressRange, scale_progress
from docflow.runtime import RuntimeConfig, get_global_config

from .engine import open_pdf, save_pdf
from .errors import ErrorCode, ProcessingError, ProcessorError, create_error

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Input / output envelopes
# -----------------------------------------------------------------------------


@dataclass
class ProcessInput:
    """Input to a single process() call."""

    files: Sequence[Artifact]
    options: Any = None


@dataclass(frozen=True)
class ProcessOutput:
    """
    Result envelope of a process() call.

    Exactly one of `artifacts` (non-empty) and `error` is populated.
    """

    success: bool
    artifacts: tuple[Artifact, ...] = ()
    filename: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: ProcessingError | None = None

    def __post_init__(self):
        object.__setattr__(self, "artifacts", tuple(self.artifacts))
        if self.success:
            if not self.artifacts:
                raise ValueError("A successful ProcessOutput needs at least one artifact")
            if self.error is not None:
                raise ValueError("A successful ProcessOutput cannot carry an error")
        else:
            if self.error is None:
                raise ValueError("A failed ProcessOutput needs an error")
            if self.artifacts:
                raise ValueError("A failed ProcessOutput cannot carry artifacts")

    @classmethod
    def ok(
        cls,
        artifacts: Artifact | Iterable[Artifact],
        filename: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "ProcessOutput":
        if isinstance(artifacts, Artifact):
            artifacts = (artifacts,)
        artifacts = tuple(artifacts)
        if filename is None and len(artifacts) == 1:
            filename = artifacts[0].filename
        return cls(success=True, artifacts=artifacts, filename=filename, metadata=dict(metadata or {}))

    @classmethod
    def fail(cls, error: ProcessingError) -> "ProcessOutput":
        return cls(success=False, error=error)

    @property
    def artifact(self) -> Artifact | None:
        """The single (or first) output artifact."""
        return self.artifacts[0] if self.artifacts else None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "artifacts": [a.to_dict() for a in self.artifacts],
            "filename": self.filename,
            "metadata": self.metadata,
            "error": self.error.to_dict() if self.error else None,
        }


def derive_filename(source: Artifact | None, suffix: str, extension: str = ".pdf") -> str:
    """Output filename built from the source's stem, e.g. report_compressed.pdf."""
    stem = source.stem if source is not None else "document"
    return f"{stem}{suffix}{extension}"


# -----------------------------------------------------------------------------
# Base processor
# -----------------------------------------------------------------------------


class BaseProcessor(ABC):
    """
    Base class for all processors.

    Subclasses set the class attributes describing what they accept and
    implement `_process()`. Validation, progress bookkeeping, cancellation,
    logging and error conversion live here.

    Attributes:
        kind: Identifier used in logs and default filenames
        accepted_types: MIME types accepted ("image/*" style prefixes allowed,
            empty means anything)
        options_class: Dataclass holding the processor's options
        min_files: Minimum number of input artifacts
        max_files: Maximum number of input artifacts (None = unlimited)
    """

    kind: str = "processor"
    accepted_types: tuple[str, ...] = (PDF_MIME,)
    options_class: type | None = None
    min_files: int = 1
    max_files: int | None = 1

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or get_global_config()
        self.logger = logging.getLogger(f"docflow.processors.{self.__class__.__name__}")
        self._cancel_event = threading.Event()
        self._progress = MonotonicProgress()

    # -- lifecycle ------------------------------------------------------------

    def reset(self) -> None:
        """Clear per-call state (progress and cancellation)."""
        self._cancel_event.clear()
        self._progress.reset()
        self._progress.callback = None

    def cancel(self) -> None:
        """Request cancellation. Safe to call from any thread, any number of times."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def check_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def checkpoint(self) -> None:
        """Yield to the event loop, then stop if cancellation was requested."""
        await asyncio.sleep(0)
        if self._cancel_event.is_set():
            raise ProcessorError(self._cancelled_error())

    async def cleanup(self) -> None:
        """Release per-call resources. Runs on every exit path of process()."""

    # -- progress -------------------------------------------------------------

    @property
    def progress(self) -> float:
        return self._progress.value

    def update_progress(self, percent: float, message: str = "") -> None:
        """Report progress; values are clamped to 0..100 and never decrease."""
        self._progress(percent, message)

    def stage(self, start: float, end: float) -> ProgressCallback:
        """Callback mapping a sub-stage's own 0..100 onto [start, end]."""
        return ProgressRange(start, end).wrap(self.update_progress)

    async def iter_items(
        self,
        items: Iterable[T],
        *,
        start: float = 10.0,
        end: float = 90.0,
        message: str = "Processing item",
    ) -> AsyncIterator[T]:
        """
        Iterate items with a cancellation checkpoint and progress update per item.

        Progress moves linearly from `start` to `end` across the items.
        """
        items = list(items)
        total = len(items)
        for n, item in enumerate(items):
            await self.checkpoint()
            self.update_progress(
                scale_progress(100.0 * n / total, start, end),
                f"{message} {n + 1}/{total}...",
            )
            yield item
        self.update_progress(end, message)

    async def iter_pages(
        self,
        doc,
        indices: Iterable[int] | None = None,
        *,
        start: float = 10.0,
        end: float = 90.0,
    ):
        """Iterate pages of a fitz document (0-based indices) with checkpoints."""
        if indices is None:
            indices = range(doc.page_count)
        async for index in self.iter_items(indices, start=start, end=end, message="Processing page"):
            yield doc[index]

    # -- envelopes ------------------------------------------------------------

    def error_output(
        self,
        code: ErrorCode,
        message: str,
        details: str | None = None,
        **kwargs,
    ) -> ProcessOutput:
        return ProcessOutput.fail(create_error(code, message, details, **kwargs))

    def cancelled_output(self) -> ProcessOutput:
        return ProcessOutput.fail(self._cancelled_error())

    def success_output(
        self,
        artifacts: Artifact | Iterable[Artifact],
        filename: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProcessOutput:
        return ProcessOutput.ok(artifacts, filename, metadata)

    def _cancelled_error(self) -> ProcessingError:
        return create_error(ErrorCode.PROCESSING_CANCELLED, "Processing was cancelled.")

    # -- validation -----------------------------------------------------------

    def accepts(self, mime_type: str) -> bool:
        """Whether a MIME type is one this processor accepts."""
        if not self.accepted_types:
            return True
        mime_type = mime_type.lower()
        for accepted in self.accepted_types:
            if accepted.endswith("/*"):
                if mime_type.startswith(accepted[:-1]):
                    return True
            elif mime_type == accepted:
                return True
        return False

    def validate_files(self, files: Sequence[Artifact]) -> ProcessingError | None:
        """Check input count and types. Returns an error, or None if acceptable."""
        count = len(files)
        if count < self.min_files:
            if count == 0:
                message = "No input file provided."
            else:
                message = f"At least {self.min_files} files are required."
            return create_error(ErrorCode.INVALID_OPTIONS, message, f"Received {count} file(s).")

        if self.max_files is not None and count > self.max_files:
            if self.max_files == 1:
                message = "Exactly 1 file is required."
            else:
                message = f"At most {self.max_files} files are accepted."
            return create_error(ErrorCode.INVALID_OPTIONS, message, f"Received {count} file(s).")

        for artifact in files:
            if not isinstance(artifact, Artifact):
                return create_error(
                    ErrorCode.FILE_TYPE_INVALID,
                    f"Unsupported input object: {type(artifact).__name__}.",
                )
            mime_type = artifact.effective_mime_type
            if not self.accepts(mime_type):
                return create_error(
                    ErrorCode.FILE_TYPE_INVALID,
                    f"'{artifact.filename or 'input'}' has an unsupported type ({mime_type}).",
                    f"Accepted types: {', '.join(self.accepted_types)}.",
                )
        return None

    def resolve_options(self, options: Any) -> Any:
        """Turn None / a mapping / an options instance into the options object."""
        if self.options_class is None:
            return options if options is not None else {}
        if options is None:
            return self.options_class()
        if isinstance(options, self.options_class):
            return options
        if isinstance(options, Mapping):
            try:
                return self.options_class(**options)
            except TypeError as e:
                raise ProcessorError.of(
                    ErrorCode.INVALID_OPTIONS,
                    f"Invalid options for {self.kind}.",
                    str(e),
                ) from e
        raise ProcessorError.of(
            ErrorCode.INVALID_OPTIONS,
            f"Invalid options for {self.kind}.",
            f"Expected {self.options_class.__name__}, got {type(options).__name__}.",
        )

    def validate_options(self, options: Any) -> str | None:
        """Check resolved options. Returns an error message, or None if valid."""
        return None

    # -- entry point ----------------------------------------------------------

    async def process(
        self,
        input: ProcessInput,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessOutput:
        """
        Run the processor.

        Args:
            input: Files and options
            on_progress: Optional callback(percent, message)

        Returns:
            ProcessOutput with artifacts on success, or an error
        """
        self.reset()
        self._progress.callback = on_progress
        files = list(input.files)
        start_time = time.monotonic()
        self.logger.info("Starting %s with %d file(s)", self.kind, len(files))

        try:
            file_error = self.validate_files(files)
            if file_error is not None:
                output = ProcessOutput.fail(file_error)
            else:
                options = self.resolve_options(input.options)
                message = self.validate_options(options)
                if message:
                    output = self.error_output(ErrorCode.INVALID_OPTIONS, message)
                elif self.check_cancelled():
                    output = self.cancelled_output()
                else:
                    self.update_progress(0, "Starting...")
                    output = await self._process(files, options)
                    if not isinstance(output, ProcessOutput):
                        output = self.error_output(
                            ErrorCode.PROCESSING_FAILED,
                            f"{self.kind} returned no result.",
                            f"Got {type(output).__name__}.",
                        )
        except ProcessorError as e:
            output = ProcessOutput.fail(e.error)
        except Exception as e:
            self.logger.exception("%s raised an unexpected error", self.kind)
            output = self.error_output(
                ErrorCode.PROCESSING_FAILED,
                f"Failed to run {self.kind}.",
                str(e) or type(e).__name__,
            )
        finally:
            try:
                await self.cleanup()
            except Exception:
                self.logger.warning("Cleanup failed for %s", self.kind, exc_info=True)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if output.success:
            self.update_progress(100, "Complete!")
            self.logger.info(
                "%s succeeded in %dms (%d output file(s))",
                self.kind,
                duration_ms,
                len(output.artifacts),
            )
        else:
            self.logger.warning(
                "%s failed in %dms: %s %s",
                self.kind,
                duration_ms,
                output.error.code.value,
                output.error.message,
            )
        return output

    @abstractmethod
    async def _process(self, files: list[Artifact], options: Any) -> ProcessOutput:
        """Do the actual work on validated input."""


class SinglePDFProcessor(BaseProcessor):
    """
    One PDF in, one PDF out.

    Opens the input, hands the document to `transform()`, saves the result
    under `<stem><suffix>.pdf`.
    """

    suffix: str = "_processed"

    def password_for(self, options: Any) -> str | None:
        """Password used to open the input (none by default)."""
        return None

    def save(self, doc, options: Any) -> bytes:
        return save_pdf(doc)

    async def _process(self, files: list[Artifact], options: Any) -> ProcessOutput:
        source = files[0]
        self.update_progress(5, "Loading PDF...")

        with open_pdf(source, self.password_for(options)) as doc:
            await self.checkpoint()
            metadata = await self.transform(doc, options) or {}
            await self.checkpoint()
            self.update_progress(92, "Saving PDF...")
            data = self.save(doc, options)
            metadata.setdefault("pageCount", doc.page_count)

        filename = derive_filename(source, self.suffix)
        return self.success_output(Artifact(data, filename, PDF_MIME), filename, metadata)

    @abstractmethod
    async def transform(self, doc, options: Any) -> dict[str, Any] | None:
        """Modify `doc` in place. May return metadata for the output envelope."""
