"""Error taxonomy shared by processors and the workflow executor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    """What went wrong, independent of which processor raised it."""

    INVALID_OPTIONS = "INVALID_OPTIONS"
    FILE_TYPE_INVALID = "FILE_TYPE_INVALID"
    PDF_ENCRYPTED = "PDF_ENCRYPTED"
    INVALID_PAGE_RANGE = "INVALID_PAGE_RANGE"
    PROCESSING_CANCELLED = "PROCESSING_CANCELLED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    UNSUPPORTED_KIND = "UNSUPPORTED_KIND"


class ErrorCategory(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FILE_ERROR = "FILE_ERROR"
    SECURITY_ERROR = "SECURITY_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# code -> (category, recoverable, suggested action)
_DEFAULTS: dict[ErrorCode, tuple[ErrorCategory, bool, str | None]] = {
    ErrorCode.INVALID_OPTIONS: (
        ErrorCategory.VALIDATION_ERROR,
        False,
        "Check the step settings and input files.",
    ),
    ErrorCode.FILE_TYPE_INVALID: (
        ErrorCategory.FILE_ERROR,
        False,
        "Provide a file of a supported type.",
    ),
    ErrorCode.PDF_ENCRYPTED: (
        ErrorCategory.SECURITY_ERROR,
        False,
        "Decrypt the file or supply its password.",
    ),
    ErrorCode.INVALID_PAGE_RANGE: (
        ErrorCategory.VALIDATION_ERROR,
        False,
        "Select pages within the document's page count.",
    ),
    ErrorCode.PROCESSING_CANCELLED: (
        ErrorCategory.PROCESSING_ERROR,
        True,
        "Run the workflow again.",
    ),
    ErrorCode.PROCESSING_FAILED: (
        ErrorCategory.PROCESSING_ERROR,
        True,
        "Try again, or check that the input file is not damaged.",
    ),
    ErrorCode.UNSUPPORTED_KIND: (
        ErrorCategory.CONFIGURATION_ERROR,
        False,
        "Replace the step with a supported tool.",
    ),
}


@dataclass(frozen=True)
class ProcessingError:
    """
    Structured error carried by a failed ProcessOutput.

    Attributes:
        code: Error kind
        category: Broad grouping of the code
        message: Human-readable summary
        details: Diagnostic detail (e.g. the original exception message)
        recoverable: Whether re-running without changes can succeed
        suggested_action: Hint for the user
    """

    code: ErrorCode
    category: ErrorCategory
    message: str
    details: str | None = None
    recoverable: bool = False
    suggested_action: str | None = None

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
        }


def create_error(
    code: ErrorCode,
    message: str,
    details: str | None = None,
    *,
    recoverable: bool | None = None,
    suggested_action: str | None = None,
) -> ProcessingError:
    """
    Build a ProcessingError, filling category/recoverability from the code.

    Args:
        code: Error kind
        message: Human-readable summary
        details: Optional diagnostic detail
        recoverable: Override the code's default recoverability
        suggested_action: Override the code's default suggestion
    """
    category, default_recoverable, default_action = _DEFAULTS[code]
    return ProcessingError(
        code=code,
        category=category,
        message=message,
        details=details,
        recoverable=default_recoverable if recoverable is None else recoverable,
        suggested_action=suggested_action or default_action,
    )


class ProcessorError(Exception):
    """
    Raised inside a processor to abort with a specific error.

    BaseProcessor.process() converts it into a failed ProcessOutput; it never
    escapes a processor.
    """

    def __init__(self, error: ProcessingError):
        super().__init__(error.message)
        self.error = error

    @classmethod
    def of(cls, code: ErrorCode, message: str, details: str | None = None, **kwargs) -> "ProcessorError":
        return cls(create_error(code, message, details, **kwargs))
