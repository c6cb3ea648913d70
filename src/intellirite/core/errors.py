"""Standardized error types for the patch pipeline.

Every error carries a machine-readable code plus a human-readable message
suitable for direct display, and serializes consistently via ``to_dict``.
Only :class:`LineRangeError` is raised in normal operation; the other types
travel through the pipeline as data attached to results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes attached to pipeline errors."""

    # Extraction errors
    EMPTY_RESPONSE = "empty_response"
    NO_PATCH_TAGS = "no_patch_tags"
    INVALID_JSON = "invalid_json"
    DUPLICATE_KEY = "duplicate_key"
    NOT_AN_ARRAY = "not_an_array"

    # Patch errors
    STRUCTURAL_VALIDATION = "structural_validation"
    INVALID_LINE_RANGE = "invalid_line_range"
    FILE_NOT_FOUND = "file_not_found"

    # Application errors
    STALE_SNAPSHOT = "stale_snapshot"
    APPLY_FAILED = "apply_failed"

    # Generation errors
    GENERATION_CANCELLED = "generation_cancelled"

    INTERNAL_ERROR = "internal_error"


# Extraction failures that simply mean "this was a conversational answer".
CONVERSATIONAL_CODES = frozenset({ErrorCode.EMPTY_RESPONSE, ErrorCode.NO_PATCH_TAGS})


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class PatchError(Exception):
    """Base exception class for all patch pipeline errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for display or logging."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Extraction Errors
# -----------------------------------------------------------------------------

@dataclass
class ExtractionError(PatchError):
    """Model output did not contain a usable patch payload.

    ``empty_response`` and ``no_patch_tags`` mean the answer was plain
    conversation; the remaining codes mean the model tried to emit a patch
    and got the syntax wrong.
    """

    error_code: str = field(default=ErrorCode.NO_PATCH_TAGS)
    message: str = field(default="Response does not contain valid patch format")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Treat the response as a conversational answer")

    @property
    def is_conversational(self) -> bool:
        return self.error_code in CONVERSATIONAL_CODES


# -----------------------------------------------------------------------------
# Patch Errors
# -----------------------------------------------------------------------------

@dataclass
class StructuralValidationError(PatchError):
    """Aggregates every structural problem found in one patch payload."""

    error_code: str = field(default=ErrorCode.STRUCTURAL_VALIDATION)
    message: str = field(default="Patch payload is structurally invalid")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Ask the model to resend the patch using the documented format")

    errors: tuple[str, ...] = field(default_factory=tuple)
    patch_index: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = list(self.errors)
        if self.patch_index is not None:
            result["patch_index"] = self.patch_index
        return result


@dataclass
class LineRangeError(PatchError, ValueError):
    """Raised by the line primitives when a range falls outside the content."""

    error_code: str = field(default=ErrorCode.INVALID_LINE_RANGE)
    message: str = field(default="Invalid line range specified")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Re-read the document and recompute the line numbers")

    start_line: int | None = field(default=None)
    end_line: int | None = field(default=None)
    total_lines: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.start_line is not None:
            result["start_line"] = self.start_line
        if self.end_line is not None:
            result["end_line"] = self.end_line
        if self.total_lines is not None:
            result["total_lines"] = self.total_lines
        return result


@dataclass
class PatchFileNotFoundError(PatchError):
    """A patch names a document that is absent from the supplied contents."""

    error_code: str = field(default=ErrorCode.FILE_NOT_FOUND)
    message: str = field(default="File not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Open the document before applying the patch")

    file: str | None = field(default=None)

    @classmethod
    def for_file(cls, name: str) -> "PatchFileNotFoundError":
        return cls(message=f"File not found: {name}", file=name)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.file is not None:
            result["file"] = self.file
        return result


# -----------------------------------------------------------------------------
# Application Errors
# -----------------------------------------------------------------------------

@dataclass
class ApplyError(PatchError):
    """A patch could not be applied to the current document content.

    The document is always left untouched when this error is reported.
    """

    error_code: str = field(default=ErrorCode.APPLY_FAILED)
    message: str = field(default="Failed to apply patch")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Reload the document and request a fresh patch")

    file: str | None = field(default=None)
    expected: str | None = field(default=None)
    actual: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.file is not None:
            result["file"] = self.file
        if self.expected is not None:
            result["expected"] = self.expected
        if self.actual is not None:
            result["actual"] = self.actual
        return result


@dataclass
class GenerationCancelledError(PatchError):
    """The user stopped an in-flight generation."""

    error_code: str = field(default=ErrorCode.GENERATION_CANCELLED)
    message: str = field(default="Generation was cancelled")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    severity: ClassVar[str] = "warning"


# -----------------------------------------------------------------------------
# Utility Functions
# -----------------------------------------------------------------------------

def error_from_dict(data: Mapping[str, Any]) -> PatchError:
    """Reconstruct a PatchError from its dictionary representation."""
    return PatchError(
        error_code=data.get("error", ErrorCode.INTERNAL_ERROR),
        message=data.get("message", "Unknown error"),
        details=dict(data.get("details", {})),
        suggestion=data.get("suggestion", ""),
    )


__all__ = [
    "ErrorCode",
    "CONVERSATIONAL_CODES",
    "PatchError",
    "ExtractionError",
    "StructuralValidationError",
    "LineRangeError",
    "PatchFileNotFoundError",
    "ApplyError",
    "GenerationCancelledError",
    "error_from_dict",
]
