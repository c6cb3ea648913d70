"""Core domain types shared by the editor helpers and the patch pipeline."""

from .errors import (
    ApplyError,
    ErrorCode,
    ExtractionError,
    LineRangeError,
    PatchError,
    PatchFileNotFoundError,
    StructuralValidationError,
)
from .ranges import LineRange

__all__ = [
    "ApplyError",
    "ErrorCode",
    "ExtractionError",
    "LineRange",
    "LineRangeError",
    "PatchError",
    "PatchFileNotFoundError",
    "StructuralValidationError",
]
