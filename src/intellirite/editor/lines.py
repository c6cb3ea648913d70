"""Line number helpers shared by the patch pipeline.

All helpers split on ``"\\n"`` exactly like a naive ``str.split`` and rejoin
with ``"\\n"``, so a trailing newline produces a final empty line. Content is
expected to be normalized with :func:`normalize_line_endings` once, when it
enters the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.errors import LineRangeError

__all__ = [
    "ChangeStats",
    "ContextWindow",
    "LineColumn",
    "LineOffsets",
    "LineRangeCheck",
    "calculate_change_stats",
    "count_lines",
    "delete_line_range",
    "extract_line_range",
    "extract_with_context",
    "get_file_extension",
    "get_file_size",
    "insert_at_line",
    "is_large_file",
    "line_numbers_to_offsets",
    "normalize_line_endings",
    "offset_to_line_column",
    "replace_line_range",
    "validate_line_range",
]

LARGE_FILE_THRESHOLD = 500
DEFAULT_CONTEXT_WINDOW_LINES = 50


@dataclass(slots=True, frozen=True)
class LineOffsets:
    """Character offsets covering a line range (end is exclusive)."""

    start_offset: int
    end_offset: int


@dataclass(slots=True, frozen=True)
class LineColumn:
    """1-indexed line and 0-indexed column of a character offset."""

    line: int
    column: int


@dataclass(slots=True, frozen=True)
class LineRangeCheck:
    """Outcome of :func:`validate_line_range`."""

    is_valid: bool
    error: str | None = None


@dataclass(slots=True, frozen=True)
class ChangeStats:
    """Line-count based comparison of two snippets."""

    original_lines: int
    modified_lines: int
    lines_changed: int
    change_percentage: float
    char_difference: int


@dataclass(slots=True, frozen=True)
class ContextWindow:
    """Slice of a document around a selection plus the selection's position in it."""

    content: str
    actual_start_line: int
    actual_end_line: int
    selection_start_in_context: int
    selection_end_in_context: int


# -----------------------------------------------------------------------------
# Conversions
# -----------------------------------------------------------------------------


def normalize_line_endings(content: str) -> str:
    """Collapse ``\\r\\n`` and lone ``\\r`` into ``\\n``."""

    return content.replace("\r\n", "\n").replace("\r", "\n")


def count_lines(content: str) -> int:
    """Return the number of lines in ``content``; an empty string has none."""

    if not content:
        return 0
    return len(content.split("\n"))


def line_numbers_to_offsets(content: str, start_line: int, end_line: int) -> LineOffsets:
    """Convert an inclusive 1-indexed line range into character offsets."""

    lines = content.split("\n")
    _require_range(start_line, end_line, len(lines))

    start_offset = 0
    for index in range(start_line - 1):
        start_offset += len(lines[index]) + 1

    end_offset = start_offset
    last_index = len(lines) - 1
    for index in range(start_line - 1, end_line):
        end_offset += len(lines[index]) + (1 if index < last_index else 0)

    return LineOffsets(start_offset=start_offset, end_offset=end_offset)


def offset_to_line_column(content: str, offset: int) -> LineColumn:
    """Map a character offset back to a line/column pair.

    Offsets past the end of the content resolve to the end of the last line.
    """

    lines = content.split("\n")
    current = 0
    for index, line in enumerate(lines):
        width = len(line) + 1
        if current + width > offset:
            return LineColumn(line=index + 1, column=offset - current)
        current += width
    return LineColumn(line=len(lines), column=len(lines[-1]))


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


def validate_line_range(content: str, start_line: int, end_line: int) -> LineRangeCheck:
    """Check a range against :func:`count_lines` without raising."""

    line_count = count_lines(content)
    if start_line < 1:
        return LineRangeCheck(False, "Start line must be >= 1")
    if end_line < start_line:
        return LineRangeCheck(False, "End line must be >= start line")
    if end_line > line_count:
        return LineRangeCheck(False, f"End line {end_line} exceeds file length ({line_count} lines)")
    return LineRangeCheck(True)


def _require_range(start_line: int, end_line: int, total_lines: int) -> None:
    if start_line < 1 or end_line < start_line or end_line > total_lines:
        raise LineRangeError(
            message=f"Invalid line range: {start_line}-{end_line} (file has {total_lines} lines)",
            start_line=start_line,
            end_line=end_line,
            total_lines=total_lines,
        )


def _require_valid(content: str, start_line: int, end_line: int) -> None:
    check = validate_line_range(content, start_line, end_line)
    if not check.is_valid:
        raise LineRangeError(
            message=check.error or "Invalid line range",
            start_line=start_line,
            end_line=end_line,
            total_lines=count_lines(content),
        )


# -----------------------------------------------------------------------------
# Extraction
# -----------------------------------------------------------------------------


def extract_line_range(content: str, start_line: int, end_line: int) -> str:
    """Return the text of lines ``start_line``..``end_line`` (inclusive)."""

    lines = content.split("\n")
    _require_range(start_line, end_line, len(lines))
    return "\n".join(lines[start_line - 1 : end_line])


def extract_with_context(
    content: str,
    start_line: int,
    end_line: int,
    window_lines: int = DEFAULT_CONTEXT_WINDOW_LINES,
) -> ContextWindow:
    """Return the selection widened by ``window_lines`` on both sides."""

    lines = content.split("\n")
    actual_start = max(1, start_line - window_lines)
    actual_end = min(len(lines), end_line + window_lines)
    return ContextWindow(
        content="\n".join(lines[actual_start - 1 : actual_end]),
        actual_start_line=actual_start,
        actual_end_line=actual_end,
        selection_start_in_context=start_line - actual_start + 1,
        selection_end_in_context=end_line - actual_start + 1,
    )


# -----------------------------------------------------------------------------
# Mutation
# -----------------------------------------------------------------------------


def replace_line_range(content: str, start_line: int, end_line: int, replacement: str) -> str:
    """Replace an inclusive line range; the replacement may span any number of lines."""

    _require_valid(content, start_line, end_line)
    lines = content.split("\n")
    return "\n".join(lines[: start_line - 1] + replacement.split("\n") + lines[end_line:])


def insert_at_line(content: str, line_number: int, insertion: str) -> str:
    """Insert ``insertion`` before ``line_number``; ``line_count + 1`` appends."""

    lines = content.split("\n")
    if line_number < 1 or line_number > len(lines) + 1:
        raise LineRangeError(
            message=f"Invalid line number: {line_number} (file has {len(lines)} lines)",
            start_line=line_number,
            end_line=line_number,
            total_lines=len(lines),
        )
    index = line_number - 1
    return "\n".join(lines[:index] + insertion.split("\n") + lines[index:])


def delete_line_range(content: str, start_line: int, end_line: int) -> str:
    """Remove an inclusive line range."""

    _require_valid(content, start_line, end_line)
    lines = content.split("\n")
    return "\n".join(lines[: start_line - 1] + lines[end_line:])


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------


def calculate_change_stats(original: str, modified: str) -> ChangeStats:
    """Compare two snippets by line count.

    The percentage is the line-count delta relative to the original, not a
    similarity measure: rewriting every character of a range without changing
    its line count scores 0%.
    """

    original_lines = count_lines(original)
    modified_lines = count_lines(modified)
    lines_changed = abs(modified_lines - original_lines)
    percentage = (lines_changed / original_lines) * 100 if original_lines > 0 else 0.0
    return ChangeStats(
        original_lines=original_lines,
        modified_lines=modified_lines,
        lines_changed=lines_changed,
        change_percentage=percentage,
        char_difference=len(modified) - len(original),
    )


def is_large_file(content: str, threshold: int = LARGE_FILE_THRESHOLD) -> bool:
    return count_lines(content) > threshold


def get_file_size(content: str) -> int:
    """Size in characters, the denominator of insert and delete change percentages."""

    return len(content)


def get_file_extension(file_name: str) -> str | None:
    """Return the lowercase extension without the dot, if any."""

    parts = file_name.split(".")
    if len(parts) > 1:
        return parts[-1].lower()
    return None
