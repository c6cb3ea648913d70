"""Match typed patches against the current content of their documents."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from ..core.errors import PatchFileNotFoundError
from ..editor.lines import (
    calculate_change_stats,
    count_lines,
    extract_line_range,
    get_file_size,
    normalize_line_endings,
    validate_line_range,
)
from .models import DeletePatch, EnrichedPatch, InsertPatch, Patch, ReplacePatch

LOGGER = logging.getLogger(__name__)


def enrich_patch(patch: Patch, file_content: str | None) -> EnrichedPatch:
    """Compute the snapshot and change size of ``patch``.

    ``file_content`` of ``None`` means the document is unknown. Range problems
    are recorded on the result; this function never raises for bad input.
    """

    if file_content is None:
        return EnrichedPatch(patch=patch, errors=(PatchFileNotFoundError.for_file(patch.file).message,))

    content = normalize_line_endings(file_content)
    line_count = count_lines(content)
    if isinstance(patch, InsertPatch):
        return _enrich_insert(patch, content, line_count)
    if isinstance(patch, ReplacePatch):
        return _enrich_replace(patch, content, line_count)
    if isinstance(patch, DeletePatch):
        return _enrich_delete(patch, content, line_count)
    raise TypeError(f"Unsupported patch type: {type(patch).__name__}")


def enrich_and_validate(patches: Iterable[Patch], file_contents: Mapping[str, str]) -> list[EnrichedPatch]:
    """Enrich every patch of a batch against ``file_contents`` keyed by file name."""

    enriched = [enrich_patch(patch, file_contents.get(patch.file)) for patch in patches]
    invalid = sum(1 for item in enriched if not item.is_valid)
    if invalid:
        LOGGER.debug("Enrichment flagged %s of %s patch(es) as invalid", invalid, len(enriched))
    return enriched


def _enrich_insert(patch: InsertPatch, content: str, line_count: int) -> EnrichedPatch:
    errors: list[str] = []
    if patch.line < 1:
        errors.append("Insert line must be >= 1")
    elif patch.line > line_count + 1:
        errors.append(f"Insert line {patch.line} exceeds file length ({line_count} lines) + 1")

    change_size = len(patch.content)
    percentage = 100.0 if not content else (change_size / get_file_size(content)) * 100
    return EnrichedPatch(
        patch=patch,
        errors=tuple(errors),
        change_size=change_size,
        change_percentage=percentage,
        file_line_count=line_count,
    )


def _enrich_replace(patch: ReplacePatch, content: str, line_count: int) -> EnrichedPatch:
    original, error = _snapshot(patch, content)
    if error is not None:
        return EnrichedPatch(patch=patch, errors=(error,), file_line_count=line_count)

    stats = calculate_change_stats(original, patch.replacement)
    return EnrichedPatch(
        patch=patch,
        original_content=original,
        change_size=len(patch.replacement),
        change_percentage=stats.change_percentage,
        file_line_count=line_count,
    )


def _enrich_delete(patch: DeletePatch, content: str, line_count: int) -> EnrichedPatch:
    original, error = _snapshot(patch, content)
    if error is not None:
        return EnrichedPatch(patch=patch, errors=(error,), file_line_count=line_count)

    change_size = len(original)
    percentage = 0.0 if not content else (change_size / get_file_size(content)) * 100
    return EnrichedPatch(
        patch=patch,
        original_content=original,
        change_size=change_size,
        change_percentage=percentage,
        file_line_count=line_count,
    )


def _snapshot(patch: ReplacePatch | DeletePatch, content: str) -> tuple[str, str | None]:
    # Same rule the mutators enforce at apply time: an empty document has no lines.
    check = validate_line_range(content, patch.target.start_line, patch.target.end_line)
    if not check.is_valid:
        return "", check.error or "Invalid line range"
    return extract_line_range(content, patch.target.start_line, patch.target.end_line), None


__all__ = ["enrich_and_validate", "enrich_patch"]
