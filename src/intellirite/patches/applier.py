"""Apply patches to document content."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Mapping, Sequence

from ..core.errors import ApplyError, ErrorCode, LineRangeError
from ..editor.lines import (
    delete_line_range,
    extract_line_range,
    insert_at_line,
    normalize_line_endings,
    replace_line_range,
)
from .conflicts import application_order
from .models import DeletePatch, EnrichedPatch, InsertPatch, Patch, PatchStatus, ReplacePatch

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ApplyResult:
    """Outcome of applying a single patch.

    ``new_content`` is the full document after the edit and is only present
    when ``status`` is ``APPLIED``.
    """

    status: PatchStatus
    file: str
    new_content: str | None = None
    lines_affected: int = 0
    error: ApplyError | None = None
    index: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is PatchStatus.APPLIED


@dataclass(slots=True, frozen=True)
class BatchApplyResult:
    """Outcome of :func:`apply_batch`; ``results`` follow application order."""

    results: tuple[ApplyResult, ...]
    contents: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def applied(self) -> tuple[ApplyResult, ...]:
        return self._with_status(PatchStatus.APPLIED)

    @property
    def failed(self) -> tuple[ApplyResult, ...]:
        return self._with_status(PatchStatus.FAILED)

    @property
    def not_attempted(self) -> tuple[ApplyResult, ...]:
        return self._with_status(PatchStatus.NOT_ATTEMPTED)

    def _with_status(self, status: PatchStatus) -> tuple[ApplyResult, ...]:
        return tuple(result for result in self.results if result.status is status)


def apply_to_content(patch: Patch, content: str) -> str:
    """Return ``content`` with ``patch`` applied; raises :class:`LineRangeError`."""

    if isinstance(patch, InsertPatch):
        return insert_at_line(content, patch.line, patch.content)
    if isinstance(patch, ReplacePatch):
        return replace_line_range(content, patch.target.start_line, patch.target.end_line, patch.replacement)
    if isinstance(patch, DeletePatch):
        return delete_line_range(content, patch.target.start_line, patch.target.end_line)
    raise TypeError(f"Unsupported patch type: {type(patch).__name__}")


def apply_patch(patch: Patch, file_content: str) -> ApplyResult:
    """Apply ``patch`` and report the outcome instead of raising."""

    try:
        new_content = apply_to_content(patch, normalize_line_endings(file_content))
    except LineRangeError as exc:
        LOGGER.warning("Failed to apply %s patch to %s: %s", patch.kind.value, patch.file, exc.message)
        return _failed(patch.file, ApplyError(message=exc.message, file=patch.file, details=exc.to_dict()))
    return ApplyResult(
        status=PatchStatus.APPLIED,
        file=patch.file,
        new_content=new_content,
        lines_affected=patch.lines_affected,
    )


def apply_enriched_patch(enriched: EnrichedPatch, file_content: str) -> ApplyResult:
    """Apply an enriched patch after checking its snapshot still matches.

    Replace and delete patches remember the text they were computed against;
    if those lines have changed since, the patch is not applied.
    """

    if not enriched.is_valid:
        error_code = ErrorCode.FILE_NOT_FOUND if not enriched.file_found else ErrorCode.APPLY_FAILED
        return _failed(
            enriched.file,
            ApplyError(
                error_code=error_code,
                message="; ".join(enriched.errors),
                file=enriched.file,
                details={"errors": list(enriched.errors)},
            ),
        )

    content = normalize_line_endings(file_content)
    patch = enriched.patch
    if enriched.original_content is not None and not isinstance(patch, InsertPatch):
        try:
            current = extract_line_range(content, patch.target.start_line, patch.target.end_line)
        except LineRangeError as exc:
            current = None
            LOGGER.debug("Snapshot range no longer valid for %s: %s", patch.file, exc.message)
        if current != enriched.original_content:
            LOGGER.warning("Stale snapshot for %s at lines %s", patch.file, patch.affected_range)
            return _failed(
                patch.file,
                ApplyError(
                    error_code=ErrorCode.STALE_SNAPSHOT,
                    message=f"{patch.file} changed since the patch was prepared (lines {patch.affected_range})",
                    file=patch.file,
                    expected=enriched.original_content,
                    actual=current,
                    suggestion="Request a fresh patch against the current document",
                ),
            )

    return apply_patch(patch, content)


def apply_batch(enriched: Sequence[EnrichedPatch], file_contents: Mapping[str, str]) -> BatchApplyResult:
    """Apply a batch bottom-up per file, stopping at the first failure.

    Patches after a failure are reported as ``NOT_ATTEMPTED``. The returned
    contents carry every successful edit made before the failure.
    """

    contents = {name: normalize_line_endings(text) for name, text in file_contents.items()}
    results: list[ApplyResult] = []
    stopped = False
    for index in application_order(enriched):
        item = enriched[index]
        if stopped:
            results.append(ApplyResult(status=PatchStatus.NOT_ATTEMPTED, file=item.file, index=index))
            continue

        current = contents.get(item.file)
        if current is None:
            result = _missing_file(item.file)
        else:
            result = apply_enriched_patch(item, current)
        result = replace(result, index=index)
        results.append(result)

        if result.ok and result.new_content is not None:
            contents[item.file] = result.new_content
        else:
            stopped = True

    applied = sum(1 for result in results if result.ok)
    LOGGER.debug("Applied %s of %s patch(es)", applied, len(results))
    return BatchApplyResult(results=tuple(results), contents=contents)


def _failed(file_name: str, error: ApplyError) -> ApplyResult:
    return ApplyResult(status=PatchStatus.FAILED, file=file_name, error=error)


def _missing_file(file_name: str) -> ApplyResult:
    return _failed(
        file_name,
        ApplyError(error_code=ErrorCode.FILE_NOT_FOUND, message=f"File not found: {file_name}", file=file_name),
    )


__all__ = [
    "ApplyResult",
    "BatchApplyResult",
    "apply_batch",
    "apply_enriched_patch",
    "apply_patch",
    "apply_to_content",
]
