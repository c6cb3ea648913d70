"""Line diffs and previews for pending patches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from ..core.errors import LineRangeError
from ..editor.lines import line_numbers_to_offsets, normalize_line_endings
from .applier import apply_to_content
from .models import DiffInfo, DiffLine, DiffLineKind, DiffStats, InsertPatch, Patch

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EditorPositions:
    """Line span of a patch translated into character offsets of the document."""

    start_line: int
    end_line: int
    start_offset: int
    end_offset: int


@dataclass(slots=True, frozen=True)
class PreviewSummary:
    total_files: int
    total_changes: int
    by_file: Mapping[str, DiffStats] = field(default_factory=dict)


def compute_line_diff(before: str, after: str) -> list[DiffLine]:
    """Align two texts line by line with a single line of lookahead.

    This is not an LCS diff. It handles the contiguous edits patches produce;
    lines moved far from their original position show up as modifications.
    """

    old = before.split("\n")
    new = after.split("\n")
    diff: list[DiffLine] = []
    i = j = 0
    while i < len(old) or j < len(new):
        if i < len(old) and j < len(new) and old[i] == new[j]:
            diff.append(DiffLine(i + 1, DiffLineKind.UNCHANGED, new[j], new_line_number=j + 1))
            i += 1
            j += 1
        elif i >= len(old):
            diff.append(DiffLine(i + 1, DiffLineKind.ADDED, new[j], new_line_number=j + 1))
            j += 1
        elif j >= len(new):
            diff.append(DiffLine(i + 1, DiffLineKind.REMOVED, old[i]))
            i += 1
        elif i + 1 < len(old) and old[i + 1] == new[j]:
            diff.append(DiffLine(i + 1, DiffLineKind.REMOVED, old[i]))
            i += 1
        elif j + 1 < len(new) and new[j + 1] == old[i]:
            diff.append(DiffLine(i + 1, DiffLineKind.ADDED, new[j], new_line_number=j + 1))
            j += 1
        else:
            diff.append(
                DiffLine(i + 1, DiffLineKind.MODIFIED, new[j], new_line_number=j + 1, original_content=old[i])
            )
            i += 1
            j += 1
    return diff


def diff_stats(lines: Iterable[DiffLine]) -> DiffStats:
    additions = deletions = modifications = 0
    for line in lines:
        if line.kind is DiffLineKind.ADDED:
            additions += 1
        elif line.kind is DiffLineKind.REMOVED:
            deletions += 1
        elif line.kind is DiffLineKind.MODIFIED:
            modifications += 1
    return DiffStats(additions=additions, deletions=deletions, modifications=modifications)


def compute_diff(patch: Patch, file_content: str) -> DiffInfo:
    """Diff ``file_content`` against the result of applying ``patch`` to it.

    A patch that does not fit the content yields an empty diff.
    """

    before = normalize_line_endings(file_content)
    try:
        after = apply_to_content(patch, before)
    except LineRangeError as exc:
        LOGGER.warning("Cannot preview %s patch for %s: %s", patch.kind.value, patch.file, exc.message)
        after = before
    lines = compute_line_diff(before, after)
    return DiffInfo(file_path=patch.file, before=before, after=after, diff=tuple(lines), stats=diff_stats(lines))


def render_unified_diff(info: DiffInfo) -> str:
    """Render ``info`` as a single-hunk unified diff."""

    before_lines = info.before.split("\n")
    after_count = len(info.after.split("\n"))
    parts = [
        f"--- {info.file_path} (before)\n",
        f"+++ {info.file_path} (after)\n",
        f"@@ -1,{len(before_lines)} +1,{after_count} @@\n",
    ]
    for line in info.diff:
        if line.kind is DiffLineKind.ADDED:
            parts.append(f"+{line.content}\n")
        elif line.kind is DiffLineKind.REMOVED:
            parts.append(f"-{line.content}\n")
        elif line.kind is DiffLineKind.MODIFIED:
            original = line.original_content
            if original is None:
                original = before_lines[line.line_number - 1]
            parts.append(f"-{original}\n")
            parts.append(f"+{line.content}\n")
        else:
            parts.append(f" {line.content}\n")
    return "".join(parts)


def editor_positions(patch: Patch, file_content: str) -> EditorPositions:
    """Map the patch's line span onto character offsets for the editor.

    An insert that appends after the last line maps to the end of the content.
    Other out-of-range spans raise :class:`LineRangeError`.
    """

    content = normalize_line_endings(file_content)
    span = patch.affected_range
    if isinstance(patch, InsertPatch) and patch.line == len(content.split("\n")) + 1:
        end = len(content)
        return EditorPositions(span.start_line, span.end_line, end, end)
    offsets = line_numbers_to_offsets(content, span.start_line, span.end_line)
    return EditorPositions(span.start_line, span.end_line, offsets.start_offset, offsets.end_offset)


def summarize_preview(patches: Sequence[Patch], file_contents: Mapping[str, str]) -> PreviewSummary:
    """Aggregate diff statistics per file for a batch preview.

    Each patch is diffed against the unmodified content of its file.
    """

    by_file: dict[str, DiffStats] = {}
    for patch in patches:
        stats = compute_diff(patch, file_contents.get(patch.file, "")).stats
        by_file[patch.file] = by_file.get(patch.file, DiffStats()) + stats
    total_changes = sum(stats.total for stats in by_file.values())
    return PreviewSummary(total_files=len(by_file), total_changes=total_changes, by_file=by_file)


__all__ = [
    "EditorPositions",
    "PreviewSummary",
    "compute_diff",
    "compute_line_diff",
    "diff_stats",
    "editor_positions",
    "render_unified_diff",
    "summarize_preview",
]
