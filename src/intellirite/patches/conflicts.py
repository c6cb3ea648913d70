"""Overlap detection and application ordering for patch batches."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence, TypeVar

from ..core.ranges import LineRange
from .models import ConflictPair, EnrichedPatch, Patch

LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T", EnrichedPatch, Patch)


def affected_range(patch: Patch | EnrichedPatch) -> LineRange:
    """Lines touched by ``patch``; inserts touch only their anchor line."""

    if isinstance(patch, EnrichedPatch):
        patch = patch.patch
    return patch.affected_range


def find_overlap(first: Patch | EnrichedPatch, second: Patch | EnrichedPatch) -> LineRange | None:
    return affected_range(first).intersection(affected_range(second))


def detect_conflicts(patches: Sequence[Patch | EnrichedPatch]) -> list[ConflictPair]:
    """Report every pair of same-file patches whose ranges overlap.

    Indices refer to positions in ``patches``. Comparison is pairwise within
    each file, which is fine for the handful of patches a response carries.
    """

    by_file: dict[str, list[int]] = defaultdict(list)
    for index, patch in enumerate(patches):
        by_file[patch.file].append(index)

    conflicts: list[ConflictPair] = []
    for file_name, indices in by_file.items():
        for position, first in enumerate(indices):
            for second in indices[position + 1 :]:
                overlap = find_overlap(patches[first], patches[second])
                if overlap is not None:
                    conflicts.append(ConflictPair(first, second, file_name, overlap))

    conflicts.sort(key=lambda pair: (pair.first_index, pair.second_index))
    if conflicts:
        LOGGER.debug("Detected %s conflicting patch pair(s)", len(conflicts))
    return conflicts


def sort_patches(patches: Sequence[_T]) -> list[_T]:
    """Order patches by file, then bottom-up within each file.

    Applying the highest line first keeps the line numbers of the remaining
    patches valid. The sort is stable for equal start lines.
    """

    return [patches[index] for index in application_order(patches)]


def application_order(patches: Sequence[Patch | EnrichedPatch]) -> list[int]:
    """Indices of ``patches`` in the order :func:`sort_patches` would apply them."""

    return sorted(
        range(len(patches)),
        key=lambda index: (patches[index].file, -affected_range(patches[index]).start_line),
    )


__all__ = ["affected_range", "application_order", "detect_conflicts", "find_overlap", "sort_patches"]
