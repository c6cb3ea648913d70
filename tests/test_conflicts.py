"""Tests for overlap detection and ordering."""

from __future__ import annotations

from intellirite.core.ranges import LineRange
from intellirite.patches.conflicts import (
    affected_range,
    application_order,
    detect_conflicts,
    find_overlap,
    sort_patches,
)
from intellirite.patches.enricher import enrich_patch
from intellirite.patches.models import DeletePatch, InsertPatch, LineTarget, ReplacePatch


def _replace(file: str, start: int, end: int) -> ReplacePatch:
    return ReplacePatch(file=file, target=LineTarget(start, end), replacement="x")


def test_overlapping_replacements_on_same_file_conflict() -> None:
    patches = [_replace("notes.md", 10, 20), _replace("notes.md", 15, 25)]

    conflicts = detect_conflicts(patches)

    assert len(conflicts) == 1
    pair = conflicts[0]
    assert (pair.first_index, pair.second_index) == (0, 1)
    assert pair.file == "notes.md"
    assert pair.overlap == LineRange(15, 20)
    assert pair.reason == "Patches overlap at lines 15-20"


def test_conflicts_are_symmetric() -> None:
    first = _replace("notes.md", 10, 20)
    second = _replace("notes.md", 15, 25)

    forward = detect_conflicts([first, second])
    backward = detect_conflicts([second, first])

    assert find_overlap(first, second) == find_overlap(second, first)
    assert [pair.overlap for pair in forward] == [pair.overlap for pair in backward]


def test_same_ranges_on_different_files_do_not_conflict() -> None:
    assert detect_conflicts([_replace("a.md", 1, 5), _replace("b.md", 1, 5)]) == []


def test_adjacent_ranges_do_not_conflict() -> None:
    assert detect_conflicts([_replace("a.md", 1, 5), _replace("a.md", 6, 9)]) == []


def test_insert_conflicts_only_on_its_anchor_line() -> None:
    insert = InsertPatch(file="a.md", line=5, content="x")

    assert affected_range(insert) == LineRange(5, 5)
    assert len(detect_conflicts([insert, _replace("a.md", 3, 5)])) == 1
    assert detect_conflicts([insert, _replace("a.md", 6, 8)]) == []


def test_detect_conflicts_accepts_enriched_patches() -> None:
    content = "\n".join(str(number) for number in range(1, 11))
    enriched = [
        enrich_patch(DeletePatch(file="a.md", target=LineTarget(2, 4)), content),
        enrich_patch(_replace("a.md", 4, 6), content),
    ]

    conflicts = detect_conflicts(enriched)

    assert [pair.overlap for pair in conflicts] == [LineRange(4, 4)]


def test_three_way_overlap_reports_every_pair() -> None:
    patches = [_replace("a.md", 1, 10), _replace("a.md", 5, 6), _replace("a.md", 6, 12)]

    pairs = [(pair.first_index, pair.second_index) for pair in detect_conflicts(patches)]

    assert pairs == [(0, 1), (0, 2), (1, 2)]


def test_sort_patches_orders_by_file_then_bottom_up() -> None:
    patches = [
        _replace("b.md", 1, 2),
        _replace("a.md", 3, 4),
        InsertPatch(file="a.md", line=10, content="x"),
        _replace("b.md", 7, 7),
    ]

    ordered = sort_patches(patches)

    assert [(patch.file, patch.start_line) for patch in ordered] == [
        ("a.md", 10),
        ("a.md", 3),
        ("b.md", 7),
        ("b.md", 1),
    ]
    assert application_order(patches) == [2, 1, 3, 0]


def test_sort_patches_is_stable_for_equal_start_lines() -> None:
    first = InsertPatch(file="a.md", line=3, content="first")
    second = InsertPatch(file="a.md", line=3, content="second")

    assert sort_patches([first, second]) == [first, second]
