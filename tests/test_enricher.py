"""Tests for patch enrichment against live content."""

from __future__ import annotations

import pytest

from intellirite.patches.enricher import enrich_and_validate, enrich_patch
from intellirite.patches.models import DeletePatch, InsertPatch, LineTarget, ReplacePatch


def test_insert_percentage_is_relative_to_file_size() -> None:
    content = "a" * 98 + "\nb"
    patch = InsertPatch(file="a.md", line=1, content="Hi")

    enriched = enrich_patch(patch, content)

    assert enriched.is_valid
    assert enriched.change_size == 2
    assert enriched.change_percentage == pytest.approx(2.0)
    assert enriched.file_line_count == 2
    assert enriched.original_content is None


def test_insert_into_empty_file_counts_as_full_change() -> None:
    enriched = enrich_patch(InsertPatch(file="a.md", line=1, content="Hi"), "")

    assert enriched.is_valid
    assert enriched.change_percentage == 100.0
    assert enriched.file_found


def test_insert_may_append_but_not_skip_lines() -> None:
    content = "a\nb\nc"

    assert enrich_patch(InsertPatch(file="a.md", line=4, content="d"), content).is_valid
    beyond = enrich_patch(InsertPatch(file="a.md", line=5, content="d"), content)

    assert beyond.errors == ("Insert line 5 exceeds file length (3 lines) + 1",)


def test_insert_line_below_one_is_invalid() -> None:
    enriched = enrich_patch(InsertPatch(file="a.md", line=0, content="d"), "a")

    assert enriched.errors == ("Insert line must be >= 1",)


def test_replace_records_snapshot_and_line_delta_percentage() -> None:
    content = "one\ntwo\nthree"
    patch = ReplacePatch(file="a.md", target=LineTarget(1, 3), replacement="\n".join(["x"] * 30))

    enriched = enrich_patch(patch, content)

    assert enriched.is_valid
    assert enriched.original_content == content
    assert enriched.change_percentage == pytest.approx(900.0)
    assert enriched.change_size == len(patch.replacement)


def test_replace_out_of_range_records_error() -> None:
    patch = ReplacePatch(file="a.md", target=LineTarget(2, 9), replacement="x")

    enriched = enrich_patch(patch, "one\ntwo")

    assert not enriched.is_valid
    assert enriched.errors == ("End line 9 exceeds file length (2 lines)",)
    assert enriched.file_found


@pytest.mark.parametrize(
    "patch",
    [
        ReplacePatch(file="a.md", target=LineTarget(1, 1), replacement="Hello"),
        DeletePatch(file="a.md", target=LineTarget(1, 1)),
    ],
)
def test_range_patches_on_empty_document_are_invalid(patch) -> None:
    enriched = enrich_patch(patch, "")

    assert enriched.errors == ("End line 1 exceeds file length (0 lines)",)
    assert enriched.original_content is None
    assert enriched.file_found


def test_delete_percentage_uses_removed_characters() -> None:
    content = "abcd\nefgh"
    patch = DeletePatch(file="a.md", target=LineTarget(2, 2))

    enriched = enrich_patch(patch, content)

    assert enriched.original_content == "efgh"
    assert enriched.change_size == 4
    assert enriched.change_percentage == pytest.approx(4 / 9 * 100)


def test_missing_file_is_reported() -> None:
    enriched = enrich_patch(DeletePatch(file="ghost.md", target=LineTarget(1, 1)), None)

    assert enriched.errors == ("File not found: ghost.md",)
    assert not enriched.file_found


def test_crlf_content_is_normalized_before_enrichment() -> None:
    patch = ReplacePatch(file="a.md", target=LineTarget(2, 2), replacement="B")

    enriched = enrich_patch(patch, "a\r\nb\r\nc")

    assert enriched.original_content == "b"
    assert enriched.file_line_count == 3


def test_enrich_and_validate_matches_patches_to_files() -> None:
    patches = [
        InsertPatch(file="a.md", line=1, content="x"),
        DeletePatch(file="b.md", target=LineTarget(1, 1)),
    ]

    enriched = enrich_and_validate(patches, {"a.md": "hello"})

    assert [item.file for item in enriched] == ["a.md", "b.md"]
    assert enriched[0].is_valid
    assert enriched[1].errors == ("File not found: b.md",)
