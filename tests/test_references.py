"""Tests for #file reference parsing and resolution."""

from __future__ import annotations

import pytest

from intellirite.ai.references import (
    FileReference,
    extract_references_from_message,
    format_file_references,
    is_valid_file_reference,
    parse_file_references,
    referenced_contents,
    resolve_file_references,
)


def test_parse_file_references_dedupes_in_order() -> None:
    refs = parse_file_references("Compare #chapter1.md with #notes and #chapter1.md again")

    assert [ref.file_name for ref in refs] == ["chapter1.md", "notes"]
    assert refs[0].original == "#chapter1.md"
    assert not refs[0].exists


def test_markdown_headings_are_not_references() -> None:
    assert parse_file_references("# Title\n\nPlain text") == ()


def test_extract_references_strips_hash_from_first_occurrence() -> None:
    extraction = extract_references_from_message("Use #outline.md to expand #draft-2.md")

    assert extraction.has_references
    assert extraction.message_without_refs == "Use outline.md to expand draft-2.md"
    assert not extract_references_from_message("no references").has_references


@pytest.mark.parametrize(
    ("text", "expected"),
    [("#notes.md", True), ("#my_file", True), ("notes.md", False), ("#notes.md extra", False), ("#", False)],
)
def test_is_valid_file_reference(text: str, expected: bool) -> None:
    assert is_valid_file_reference(text) is expected


def test_resolve_prefers_exact_identifier_then_basename() -> None:
    documents = {"book/chapter1.md": "nested", "chapter1.md": "root", "drafts/notes.md": "notes"}
    refs = parse_file_references("#chapter1.md #notes.md #missing.md")

    resolved = resolve_file_references(refs, documents)

    assert [(ref.file_path, ref.exists) for ref in resolved] == [
        ("chapter1.md", True),
        ("drafts/notes.md", True),
        ("missing.md", False),
    ]


def test_referenced_contents_selects_known_documents() -> None:
    documents = {"a.md": "alpha", "b.md": "beta", "c.md": "gamma"}

    assert referenced_contents("Merge #b.md into #zzz.md", documents) == {"b.md": "beta"}


def test_format_file_references() -> None:
    refs = (FileReference.for_file("a.md"), FileReference.for_file("b.md"))

    assert format_file_references(refs) == "#a.md, #b.md"
