"""End-to-end tests for the patch pipeline."""

from __future__ import annotations

import asyncio
import json

import pytest

from intellirite.core.errors import ErrorCode
from intellirite.core.ranges import LineRange
from intellirite.patches.models import PatchStatus, RiskLevel
from intellirite.patches.pipeline import PatchPipeline
from intellirite.patches.safety import SafetyThresholds


def _document(lines: int) -> str:
    return "\n".join(f"line {number}" for number in range(1, lines + 1))


def _patches(*payloads: dict) -> str:
    return f"<patches>{json.dumps(list(payloads))}</patches>"


def test_small_insert_is_auto_approved() -> None:
    response = '<patch>{"file":"a.md","type":"insert","line":1,"content":"Hi"}</patch>'

    review = PatchPipeline().review(response, {"a.md": _document(30)})

    assert not review.is_conversational
    assert len(review.items) == 1
    item = review.items[0]
    assert item.status is PatchStatus.APPROVED
    assert item.safety is not None and item.safety.risk_level is RiskLevel.LOW
    assert item.enriched is not None
    assert item.enriched.change_percentage > 0
    assert item.diff is not None and item.diff.stats.additions == 1
    assert review.aggregate is not None and review.aggregate.is_safe


def test_conversational_response_has_no_items() -> None:
    review = PatchPipeline().review("Headings use the hash sign.", {"a.md": "x"})

    assert review.is_conversational
    assert review.items == []
    assert review.aggregate is None


def test_structurally_invalid_patch_is_marked_invalid() -> None:
    response = _patches(
        {"file": "a.md", "type": "replace", "target": {"startLine": 5, "endLine": 3}, "replacement": "x"},
        {"file": "a.md", "type": "insert", "line": 1, "content": "ok"},
    )

    review = PatchPipeline().review(response, {"a.md": _document(30)})

    first, second = review.items
    assert first.status is PatchStatus.INVALID
    assert first.errors == ("target.endLine must be >= target.startLine",)
    assert first.safety is not None and first.safety.risk_level is RiskLevel.CRITICAL
    assert second.status is PatchStatus.APPROVED
    assert [item.index for item in review.invalid] == [0]


@pytest.mark.parametrize(
    "payload",
    [
        {"file": "a.md", "type": "replace", "target": {"startLine": 1, "endLine": 1}, "replacement": "Hello"},
        {"file": "a.md", "type": "delete", "target": {"startLine": 1, "endLine": 1}},
    ],
)
def test_range_patch_on_empty_document_is_invalid_not_auto_approved(payload: dict) -> None:
    pipeline = PatchPipeline()
    review = pipeline.review(_patches(payload), {"a.md": ""})

    item = review.items[0]
    assert item.status is PatchStatus.INVALID
    assert item.errors == ("End line 1 exceeds file length (0 lines)",)
    assert pipeline.apply(review, {"a.md": ""}).results == []


def test_full_rewrite_waits_for_approval() -> None:
    response = _patches(
        {
            "file": "a.md",
            "type": "replace",
            "target": {"startLine": 1, "endLine": 3},
            "replacement": "\n".join(["new"] * 30),
        }
    )

    review = PatchPipeline().review(response, {"a.md": "one\ntwo\nthree"})

    item = review.items[0]
    assert item.enriched is not None
    assert item.enriched.change_percentage == pytest.approx(900.0)
    assert item.safety is not None and item.safety.risk_level is RiskLevel.CRITICAL
    assert item.status is PatchStatus.PENDING_APPROVAL
    assert review.pending == [item]


def test_overlapping_patches_are_flagged_on_both_items() -> None:
    document = _document(30)
    response = _patches(
        {"file": "notes.md", "type": "replace", "target": {"startLine": 10, "endLine": 20}, "replacement": "a"},
        {"file": "notes.md", "type": "replace", "target": {"startLine": 15, "endLine": 25}, "replacement": "b"},
    )

    review = PatchPipeline().review(response, {"notes.md": document})

    assert len(review.conflicts) == 1
    assert review.conflicts[0].overlap == LineRange(15, 20)
    assert review.items[0].conflicts == review.conflicts
    assert review.items[1].conflicts == review.conflicts


def test_conflict_indices_refer_to_response_positions() -> None:
    response = _patches(
        {"file": "a.md", "type": "bogus"},
        {"file": "a.md", "type": "delete", "target": {"startLine": 2, "endLine": 4}},
        {"file": "a.md", "type": "delete", "target": {"startLine": 4, "endLine": 5}},
    )

    review = PatchPipeline().review(response, {"a.md": _document(30)})

    pair = review.conflicts[0]
    assert (pair.first_index, pair.second_index) == (1, 2)


def test_many_files_require_batch_approval() -> None:
    files = {f"doc{number}.md": _document(30) for number in range(4)}
    response = _patches(*({"file": name, "type": "insert", "line": 1, "content": "x"} for name in files))

    review = PatchPipeline(SafetyThresholds(max_auto_multi_file_changes=3)).review(response, files)

    assert review.aggregate is not None
    assert review.aggregate.requires_approval
    assert any("4 files" in reason for reason in review.aggregate.reasons)


def test_missing_document_is_invalid() -> None:
    response = '<patch>{"file":"ghost.md","type":"insert","line":1,"content":"x"}</patch>'

    review = PatchPipeline().review(response, {"a.md": "x"})

    item = review.items[0]
    assert item.status is PatchStatus.INVALID
    assert item.errors == ("File not found: ghost.md",)
    assert item.safety is not None
    assert item.safety.recommendation == "Cannot apply - file not found"


def test_approve_reject_and_apply() -> None:
    contents = {"a.md": _document(30)}
    response = _patches(
        {"file": "a.md", "type": "replace", "target": {"startLine": 1, "endLine": 3}, "replacement": "\n".join(["x"] * 30)},
        {"file": "a.md", "type": "insert", "line": 31, "content": "extra"},
    )
    pipeline = PatchPipeline()
    review = pipeline.review(response, contents)
    assert review.items[0].status is PatchStatus.PENDING_APPROVAL
    assert review.items[1].status is PatchStatus.APPROVED

    review.reject(0)
    assert not review.is_settled
    batch = pipeline.apply(review, contents)

    assert batch.contents["a.md"] == contents["a.md"] + "\nextra"
    assert review.items[0].status is PatchStatus.REJECTED
    assert review.items[1].status is PatchStatus.APPLIED
    assert review.is_settled
    review.reject(0)
    with pytest.raises(ValueError):
        review.approve(1)
    with pytest.raises(ValueError):
        review.reject(1)


@pytest.mark.parametrize(
    ("status", "terminal"),
    [
        (PatchStatus.PENDING_APPROVAL, False),
        (PatchStatus.APPROVED, False),
        (PatchStatus.ENRICHED, False),
        (PatchStatus.INVALID, True),
        (PatchStatus.APPLIED, True),
        (PatchStatus.REJECTED, True),
        (PatchStatus.FAILED, True),
        (PatchStatus.NOT_ATTEMPTED, True),
    ],
)
def test_status_terminality(status: PatchStatus, terminal: bool) -> None:
    assert status.is_terminal is terminal


def test_apply_stops_at_stale_snapshot() -> None:
    contents = {"a.md": _document(30)}
    response = _patches(
        {"file": "a.md", "type": "replace", "target": {"startLine": 2, "endLine": 2}, "replacement": "TWO"},
        {"file": "a.md", "type": "replace", "target": {"startLine": 1, "endLine": 1}, "replacement": "ONE"},
    )
    pipeline = PatchPipeline()
    review = pipeline.review(response, contents)

    edited = {"a.md": contents["a.md"].replace("line 2", "edited", 1)}
    batch = pipeline.apply(review, edited)

    assert not batch.ok
    assert review.items[0].status is PatchStatus.FAILED
    assert review.items[0].error is not None
    assert review.items[1].status is PatchStatus.NOT_ATTEMPTED


def test_approve_all_promotes_pending_items_only() -> None:
    response = _patches(
        {"file": "a.md", "type": "replace", "target": {"startLine": 1, "endLine": 3}, "replacement": "\n".join(["x"] * 30)},
        {"file": "a.md", "type": "bogus"},
    )
    review = PatchPipeline().review(response, {"a.md": "one\ntwo\nthree"})

    approved = review.approve_all()

    assert [item.index for item in approved] == [0]
    assert review.items[0].status is PatchStatus.APPROVED
    assert review.items[1].status is PatchStatus.INVALID


def test_invalid_items_cannot_be_approved() -> None:
    review = PatchPipeline().review('<patch>{"file":"a.md","type":"nope"}</patch>', {"a.md": "x"})

    with pytest.raises(ValueError):
        review.approve(0)
    with pytest.raises(KeyError):
        review.item(7)


def test_review_carries_extraction_warnings() -> None:
    response = _patches({"file": "a.md", "type": "insert", "line": 1, "content": "x"})
    prose = "I went ahead and prepared the edit below; let me know if you want another pass."

    review = PatchPipeline().review(prose + response, {"a.md": "x"})

    assert review.warnings == ("Response contains text outside of patch tags (should be patch-only)",)


class _DocumentStore:
    """In-memory document collaborator whose reads and writes yield to the loop."""

    def __init__(self, **documents: str) -> None:
        self.documents = dict(documents)
        self.writes: list[str] = []

    async def read(self, name: str) -> str | None:
        await asyncio.sleep(0)
        return self.documents.get(name)

    async def write(self, name: str, content: str) -> None:
        await asyncio.sleep(0)
        self.documents[name] = content
        self.writes.append(name)


def _replace_line(line: int, text: str) -> str:
    return _patches({"file": "a.md", "type": "replace", "target": {"startLine": line, "endLine": line}, "replacement": text})


@pytest.mark.asyncio
async def test_concurrent_apply_async_sees_previous_write() -> None:
    store = _DocumentStore(**{"a.md": _document(30)})
    pipeline = PatchPipeline()
    first = pipeline.review(_replace_line(1, "top"), store.documents)
    second = pipeline.review(_replace_line(30, "bottom"), store.documents)

    await asyncio.gather(
        pipeline.apply_async(first, store.read, store.write),
        pipeline.apply_async(second, store.read, store.write),
    )

    lines = store.documents["a.md"].split("\n")
    assert lines[0] == "top"
    assert lines[-1] == "bottom"
    assert store.writes == ["a.md", "a.md"]
    assert first.items[0].status is PatchStatus.APPLIED
    assert second.items[0].status is PatchStatus.APPLIED


@pytest.mark.asyncio
async def test_concurrent_apply_async_rejects_edit_made_stale_by_earlier_write() -> None:
    store = _DocumentStore(**{"a.md": _document(30)})
    pipeline = PatchPipeline()
    first = pipeline.review(_replace_line(2, "first"), store.documents)
    second = pipeline.review(_replace_line(2, "second"), store.documents)

    results = await asyncio.gather(
        pipeline.apply_async(first, store.read, store.write),
        pipeline.apply_async(second, store.read, store.write),
    )

    assert results[0].ok
    assert not results[1].ok
    assert results[1].results[0].error is not None
    assert results[1].results[0].error.error_code == ErrorCode.STALE_SNAPSHOT
    assert store.documents["a.md"].split("\n")[1] == "first"
    assert store.writes == ["a.md"]
    assert second.items[0].status is PatchStatus.FAILED


@pytest.mark.asyncio
async def test_apply_async_reports_missing_document_without_writing() -> None:
    store = _DocumentStore()
    pipeline = PatchPipeline()
    review = pipeline.review(_replace_line(1, "x"), {"a.md": _document(30)})

    batch = await pipeline.apply_async(review, store.read, store.write)

    assert not batch.ok
    assert batch.results[0].error is not None
    assert batch.results[0].error.error_code == ErrorCode.FILE_NOT_FOUND
    assert store.writes == []
