"""End-to-end orchestration: model response in, reviewed and applied edits out.

:meth:`PatchPipeline.review` runs every pure stage (extract, validate,
enrich, conflict check, score, diff) and returns a :class:`PatchReview` the
caller presents to the user. Once the user has decided,
:meth:`PatchPipeline.apply` writes the approved edits into fresh copies of
the contents. :meth:`PatchPipeline.apply_async` does the same from the event
loop, fetching and storing documents through caller-supplied coroutines while
holding a per-document lock. The pipeline never touches the file system itself.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Sequence

from ..editor.lines import normalize_line_endings
from .applier import BatchApplyResult, apply_batch
from .conflicts import detect_conflicts
from .diff import compute_diff
from .enricher import enrich_patch
from .extractor import PROSE_WARNING_THRESHOLD, ExtractionResult, extract_patches
from .models import (
    ConflictPair,
    DiffInfo,
    EnrichedPatch,
    PatchCandidate,
    PatchStatus,
    SafetyCheck,
)
from .safety import SafetyAssessor, SafetyThresholds, invalid_check

LOGGER = logging.getLogger(__name__)

DocumentReader = Callable[[str], Awaitable[str | None]]
DocumentWriter = Callable[[str, str], Awaitable[None]]


@dataclass(slots=True)
class ReviewItem:
    """One patch of a review and where it stands in its lifecycle."""

    candidate: PatchCandidate
    status: PatchStatus
    enriched: EnrichedPatch | None = None
    safety: SafetyCheck | None = None
    diff: DiffInfo | None = None
    conflicts: tuple[ConflictPair, ...] = ()
    error: str | None = None

    @property
    def index(self) -> int:
        return self.candidate.index

    @property
    def file(self) -> str | None:
        return self.candidate.file

    @property
    def errors(self) -> tuple[str, ...]:
        if self.candidate.errors:
            return self.candidate.errors
        if self.enriched is not None:
            return self.enriched.errors
        return ()


@dataclass(slots=True)
class PatchReview:
    """Patches extracted from one response, awaiting user decisions."""

    extraction: ExtractionResult
    items: list[ReviewItem] = field(default_factory=list)
    conflicts: tuple[ConflictPair, ...] = ()
    aggregate: SafetyCheck | None = None

    @property
    def warnings(self) -> tuple[str, ...]:
        return self.extraction.warnings

    @property
    def is_conversational(self) -> bool:
        return self.extraction.is_conversational

    @property
    def pending(self) -> list[ReviewItem]:
        return self._with_status(PatchStatus.PENDING_APPROVAL)

    @property
    def approved(self) -> list[ReviewItem]:
        return self._with_status(PatchStatus.APPROVED)

    @property
    def invalid(self) -> list[ReviewItem]:
        return self._with_status(PatchStatus.INVALID)

    def item(self, index: int) -> ReviewItem:
        for item in self.items:
            if item.index == index:
                return item
        raise KeyError(index)

    @property
    def is_settled(self) -> bool:
        """Whether every item has reached a final status (applied, rejected, failed, ...)."""

        return all(item.status.is_terminal for item in self.items)

    def approve(self, index: int) -> ReviewItem:
        item = self.item(index)
        if item.status.is_terminal:
            raise ValueError(f"Patch {index + 1} cannot be approved while {item.status.value}")
        item.status = PatchStatus.APPROVED
        return item

    def reject(self, index: int) -> ReviewItem:
        item = self.item(index)
        if item.status.is_terminal and item.status is not PatchStatus.REJECTED:
            raise ValueError(f"Patch {index + 1} cannot be rejected while {item.status.value}")
        item.status = PatchStatus.REJECTED
        return item

    def approve_all(self) -> list[ReviewItem]:
        approved = [item for item in self.pending]
        for item in approved:
            item.status = PatchStatus.APPROVED
        return approved

    def _with_status(self, status: PatchStatus) -> list[ReviewItem]:
        return [item for item in self.items if item.status is status]


class PatchPipeline:
    """Stateless driver for the patch stages, configured with safety thresholds."""

    def __init__(
        self,
        thresholds: SafetyThresholds | None = None,
        *,
        prose_warning_threshold: int = PROSE_WARNING_THRESHOLD,
    ) -> None:
        self.assessor = SafetyAssessor(thresholds)
        self.prose_warning_threshold = prose_warning_threshold
        self._file_locks: dict[str, asyncio.Lock] = {}

    @property
    def thresholds(self) -> SafetyThresholds:
        return self.assessor.thresholds

    def review(self, response_text: str | None, file_contents: Mapping[str, str]) -> PatchReview:
        extraction = extract_patches(response_text, prose_warning_threshold=self.prose_warning_threshold)
        review = PatchReview(extraction=extraction)
        if not extraction.ok:
            return review

        contents = {name: normalize_line_endings(text) for name, text in file_contents.items()}
        enriched: list[EnrichedPatch] = []
        for candidate in extraction.candidates:
            if candidate.patch is None:
                review.items.append(
                    ReviewItem(
                        candidate=candidate,
                        status=PatchStatus.INVALID,
                        safety=invalid_check(candidate.errors),
                    )
                )
                continue
            item = ReviewItem(
                candidate=candidate,
                status=PatchStatus.ENRICHED,
                enriched=enrich_patch(candidate.patch, contents.get(candidate.patch.file)),
            )
            review.items.append(item)
            enriched.append(item.enriched)

        self._score(review, enriched, contents)
        LOGGER.debug(
            "Reviewed %s patch(es): %s pending, %s approved, %s invalid",
            len(review.items),
            len(review.pending),
            len(review.approved),
            len(review.invalid),
        )
        return review

    def apply(self, review: PatchReview, file_contents: Mapping[str, str]) -> BatchApplyResult:
        """Apply every approved item and record the outcome on the review."""

        targets = [item for item in review.approved if item.enriched is not None]
        batch = apply_batch([item.enriched for item in targets if item.enriched is not None], file_contents)
        for result in batch.results:
            assert result.index is not None
            item = targets[result.index]
            item.status = result.status
            if result.error is not None:
                item.error = result.error.message
        return batch

    async def apply_async(
        self,
        review: PatchReview,
        read: DocumentReader,
        write: DocumentWriter,
    ) -> BatchApplyResult:
        """Read, patch and write back every touched document as one locked step.

        ``read`` returns the current content of a document (``None`` when it no
        longer exists) and ``write`` stores new content. Both are awaited while
        the lock of every touched document is held, so concurrent calls on the
        same document run one after another and each sees the previous write.
        Documents are locked in sorted order. Only changed documents are written.
        """

        files = sorted({item.enriched.file for item in review.approved if item.enriched is not None})
        async with AsyncExitStack() as stack:
            for name in files:
                await stack.enter_async_context(self._lock_for(name))

            snapshot: dict[str, str] = {}
            for name in files:
                content = await read(name)
                if content is not None:
                    snapshot[name] = normalize_line_endings(content)

            batch = self.apply(review, snapshot)
            for name in files:
                updated = batch.contents.get(name)
                if updated is not None and updated != snapshot.get(name):
                    await write(name, updated)
                    LOGGER.debug("Wrote %s after applying patches", name)
            return batch

    def _lock_for(self, file_name: str) -> asyncio.Lock:
        lock = self._file_locks.get(file_name)
        if lock is None:
            lock = self._file_locks[file_name] = asyncio.Lock()
        return lock

    def _score(self, review: PatchReview, enriched: Sequence[EnrichedPatch], contents: Mapping[str, str]) -> None:
        scored = [item for item in review.items if item.enriched is not None]
        if not scored:
            return

        report = self.assessor.assess(enriched)
        review.aggregate = report.aggregate

        valid = [item for item in scored if item.enriched is not None and item.enriched.is_valid]
        pairs = detect_conflicts([item.enriched for item in valid if item.enriched is not None])
        review.conflicts = tuple(
            ConflictPair(valid[pair.first_index].index, valid[pair.second_index].index, pair.file, pair.overlap)
            for pair in pairs
        )

        for item, check in zip(scored, report.per_patch):
            assert item.enriched is not None
            item.safety = check
            item.conflicts = tuple(pair for pair in review.conflicts if pair.involves(item.index))
            if not item.enriched.is_valid:
                item.status = PatchStatus.INVALID
                continue
            item.diff = compute_diff(item.enriched.patch, contents[item.enriched.file])
            item.status = PatchStatus.PENDING_APPROVAL if check.requires_approval else PatchStatus.APPROVED


__all__ = ["DocumentReader", "DocumentWriter", "PatchPipeline", "PatchReview", "ReviewItem"]
