"""Typed data model for patches and the objects derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from ..core.errors import StructuralValidationError
from ..core.ranges import LineRange

__all__ = [
    "ConflictPair",
    "DeletePatch",
    "DiffInfo",
    "DiffLine",
    "DiffLineKind",
    "DiffStats",
    "EnrichedPatch",
    "InsertPatch",
    "LineTarget",
    "Patch",
    "PatchCandidate",
    "PatchKind",
    "PatchStatus",
    "ReplacePatch",
    "RiskLevel",
    "SafetyCheck",
    "SafetyReport",
]


class PatchKind(str, Enum):
    """Discriminator used by the ``type`` field of the wire format."""

    INSERT = "insert"
    REPLACE = "replace"
    DELETE = "delete"


class RiskLevel(Enum):
    """Risk tiers, totally ordered from LOW to CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def escalate(self, other: "RiskLevel") -> "RiskLevel":
        """Return the higher of the two levels."""

        return other if other.rank > self.rank else self


_RISK_ORDER: tuple[RiskLevel, ...] = (
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
)


class DiffLineKind(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class PatchStatus(str, Enum):
    """Lifecycle states a patch moves through on its way into a document."""

    EXTRACTED = "extracted"
    VALIDATED = "validated"
    INVALID = "invalid"
    ENRICHED = "enriched"
    SCORED = "scored"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    APPLIED = "applied"
    REJECTED = "rejected"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {
        PatchStatus.INVALID,
        PatchStatus.APPLIED,
        PatchStatus.REJECTED,
        PatchStatus.FAILED,
        PatchStatus.NOT_ATTEMPTED,
    }
)


# -----------------------------------------------------------------------------
# Patches
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class LineTarget:
    """Inclusive 1-indexed line span addressed by replace/delete patches."""

    start_line: int
    end_line: int

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def to_range(self) -> LineRange:
        return LineRange(self.start_line, self.end_line)

    def to_dict(self) -> dict[str, int]:
        return {"startLine": self.start_line, "endLine": self.end_line}


@dataclass(slots=True, frozen=True)
class InsertPatch:
    """Insert ``content`` before ``line`` (``line_count + 1`` appends)."""

    file: str
    line: int
    content: str

    kind: ClassVar[PatchKind] = PatchKind.INSERT

    @property
    def affected_range(self) -> LineRange:
        return LineRange.single(self.line)

    @property
    def start_line(self) -> int:
        return self.line

    @property
    def lines_affected(self) -> int:
        return len(self.content.split("\n"))

    def to_payload(self) -> dict[str, Any]:
        return {"file": self.file, "type": self.kind.value, "line": self.line, "content": self.content}


@dataclass(slots=True, frozen=True)
class ReplacePatch:
    """Replace ``target`` with ``replacement``, which may span any number of lines."""

    file: str
    target: LineTarget
    replacement: str

    kind: ClassVar[PatchKind] = PatchKind.REPLACE

    @property
    def affected_range(self) -> LineRange:
        return self.target.to_range()

    @property
    def start_line(self) -> int:
        return self.target.start_line

    @property
    def lines_affected(self) -> int:
        return self.target.line_count

    def to_payload(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "type": self.kind.value,
            "target": self.target.to_dict(),
            "replacement": self.replacement,
        }


@dataclass(slots=True, frozen=True)
class DeletePatch:
    """Remove the lines addressed by ``target``."""

    file: str
    target: LineTarget

    kind: ClassVar[PatchKind] = PatchKind.DELETE

    @property
    def affected_range(self) -> LineRange:
        return self.target.to_range()

    @property
    def start_line(self) -> int:
        return self.target.start_line

    @property
    def lines_affected(self) -> int:
        return self.target.line_count

    def to_payload(self) -> dict[str, Any]:
        return {"file": self.file, "type": self.kind.value, "target": self.target.to_dict()}


Patch = Union[InsertPatch, ReplacePatch, DeletePatch]


@dataclass(slots=True, frozen=True)
class PatchCandidate:
    """One decoded payload together with the outcome of structural validation.

    ``patch`` is only populated when the payload passed validation.
    """

    index: int
    payload: Any
    patch: Patch | None = None
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.patch is not None and not self.errors

    @property
    def file(self) -> str | None:
        if self.patch is not None:
            return self.patch.file
        if isinstance(self.payload, Mapping):
            value = self.payload.get("file")
            return value if isinstance(value, str) else None
        return None

    def to_error(self) -> StructuralValidationError | None:
        """Return the accumulated errors as one displayable error, if any."""

        if self.is_valid:
            return None
        return StructuralValidationError(
            message=f"Patch {self.index + 1} is invalid: " + "; ".join(self.errors),
            errors=self.errors,
            patch_index=self.index,
        )


@dataclass(slots=True, frozen=True)
class EnrichedPatch:
    """A patch matched against the live content of its document."""

    patch: Patch
    errors: tuple[str, ...] = ()
    original_content: str | None = None
    change_size: int = 0
    change_percentage: float = 0.0
    file_line_count: int | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def file(self) -> str:
        return self.patch.file

    @property
    def kind(self) -> PatchKind:
        return self.patch.kind

    @property
    def file_found(self) -> bool:
        return self.file_line_count is not None


# -----------------------------------------------------------------------------
# Safety
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SafetyCheck:
    """Risk verdict for one patch or for a batch."""

    is_safe: bool
    risk_level: RiskLevel
    reasons: tuple[str, ...] = ()
    requires_approval: bool = False
    recommendation: str = ""


@dataclass(slots=True, frozen=True)
class SafetyReport:
    per_patch: tuple[SafetyCheck, ...]
    aggregate: SafetyCheck


# -----------------------------------------------------------------------------
# Diffs
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DiffLine:
    """One row of a line diff.

    ``line_number`` is the position in the *before* content; ``new_line_number``
    is the position in the *after* content and is absent for removed lines.
    Modified rows keep the replaced text in ``original_content``.
    """

    line_number: int
    kind: DiffLineKind
    content: str
    new_line_number: int | None = None
    original_content: str | None = None


@dataclass(slots=True, frozen=True)
class DiffStats:
    additions: int = 0
    deletions: int = 0
    modifications: int = 0

    @property
    def total(self) -> int:
        return self.additions + self.deletions + self.modifications

    def __add__(self, other: "DiffStats") -> "DiffStats":
        return DiffStats(
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
            modifications=self.modifications + other.modifications,
        )


@dataclass(slots=True, frozen=True)
class DiffInfo:
    file_path: str
    before: str
    after: str
    diff: tuple[DiffLine, ...] = field(default_factory=tuple)
    stats: DiffStats = field(default_factory=DiffStats)


# -----------------------------------------------------------------------------
# Conflicts
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ConflictPair:
    """Two patches in one batch whose line ranges overlap."""

    first_index: int
    second_index: int
    file: str
    overlap: LineRange

    @property
    def reason(self) -> str:
        return f"Patches overlap at lines {self.overlap.start_line}-{self.overlap.end_line}"

    def involves(self, index: int) -> bool:
        return index in (self.first_index, self.second_index)
