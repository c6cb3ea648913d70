"""Patch pipeline: extraction, validation, scoring, diffing and application."""

from .applier import ApplyResult, BatchApplyResult, apply_batch, apply_enriched_patch, apply_patch
from .conflicts import affected_range, detect_conflicts, find_overlap, sort_patches
from .diff import compute_diff, compute_line_diff, render_unified_diff, summarize_preview
from .enricher import enrich_and_validate, enrich_patch
from .extractor import ExtractionResult, extract_patches
from .models import (
    ConflictPair,
    DeletePatch,
    DiffInfo,
    DiffLine,
    DiffLineKind,
    DiffStats,
    EnrichedPatch,
    InsertPatch,
    LineTarget,
    Patch,
    PatchCandidate,
    PatchKind,
    PatchStatus,
    ReplacePatch,
    RiskLevel,
    SafetyCheck,
    SafetyReport,
)
from .normalizer import normalize_payload
from .pipeline import PatchPipeline, PatchReview, ReviewItem
from .safety import SafetyAssessor, SafetyThresholds, assess_safety, escalate_risk

__all__ = [
    "ApplyResult",
    "BatchApplyResult",
    "ConflictPair",
    "DeletePatch",
    "DiffInfo",
    "DiffLine",
    "DiffLineKind",
    "DiffStats",
    "EnrichedPatch",
    "ExtractionResult",
    "InsertPatch",
    "LineTarget",
    "Patch",
    "PatchCandidate",
    "PatchKind",
    "PatchPipeline",
    "PatchReview",
    "PatchStatus",
    "ReplacePatch",
    "ReviewItem",
    "RiskLevel",
    "SafetyAssessor",
    "SafetyCheck",
    "SafetyReport",
    "SafetyThresholds",
    "affected_range",
    "apply_batch",
    "apply_enriched_patch",
    "apply_patch",
    "assess_safety",
    "compute_diff",
    "compute_line_diff",
    "detect_conflicts",
    "enrich_and_validate",
    "enrich_patch",
    "escalate_risk",
    "extract_patches",
    "find_overlap",
    "normalize_payload",
    "render_unified_diff",
    "sort_patches",
    "summarize_preview",
]
