"""Risk scoring for enriched patches."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import EnrichedPatch, RiskLevel, SafetyCheck, SafetyReport

LOGGER = logging.getLogger(__name__)

_RECOMMENDATIONS = {
    RiskLevel.LOW: "Safe to apply automatically",
    RiskLevel.MEDIUM: "Review recommended before applying",
    RiskLevel.HIGH: "Careful review required - significant changes",
    RiskLevel.CRITICAL: "Critical review required - major file modification",
}
FILE_NOT_FOUND_RECOMMENDATION = "Cannot apply - file not found"
INVALID_PATCH_RECOMMENDATION = "Cannot apply - patch is invalid"


@dataclass(slots=True, frozen=True)
class SafetyThresholds:
    """Tunable limits used by :class:`SafetyAssessor`.

    Percentage tiers are fractions of the file (``0.5`` means 50%).
    """

    max_auto_change_lines: int = 100
    min_file_size_for_checks: int = 10
    max_auto_multi_file_changes: int = 3
    medium_change_ratio: float = 0.2
    high_change_ratio: float = 0.5
    critical_change_ratio: float = 0.8


def escalate_risk(*levels: RiskLevel) -> RiskLevel:
    """Combine risk levels; the result is never lower than any input."""

    result = RiskLevel.LOW
    for level in levels:
        result = result.escalate(level)
    return result


class SafetyAssessor:
    """Scores patches against a set of :class:`SafetyThresholds`."""

    def __init__(self, thresholds: SafetyThresholds | None = None) -> None:
        self.thresholds = thresholds or SafetyThresholds()

    def assess_patch(self, enriched: EnrichedPatch) -> SafetyCheck:
        if not enriched.is_valid:
            return invalid_check(enriched.errors, file_found=enriched.file_found)

        limits = self.thresholds
        reasons: list[str] = []
        risk = RiskLevel.LOW
        requires_approval = False

        for level, reason in (self._percentage_risk(enriched.change_percentage), self._line_count_risk(enriched)):
            if level is not RiskLevel.LOW:
                risk = risk.escalate(level)
                reasons.append(reason)
                requires_approval = True

        if enriched.file_line_count is not None and enriched.file_line_count < limits.min_file_size_for_checks:
            risk = RiskLevel.LOW

        if enriched.change_percentage > limits.critical_change_ratio * 100:
            risk = RiskLevel.CRITICAL
            reasons.append(f"Modifying more than {limits.critical_change_ratio * 100:g}% of the file")
            requires_approval = True

        return SafetyCheck(
            is_safe=risk is RiskLevel.LOW,
            risk_level=risk,
            reasons=tuple(reasons),
            requires_approval=requires_approval,
            recommendation=recommendation_for(risk, reasons),
        )

    def assess_batch(self, enriched: Sequence[EnrichedPatch], checks: Sequence[SafetyCheck]) -> SafetyCheck:
        """Aggregate per-patch checks, adding the multi-file signal."""

        reasons: list[str] = []
        risk = RiskLevel.LOW
        requires_approval = False
        for check in checks:
            reasons.extend(check.reasons)
            risk = risk.escalate(check.risk_level)
            requires_approval = requires_approval or check.requires_approval

        distinct_files = len({item.file for item in enriched})
        if distinct_files > self.thresholds.max_auto_multi_file_changes:
            risk = risk.escalate(RiskLevel.MEDIUM)
            reasons.append(f"Modifying {distinct_files} files")
            requires_approval = True

        unique_reasons = tuple(dict.fromkeys(reasons))
        return SafetyCheck(
            is_safe=risk is RiskLevel.LOW and not requires_approval,
            risk_level=risk,
            reasons=unique_reasons,
            requires_approval=requires_approval,
            recommendation=recommendation_for(risk, unique_reasons),
        )

    def assess(self, enriched: Sequence[EnrichedPatch]) -> SafetyReport:
        checks = tuple(self.assess_patch(item) for item in enriched)
        aggregate = self.assess_batch(enriched, checks)
        LOGGER.debug(
            "Safety assessment: %s patch(es), aggregate risk %s, approval required=%s",
            len(checks),
            aggregate.risk_level.value,
            aggregate.requires_approval,
        )
        return SafetyReport(per_patch=checks, aggregate=aggregate)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    def _percentage_risk(self, change_percentage: float) -> tuple[RiskLevel, str]:
        limits = self.thresholds
        ratio = change_percentage / 100
        if ratio > limits.critical_change_ratio:
            return RiskLevel.CRITICAL, f"Very large change ({change_percentage:.1f}% of file)"
        if ratio > limits.high_change_ratio:
            return RiskLevel.HIGH, f"Large change ({change_percentage:.1f}% of file)"
        if ratio > limits.medium_change_ratio:
            return RiskLevel.MEDIUM, f"Moderate change ({change_percentage:.1f}% of file)"
        return RiskLevel.LOW, "Small change"

    def _line_count_risk(self, enriched: EnrichedPatch) -> tuple[RiskLevel, str]:
        count = enriched.patch.lines_affected
        limit = self.thresholds.max_auto_change_lines
        if count > limit * 2:
            return RiskLevel.HIGH, f"Very large line count ({count} lines)"
        if count > limit:
            return RiskLevel.MEDIUM, f"Large line count ({count} lines)"
        return RiskLevel.LOW, "Acceptable line count"


def recommendation_for(risk: RiskLevel, reasons: Iterable[str]) -> str:
    text = _RECOMMENDATIONS[risk]
    reasons = list(reasons)
    if reasons:
        text += f". Concerns: {', '.join(reasons)}"
    return text


def invalid_check(errors: Iterable[str], *, file_found: bool = True) -> SafetyCheck:
    """Verdict for a patch that cannot be applied at all."""

    return SafetyCheck(
        is_safe=False,
        risk_level=RiskLevel.CRITICAL,
        reasons=tuple(errors),
        requires_approval=True,
        recommendation=FILE_NOT_FOUND_RECOMMENDATION if not file_found else INVALID_PATCH_RECOMMENDATION,
    )


def assess_safety(enriched: Sequence[EnrichedPatch], thresholds: SafetyThresholds | None = None) -> SafetyReport:
    """Score each patch and the batch as a whole."""

    return SafetyAssessor(thresholds).assess(enriched)


__all__ = [
    "SafetyAssessor",
    "SafetyThresholds",
    "assess_safety",
    "escalate_risk",
    "invalid_check",
    "recommendation_for",
]
