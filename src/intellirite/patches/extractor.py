"""Pull patch payloads out of raw model responses."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any, Iterable

from ..ai.prompts import PatchTags
from ..core.errors import ErrorCode, ExtractionError
from .models import Patch, PatchCandidate, ReplacePatch
from .normalizer import normalize_payloads

LOGGER = logging.getLogger(__name__)

PROSE_WARNING_THRESHOLD = 50
LARGE_REPLACEMENT_LINES = 200

_SINGLE_PATTERN = re.compile(
    re.escape(PatchTags.SINGLE_OPEN) + r"(?P<body>[\s\S]*?)" + re.escape(PatchTags.SINGLE_CLOSE),
    re.IGNORECASE,
)
_MULTI_PATTERN = re.compile(
    re.escape(PatchTags.MULTI_OPEN) + r"(?P<body>[\s\S]*?)" + re.escape(PatchTags.MULTI_CLOSE),
    re.IGNORECASE,
)


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Outcome of :func:`extract_patches`.

    ``error`` is set when no payload could be decoded at all. Otherwise every
    decoded payload appears in ``candidates``; the structurally valid ones are
    exposed through ``patches`` and the rest through ``rejected``.
    """

    candidates: tuple[PatchCandidate, ...] = ()
    warnings: tuple[str, ...] = ()
    error: ExtractionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_conversational(self) -> bool:
        return self.error is not None and self.error.is_conversational

    @property
    def patches(self) -> tuple[Patch, ...]:
        return tuple(candidate.patch for candidate in self.candidates if candidate.patch is not None)

    @property
    def rejected(self) -> tuple[PatchCandidate, ...]:
        return tuple(candidate for candidate in self.candidates if not candidate.is_valid)


class DuplicateJSONKeyError(ValueError):
    """Raised when a duplicate key is encountered during JSON parsing."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate key '{key}' found in JSON object.")
        self.key = key


def extract_patches(
    response_text: str | None,
    *,
    prose_warning_threshold: int = PROSE_WARNING_THRESHOLD,
    large_replacement_lines: int = LARGE_REPLACEMENT_LINES,
) -> ExtractionResult:
    """Decode the patch payload(s) embedded in ``response_text``.

    The single-patch form is tried first; when it is absent or its body is not
    valid JSON the multi-patch form is tried. Failures are returned on the
    result rather than raised.
    """

    if not response_text or not response_text.strip():
        return ExtractionResult(
            error=ExtractionError(error_code=ErrorCode.EMPTY_RESPONSE, message="Response is empty")
        )

    warnings: list[str] = []
    first_error: ExtractionError | None = None
    payloads: list[Any] | None = None
    decoded: re.Match[str] | None = None

    single_matches = list(_SINGLE_PATTERN.finditer(response_text))
    if single_matches:
        try:
            payloads = [_decode(single_matches[0].group("body"), PatchTags.SINGLE_OPEN)]
        except ExtractionError as exc:
            first_error = exc
        else:
            decoded = single_matches[0]
            if len(single_matches) > 1:
                warnings.append(
                    f"Response contains {len(single_matches)} {PatchTags.SINGLE_OPEN} blocks; only the first is used"
                )

    if payloads is None:
        multi_match = _MULTI_PATTERN.search(response_text)
        if multi_match is not None:
            try:
                payloads = _decode_array(multi_match.group("body"))
            except ExtractionError as exc:
                first_error = first_error or exc
            else:
                decoded = multi_match

    if payloads is None:
        error = first_error or ExtractionError(
            error_code=ErrorCode.NO_PATCH_TAGS,
            message="Response does not contain valid patch format",
            details={
                "expected": f"{PatchTags.SINGLE_OPEN}...{PatchTags.SINGLE_CLOSE} or "
                f"{PatchTags.MULTI_OPEN}...{PatchTags.MULTI_CLOSE}"
            },
        )
        LOGGER.debug("Patch extraction failed: %s", error)
        return ExtractionResult(error=error)

    candidates = tuple(normalize_payloads(payloads))
    assert decoded is not None
    if _outside_text_length(response_text, decoded) > prose_warning_threshold:
        warnings.append("Response contains text outside of patch tags (should be patch-only)")
    warnings.extend(_large_replacement_warnings(candidates, large_replacement_lines))

    LOGGER.debug(
        "Extracted %s patch payload(s), %s rejected, %s warning(s)",
        len(candidates),
        sum(1 for candidate in candidates if not candidate.is_valid),
        len(warnings),
    )
    return ExtractionResult(candidates=candidates, warnings=tuple(warnings))


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------
def _decode(body: str, tag: str) -> Any:
    try:
        return json.loads(body.strip(), object_pairs_hook=_no_duplicate_keys)
    except DuplicateJSONKeyError as exc:
        raise ExtractionError(
            error_code=ErrorCode.DUPLICATE_KEY,
            message=f"Invalid JSON in {tag} block: {exc}",
            details={"key": exc.key},
            suggestion="Ask the model to resend the patch",
        ) from exc
    except JSONDecodeError as exc:
        raise ExtractionError(
            error_code=ErrorCode.INVALID_JSON,
            message=f"Invalid JSON in {tag} block: {_format_json_decode_message(exc)}",
            details={"line": exc.lineno, "column": exc.colno},
            suggestion="Ask the model to resend the patch",
        ) from exc


def _decode_array(body: str) -> list[Any]:
    parsed = _decode(body, PatchTags.MULTI_OPEN)
    if not isinstance(parsed, list):
        raise ExtractionError(
            error_code=ErrorCode.NOT_AN_ARRAY,
            message=f"{PatchTags.MULTI_OPEN} block must contain a JSON array",
            details={"received": type(parsed).__name__},
            suggestion="Ask the model to resend the patch",
        )
    return parsed


def _no_duplicate_keys(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise DuplicateJSONKeyError(key)
        result[key] = value
    return result


def _format_json_decode_message(exc: JSONDecodeError) -> str:
    snippet = exc.doc.splitlines()[exc.lineno - 1].strip() if exc.doc and exc.lineno else ""
    detail = exc.msg
    if snippet:
        return f"{detail} (line {exc.lineno}, column {exc.colno}): {snippet}"
    return f"{detail} (line {exc.lineno}, column {exc.colno})"


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------
def _outside_text_length(response_text: str, decoded: re.Match[str]) -> int:
    # Only the decoded block counts as patch content; ignored extra blocks are prose.
    start, end = decoded.span()
    return len((response_text[:start] + response_text[end:]).strip())


def _large_replacement_warnings(candidates: Iterable[PatchCandidate], limit: int) -> list[str]:
    warnings: list[str] = []
    for candidate in candidates:
        patch = candidate.patch
        if isinstance(patch, ReplacePatch):
            line_count = len(patch.replacement.split("\n"))
            if line_count > limit:
                warnings.append(f"Patch {candidate.index + 1}: Very large replacement ({line_count} lines)")
    return warnings


__all__ = ["DuplicateJSONKeyError", "ExtractionResult", "extract_patches"]
