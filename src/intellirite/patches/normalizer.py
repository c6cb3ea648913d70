"""Structural validation of decoded patch payloads.

Field types are checked with a JSON Schema; the kind-specific rules are
applied afterwards so that every problem with a payload is reported at once.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

import jsonschema

from .models import DeletePatch, InsertPatch, LineTarget, Patch, PatchCandidate, PatchKind, ReplacePatch

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 25

PATCH_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "file": {"type": "string"},
        "type": {"type": "string"},
        "line": {"type": "integer"},
        "content": {"type": "string"},
        "replacement": {"type": "string"},
        "target": {
            "type": "object",
            "properties": {
                "startLine": {"type": "integer"},
                "endLine": {"type": "integer"},
            },
            "required": ["startLine", "endLine"],
        },
    },
}

_VALIDATOR = jsonschema.Draft202012Validator(PATCH_SCHEMA)
_KIND_NAMES = ", ".join(kind.value for kind in PatchKind)
_KINDS_BY_NAME = {kind.value: kind for kind in PatchKind}


def normalize_payload(payload: Any, index: int = 0) -> PatchCandidate:
    """Validate one decoded payload and build its typed patch when it is sound."""

    errors, flagged = _schema_errors(payload)
    if not isinstance(payload, Mapping):
        return PatchCandidate(index=index, payload=payload, errors=tuple(errors))

    kind = _KINDS_BY_NAME.get(payload.get("type")) if "type" not in flagged else None
    errors.extend(_semantic_errors(payload, kind, flagged))
    if errors:
        LOGGER.debug("Patch %s rejected: %s", index + 1, "; ".join(errors))
        return PatchCandidate(index=index, payload=payload, errors=tuple(errors))

    assert kind is not None
    return PatchCandidate(index=index, payload=payload, patch=_build_patch(payload, kind))


def normalize_payloads(payloads: Iterable[Any]) -> list[PatchCandidate]:
    return [normalize_payload(payload, index) for index, payload in enumerate(payloads)]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def _schema_errors(payload: Any) -> tuple[list[str], set[str]]:
    """Return formatted schema issues plus the dotted paths they were raised on."""

    errors: list[str] = []
    flagged: set[str] = set()
    for issue in sorted(_VALIDATOR.iter_errors(payload), key=lambda item: [str(part) for part in item.absolute_path]):
        path = _format_schema_path(issue.absolute_path)
        message = issue.message
        if path:
            message = f"{path}: {message}"
            flagged.add(path)
        errors.append(message)
        if len(errors) >= MAX_SCHEMA_ERRORS:
            errors.append("Too many validation errors; stopping early.")
            break
    return errors, flagged


def _semantic_errors(payload: Mapping[str, Any], kind: PatchKind | None, flagged: set[str]) -> list[str]:
    errors: list[str] = []

    file_name = payload.get("file")
    if "file" not in flagged and (not file_name or not file_name.strip()):
        errors.append("Missing or empty 'file' field")

    if "type" not in flagged and kind is None:
        raw_type = payload.get("type")
        if raw_type is None:
            errors.append(f"Missing 'type' field. Must be one of: {_KIND_NAMES}")
        else:
            errors.append(f"Invalid type '{raw_type}'. Must be one of: {_KIND_NAMES}")

    if kind is PatchKind.INSERT:
        line = payload.get("line")
        if "line" not in flagged and (line is None or line < 1):
            errors.append("Insert operation requires valid 'line' field (>= 1)")
        if "content" not in payload:
            errors.append("Insert operation requires 'content' field")
    elif kind in (PatchKind.REPLACE, PatchKind.DELETE):
        label = "Replace" if kind is PatchKind.REPLACE else "Delete"
        errors.extend(_target_errors(payload, label, flagged))
        if kind is PatchKind.REPLACE and "replacement" not in payload:
            errors.append("Replace operation requires 'replacement' field")

    return errors


def _target_errors(payload: Mapping[str, Any], label: str, flagged: set[str]) -> list[str]:
    if "target" not in payload or payload["target"] is None:
        return [f"{label} operation requires 'target' field"]
    if "target" in flagged:
        return []

    target = payload["target"]
    start = target.get("startLine")
    end = target.get("endLine")
    errors: list[str] = []
    start_ok = isinstance(start, (int, float)) and "target.startLine" not in flagged
    end_ok = isinstance(end, (int, float)) and "target.endLine" not in flagged
    if start_ok and start < 1:
        errors.append("target.startLine must be >= 1")
    if start_ok and end_ok and end < start:
        errors.append("target.endLine must be >= target.startLine")
    return errors


def _build_patch(payload: Mapping[str, Any], kind: PatchKind) -> Patch:
    file_name = str(payload["file"])
    if kind is PatchKind.INSERT:
        return InsertPatch(file=file_name, line=int(payload["line"]), content=payload["content"])

    target = LineTarget(
        start_line=int(payload["target"]["startLine"]),
        end_line=int(payload["target"]["endLine"]),
    )
    if kind is PatchKind.REPLACE:
        return ReplacePatch(file=file_name, target=target, replacement=payload["replacement"])
    return DeletePatch(file=file_name, target=target)


def _format_schema_path(path: Sequence[Any]) -> str:
    if not path:
        return ""
    components: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            if components:
                components[-1] = f"{components[-1]}[{segment}]"
            else:
                components.append(f"[{segment}]")
        else:
            components.append(str(segment))
    return ".".join(filter(None, components))


__all__ = ["PATCH_SCHEMA", "normalize_payload", "normalize_payloads"]
