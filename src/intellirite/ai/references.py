"""``#file`` references in chat messages.

Users pull other documents into a request by writing ``#chapter1.md`` (or just
``#notes``). The referenced documents become the referenced-files section of
the prompt and, together with the active document, the ``file_contents`` map
the patch pipeline validates against.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import PurePosixPath
from typing import Mapping, Sequence

LOGGER = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"#([A-Za-z0-9_-]+(?:\.[A-Za-z0-9]+)?)")
_FULL_REFERENCE = re.compile(r"#[A-Za-z0-9_-]+(?:\.[A-Za-z0-9]+)?")


@dataclass(slots=True, frozen=True)
class FileReference:
    """One ``#name`` token; ``file_path`` and ``exists`` are set by resolution."""

    original: str
    file_name: str
    file_path: str = ""
    exists: bool = False

    @classmethod
    def for_file(cls, file_name: str, file_path: str = "", exists: bool = False) -> "FileReference":
        return cls(original=f"#{file_name}", file_name=file_name, file_path=file_path, exists=exists)


@dataclass(slots=True, frozen=True)
class ReferenceExtraction:
    references: tuple[FileReference, ...]
    message_without_refs: str

    @property
    def has_references(self) -> bool:
        return bool(self.references)


def parse_file_references(text: str) -> tuple[FileReference, ...]:
    """Return the distinct references in ``text``, first occurrence first."""

    seen: set[str] = set()
    references: list[FileReference] = []
    for match in REFERENCE_PATTERN.finditer(text or ""):
        name = match.group(1)
        if name in seen:
            continue
        seen.add(name)
        references.append(FileReference(original=match.group(0), file_name=name))
    return tuple(references)


def extract_references_from_message(message: str) -> ReferenceExtraction:
    """Parse ``message`` and drop the ``#`` from the first occurrence of each reference."""

    references = parse_file_references(message)
    cleaned = message
    for reference in references:
        cleaned = cleaned.replace(reference.original, reference.file_name, 1)
    return ReferenceExtraction(references=references, message_without_refs=cleaned)


def is_valid_file_reference(text: str) -> bool:
    return _FULL_REFERENCE.fullmatch(text) is not None


def resolve_file_references(
    references: Sequence[FileReference],
    documents: Mapping[str, str],
) -> tuple[FileReference, ...]:
    """Match references against document identifiers.

    An exact identifier wins; otherwise the first identifier whose final path
    component equals the referenced name is used. Unmatched references keep
    their bare name as ``file_path`` and ``exists=False``.
    """

    by_basename: dict[str, str] = {}
    for identifier in documents:
        by_basename.setdefault(PurePosixPath(identifier.replace("\\", "/")).name, identifier)

    resolved: list[FileReference] = []
    for reference in references:
        path = reference.file_name if reference.file_name in documents else by_basename.get(reference.file_name)
        if path is None:
            LOGGER.debug("Reference %s does not match an open document", reference.original)
            resolved.append(replace(reference, file_path=reference.file_name, exists=False))
        else:
            resolved.append(replace(reference, file_path=path, exists=True))
    return tuple(resolved)


def referenced_contents(message: str, documents: Mapping[str, str]) -> dict[str, str]:
    """Contents of the documents ``message`` references, keyed by document identifier."""

    resolved = resolve_file_references(parse_file_references(message), documents)
    return {reference.file_path: documents[reference.file_path] for reference in resolved if reference.exists}


def format_file_references(references: Sequence[FileReference]) -> str:
    return ", ".join(reference.original for reference in references)


__all__ = [
    "FileReference",
    "ReferenceExtraction",
    "extract_references_from_message",
    "format_file_references",
    "is_valid_file_reference",
    "parse_file_references",
    "referenced_contents",
    "resolve_file_references",
]
