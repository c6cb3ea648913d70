"""Markdown outline helpers used to describe documents to the model."""

from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = [
    "MarkdownHeading",
    "extract_markdown_headings",
    "generate_simple_summary",
    "is_markdown_content",
]

MAX_SUMMARY_LENGTH = 500
_HEADING_PATTERN = re.compile(r"^(?P<hashes>#{1,6})\s+(?P<title>.+)$")
_MARKDOWN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^#{1,6}\s+", re.MULTILINE),
    re.compile(r"\*\*[^*]+\*\*"),
    re.compile(r"\*[^*]+\*"),
    re.compile(r"\[.+\]\(.+\)"),
    re.compile(r"^[-*+]\s+", re.MULTILINE),
    re.compile(r"^>\s+", re.MULTILINE),
    re.compile(r"```.*```", re.DOTALL),
)


@dataclass(slots=True, frozen=True)
class MarkdownHeading:
    """ATX heading found on a single line."""

    level: int
    text: str
    line_number: int


def extract_markdown_headings(content: str) -> list[MarkdownHeading]:
    """Return ``#``-style headings in document order with 1-indexed line numbers."""

    headings: list[MarkdownHeading] = []
    for index, line in enumerate(content.split("\n")):
        match = _HEADING_PATTERN.match(line)
        if match is None:
            continue
        headings.append(
            MarkdownHeading(
                level=len(match.group("hashes")),
                text=match.group("title").strip(),
                line_number=index + 1,
            )
        )
    return headings


def generate_simple_summary(content: str, max_length: int = MAX_SUMMARY_LENGTH) -> str:
    """Summarize a document as its heading outline, or its opening text when it has none."""

    headings = extract_markdown_headings(content)
    if not headings:
        suffix = "..." if len(content) > max_length else ""
        return content[:max_length] + suffix

    parts = ["File structure:\n"]
    for heading in headings:
        indent = "  " * (heading.level - 1)
        parts.append(f"{indent}- {heading.text} (line {heading.line_number})\n")
    summary = "".join(parts)
    if len(summary) > max_length:
        summary = summary[:max_length] + "..."
    return summary


def is_markdown_content(content: str) -> bool:
    """Heuristically decide whether ``content`` is Markdown."""

    return any(pattern.search(content) for pattern in _MARKDOWN_PATTERNS)
