"""Prompt templates for patch-producing requests.

The output-format section tells the model to answer with JSON wrapped in the
tags from :class:`PatchTags`; :mod:`intellirite.patches.extractor` parses the
same tags back out of the response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..editor.lines import count_lines
from ..editor.markdown import generate_simple_summary
from .references import referenced_contents

LARGE_FILE_LINE_THRESHOLD = 500
MAX_REFERENCED_FILES = 10
MAX_CHAT_HISTORY = 6


class PatchTags:
    """Literal delimiters of the patch wire format."""

    SINGLE_OPEN = "<patch>"
    SINGLE_CLOSE = "</patch>"
    MULTI_OPEN = "<patches>"
    MULTI_CLOSE = "</patches>"


SINGLE_PATCH_TEMPLATE = f"""{PatchTags.SINGLE_OPEN}
{{
  "file": "filename.md",
  "type": "replace",
  "target": {{
    "startLine": 45,
    "endLine": 63
  }},
  "replacement": "New content here..."
}}
{PatchTags.SINGLE_CLOSE}"""

MULTI_PATCH_TEMPLATE = f"""{PatchTags.MULTI_OPEN}
[
  {{
    "file": "chapter2.md",
    "type": "replace",
    "target": {{ "startLine": 45, "endLine": 63 }},
    "replacement": "Updated content..."
  }},
  {{
    "file": "chapter1.md",
    "type": "insert",
    "line": 120,
    "content": "Inserted paragraph..."
  }}
]
{PatchTags.MULTI_CLOSE}"""

SYSTEM_IDENTITY = (
    "You are Intellirite AI, an intelligent editing assistant for the Intellirite IDE.\n"
    "When users request edits, you provide structured patches. "
    "When users ask questions, you respond conversationally."
)

SYSTEM_RULES: tuple[str, ...] = (
    "You are an AI writing engine for the Intellirite IDE.",
    "You will return ONLY JSON patches wrapped in XML tags, no prose or explanations.",
    "Do not rewrite entire documents unless explicitly requested.",
    "Maintain the existing structure and formatting style.",
    "Do not hallucinate citations, references, or facts.",
    "Use the exact patch format specified in the instructions.",
    "Preserve markdown formatting and heading structure.",
    "Maintain consistent voice and tone with the existing content.",
    "Only modify the specific content requested by the user.",
    "If unclear about the request, ask for clarification instead of guessing.",
)

TASK_SPECIFIC_RULES: dict[str, tuple[str, ...]] = {
    "academic": (
        "Use formal, academic language and tone.",
        "Include proper citations and references where appropriate.",
        "Follow academic writing conventions.",
        "Use precise terminology and avoid colloquialisms.",
    ),
    "grammar": (
        "Fix grammatical errors while preserving meaning.",
        "Maintain the original voice and style.",
        "Correct punctuation and spelling.",
        "Do not change the structure unless necessary for clarity.",
    ),
    "improve": (
        "Enhance clarity and readability.",
        "Improve word choice and sentence structure.",
        "Maintain the original meaning and intent.",
        "Keep the same overall length unless expansion is needed.",
    ),
    "expand": (
        "Add relevant details and examples.",
        "Maintain coherence with surrounding content.",
        "Match the existing writing style.",
        "Expand on the core ideas without deviating.",
    ),
}

# Task types map onto the rule groups above where one exists.
_TASK_RULE_GROUPS = {
    "make-academic": "academic",
    "fix-grammar": "grammar",
    "improve": "improve",
    "expand": "expand",
}

# Checked in order; the first keyword hit wins.
_TASK_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("fix-grammar", ("grammar", "fix")),
    ("make-academic", ("academic", "formal")),
    ("improve", ("improve", "better")),
    ("expand", ("expand", "add more")),
    ("rewrite", ("rewrite",)),
    ("explain", ("explain",)),
    ("summarize", ("summarize", "summary")),
)


@dataclass(slots=True, frozen=True)
class SelectionContext:
    text: str
    start_line: int
    end_line: int


@dataclass(slots=True, frozen=True)
class ReferencedFile:
    file_name: str
    content: str
    summary: str | None = None


@dataclass(slots=True, frozen=True)
class ChatTurn:
    role: str
    content: str


@dataclass(slots=True)
class PromptContext:
    """Everything the prompt builder needs to describe the editing session."""

    file_name: str
    content: str
    user_request: str
    selection: SelectionContext | None = None
    referenced_files: Sequence[ReferencedFile] = field(default_factory=tuple)
    chat_history: Sequence[ChatTurn] = field(default_factory=tuple)

    @classmethod
    def for_message(
        cls,
        file_name: str,
        documents: Mapping[str, str],
        user_request: str,
        *,
        selection: SelectionContext | None = None,
        chat_history: Sequence[ChatTurn] = (),
    ) -> "PromptContext":
        """Build the context for ``file_name`` plus every ``#file`` the request references.

        ``documents`` maps identifiers of the open documents to their content and
        must contain ``file_name``. The active document is not repeated among the
        referenced files.
        """

        others = {name: text for name, text in referenced_contents(user_request, documents).items() if name != file_name}
        return cls(
            file_name=file_name,
            content=documents[file_name],
            user_request=user_request,
            selection=selection,
            referenced_files=referenced_files_from_mapping(others),
            chat_history=tuple(chat_history),
        )


def detect_task_type(user_request: str) -> str:
    """Classify a request by keyword; unknown requests are ``custom``."""

    lowered = user_request.lower()
    for task_type, keywords in _TASK_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return task_type
    return "custom"


def task_rules(task_type: str | None) -> tuple[str, ...]:
    if not task_type:
        return ()
    group = _TASK_RULE_GROUPS.get(task_type, task_type)
    return TASK_SPECIFIC_RULES.get(group, ())


def build_patch_prompt(
    context: PromptContext,
    *,
    task_type: str | None = None,
    custom_instructions: Sequence[str] | None = None,
) -> str:
    """Assemble the edit-mode prompt sent to the model."""

    sections = [SYSTEM_IDENTITY, _current_file_section(context)]
    if context.selection is not None:
        sections.append(_selection_section(context.selection))
    if context.referenced_files:
        sections.append(_referenced_files_section(context.referenced_files))
    sections.append(_system_rules_section(task_type, custom_instructions))
    sections.append(output_format_section())
    sections.append(f"# USER REQUEST\n\n{context.user_request}")
    return "\n\n".join(sections)


def output_format_section() -> str:
    return f"""# OUTPUT FORMAT

You MUST respond ONLY with a JSON patch wrapped in XML tags. Do not include any explanatory text, prose, or comments.

For single file edits, use:
{PatchTags.SINGLE_OPEN}...{PatchTags.SINGLE_CLOSE}

For multiple file edits, use:
{PatchTags.MULTI_OPEN}...{PatchTags.MULTI_CLOSE}

## Example Format

```
{SINGLE_PATCH_TEMPLATE}
```

## Patch Types

- **insert**: Add content at a specific line
  - Required: `file`, `type: "insert"`, `line`, `content`
- **replace**: Replace a line range with new content
  - Required: `file`, `type: "replace"`, `target: {{startLine, endLine}}`, `replacement`
- **delete**: Remove a line range
  - Required: `file`, `type: "delete"`, `target: {{startLine, endLine}}`
"""


def _current_file_section(context: PromptContext) -> str:
    parts: list[str] = []
    history = list(context.chat_history)[-MAX_CHAT_HISTORY:]
    if history:
        parts.append("# RECENT CONVERSATION CONTEXT\nRecent conversation history for context:\n\n")
        for turn in history:
            role = "USER" if turn.role == "user" else "ASSISTANT"
            parts.append(f"{role}: {turn.content}\n\n")
        parts.append("---\n\n")

    parts.append(f"# CURRENT FILE ({context.file_name})\n")
    if count_lines(context.content) > LARGE_FILE_LINE_THRESHOLD:
        parts.append("## File Summary\n")
        parts.append(generate_simple_summary(context.content))
        parts.append(
            "\n\n## Note\nFull content available but summarized for brevity. "
            "Focus on the selection or referenced sections.\n"
        )
    else:
        parts.append(context.content)
    return "".join(parts)


def _selection_section(selection: SelectionContext) -> str:
    return (
        f"# USER SELECTION (lines {selection.start_line}-{selection.end_line})\n"
        f"```\n{selection.text}\n```"
    )


def _referenced_files_section(files: Sequence[ReferencedFile]) -> str:
    parts = ["# REFERENCED FILES\n\n"]
    for index, ref in enumerate(list(files)[:MAX_REFERENCED_FILES], start=1):
        parts.append(f"## {index}. {ref.file_name}")
        if ref.summary:
            parts.append(f" (summarized)\n\n{ref.summary}")
        else:
            parts.append(f"\n\n```\n{ref.content}\n```")
        parts.append("\n\n")
    return "".join(parts).strip()


def _system_rules_section(task_type: str | None, custom_instructions: Sequence[str] | None) -> str:
    lines = ["# SYSTEM RULES", ""]
    lines.extend(f"- {rule}" for rule in SYSTEM_RULES)
    extra = task_rules(task_type)
    if extra:
        lines.extend(["", "## Additional Rules for This Task", ""])
        lines.extend(f"- {rule}" for rule in extra)
    if custom_instructions:
        lines.extend(["", "## Custom Instructions", ""])
        lines.extend(f"- {instruction}" for instruction in custom_instructions)
    return "\n".join(lines)


def referenced_files_from_mapping(contents: Mapping[str, str]) -> tuple[ReferencedFile, ...]:
    """Wrap ``{name: content}`` pairs, summarizing files above the large-file threshold."""

    refs: list[ReferencedFile] = []
    for name, content in contents.items():
        summary = None
        if count_lines(content) > LARGE_FILE_LINE_THRESHOLD:
            summary = generate_simple_summary(content)
        refs.append(ReferencedFile(file_name=name, content=content, summary=summary))
    return tuple(refs)


__all__ = [
    "ChatTurn",
    "MULTI_PATCH_TEMPLATE",
    "PatchTags",
    "PromptContext",
    "ReferencedFile",
    "SINGLE_PATCH_TEMPLATE",
    "SYSTEM_RULES",
    "SelectionContext",
    "TASK_SPECIFIC_RULES",
    "build_patch_prompt",
    "detect_task_type",
    "output_format_section",
    "referenced_files_from_mapping",
    "task_rules",
]
