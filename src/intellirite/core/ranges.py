"""Inclusive 1-indexed line spans shared by the conflict detector and models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _line_number(value: Any, label: str) -> int:
    # bool is an int subclass; ``True`` as a line number is always a model mistake.
    if isinstance(value, bool):
        raise ValueError(f"LineRange {label} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"LineRange {label} must be an integer") from exc
    return max(number, 1)


@dataclass(slots=True, frozen=True, order=True)
class LineRange:
    """Span of lines ``start_line..end_line``; reversed bounds are swapped."""

    start_line: int
    end_line: int

    def __post_init__(self) -> None:
        start = _line_number(self.start_line, "start_line")
        end = _line_number(self.end_line, "end_line")
        object.__setattr__(self, "start_line", min(start, end))
        object.__setattr__(self, "end_line", max(start, end))

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return str(self.start_line)
        return f"{self.start_line}-{self.end_line}"

    def overlaps(self, other: LineRange) -> bool:
        return self.start_line <= other.end_line and other.start_line <= self.end_line

    def intersection(self, other: LineRange) -> LineRange | None:
        """Lines shared by both spans, or ``None`` when they are disjoint."""

        if not self.overlaps(other):
            return None
        return LineRange(max(self.start_line, other.start_line), min(self.end_line, other.end_line))

    @classmethod
    def single(cls, line: int) -> LineRange:
        return cls(line, line)


__all__ = ["LineRange"]
