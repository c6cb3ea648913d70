"""Editor-side text helpers: line arithmetic and Markdown outlines."""

from . import lines, markdown

__all__ = ["lines", "markdown"]
