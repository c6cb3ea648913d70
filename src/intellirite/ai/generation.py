"""Cancellable consumption of a streamed model response."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Mapping, Sequence

from ..core.errors import GenerationCancelledError
from ..patches.extractor import PROSE_WARNING_THRESHOLD, ExtractionResult, extract_patches
from .client import AIClient

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]


@dataclass(slots=True, frozen=True)
class GenerationResult:
    """Text collected from a stream and the patches found in it.

    A cancelled generation still carries the partial text and whatever
    patches were complete before the stop.
    """

    text: str
    extraction: ExtractionResult
    chunk_count: int = 0
    cancelled: bool = False
    error: GenerationCancelledError | None = None


class GenerationTask:
    """Collects chunks from an async text stream until it ends or is cancelled.

    Cancellation is cooperative: :meth:`cancel` sets a flag that is checked
    each time a chunk arrives, and no chunk is recorded once it is set.
    """

    def __init__(
        self,
        chunks: AsyncIterable[str],
        *,
        on_chunk: ChunkCallback | None = None,
        prose_warning_threshold: int = PROSE_WARNING_THRESHOLD,
    ) -> None:
        self._chunks = chunks
        self._on_chunk = on_chunk
        self._prose_warning_threshold = prose_warning_threshold
        self._cancel_event = asyncio.Event()
        self._parts: list[str] = []
        self._running = False

    @classmethod
    def from_client(
        cls,
        client: AIClient,
        prompt: str,
        *,
        history: Sequence[Mapping[str, str]] | None = None,
        system_prompt: str | None = None,
        on_chunk: ChunkCallback | None = None,
        prose_warning_threshold: int = PROSE_WARNING_THRESHOLD,
    ) -> "GenerationTask":
        stream = client.stream_text(prompt, history=history, system_prompt=system_prompt)
        return cls(stream, on_chunk=on_chunk, prose_warning_threshold=prose_warning_threshold)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def partial_text(self) -> str:
        return "".join(self._parts)

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            LOGGER.debug("Generation cancellation requested after %s chunk(s)", len(self._parts))
        self._cancel_event.set()

    async def run(self) -> GenerationResult:
        if self._running:
            raise RuntimeError("GenerationTask.run() may only be awaited once")
        self._running = True

        try:
            async for chunk in self._chunks:
                if self._cancel_event.is_set():
                    break
                if not chunk:
                    continue
                self._parts.append(chunk)
                if self._on_chunk is not None:
                    outcome = self._on_chunk(chunk)
                    if inspect.isawaitable(outcome):
                        await outcome
        finally:
            await self._close_stream()

        text = self.partial_text
        extraction = extract_patches(text, prose_warning_threshold=self._prose_warning_threshold)
        error = None
        if self.cancelled:
            error = GenerationCancelledError(details={"chunks": len(self._parts), "characters": len(text)})
            LOGGER.info(
                "Generation cancelled after %s chunk(s); %s patch(es) recovered",
                len(self._parts),
                len(extraction.patches),
            )
        return GenerationResult(
            text=text,
            extraction=extraction,
            chunk_count=len(self._parts),
            cancelled=self.cancelled,
            error=error,
        )

    async def _close_stream(self) -> None:
        close = getattr(self._chunks, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


__all__ = ["GenerationResult", "GenerationTask"]
