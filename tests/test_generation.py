"""Tests for cancellable generation."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Iterable

import pytest

from intellirite.ai.generation import GenerationTask
from intellirite.core.errors import ErrorCode


class _ChunkStream:
    """Async iterator over fixed chunks that records whether it was closed."""

    def __init__(self, chunks: Iterable[str], *, delay: float = 0.0) -> None:
        self._chunks = list(chunks)
        self._delay = delay
        self.closed = False
        self.served = 0

    def __aiter__(self) -> "_ChunkStream":
        return self

    async def __anext__(self) -> str:
        if self.served >= len(self._chunks):
            raise StopAsyncIteration
        if self._delay:
            await asyncio.sleep(self._delay)
        chunk = self._chunks[self.served]
        self.served += 1
        return chunk

    async def aclose(self) -> None:
        self.closed = True


PATCH_RESPONSE = ['<patch>{"file":"a.md",', '"type":"insert","line":1,', '"content":"Hi"}</patch>']


@pytest.mark.asyncio
async def test_run_collects_text_and_extracts_patches() -> None:
    stream = _ChunkStream(PATCH_RESPONSE)
    task = GenerationTask(stream)

    result = await task.run()

    assert result.text == "".join(PATCH_RESPONSE)
    assert result.chunk_count == 3
    assert not result.cancelled
    assert result.error is None
    assert len(result.extraction.patches) == 1
    assert stream.closed


@pytest.mark.asyncio
async def test_on_chunk_callback_supports_sync_and_async() -> None:
    seen: list[str] = []
    seen_async: list[str] = []

    async def record(chunk: str) -> None:
        seen_async.append(chunk)

    await GenerationTask(_ChunkStream(["a", "", "b"]), on_chunk=seen.append).run()
    await GenerationTask(_ChunkStream(["c", "d"]), on_chunk=record).run()

    assert seen == ["a", "b"]
    assert seen_async == ["c", "d"]


@pytest.mark.asyncio
async def test_cancel_stops_consuming_and_keeps_partial_text() -> None:
    stream = _ChunkStream(["one ", "two ", "three ", "four"])
    task: GenerationTask

    def on_chunk(chunk: str) -> None:
        if chunk == "two ":
            task.cancel()

    task = GenerationTask(stream, on_chunk=on_chunk)

    result = await task.run()

    assert result.cancelled
    assert result.text == "one two "
    assert result.chunk_count == 2
    assert stream.served == 3
    assert stream.closed
    assert result.error is not None
    assert result.error.error_code == ErrorCode.GENERATION_CANCELLED
    assert result.extraction.is_conversational


@pytest.mark.asyncio
async def test_cancel_from_another_task() -> None:
    stream = _ChunkStream([f"chunk{index} " for index in range(50)], delay=0.001)
    task = GenerationTask(stream)

    runner = asyncio.create_task(task.run())
    while task.partial_text == "":
        await asyncio.sleep(0)
    task.cancel()
    result = await runner

    assert result.cancelled
    assert 0 < result.chunk_count < 50
    assert task.partial_text == result.text


@pytest.mark.asyncio
async def test_cancelled_generation_still_recovers_complete_patches() -> None:
    chunks = PATCH_RESPONSE + ["\ntrailing commentary that never finishes"]
    stream = _ChunkStream(chunks)
    task: GenerationTask

    def on_chunk(chunk: str) -> None:
        if chunk.endswith("</patch>"):
            task.cancel()

    task = GenerationTask(stream, on_chunk=on_chunk)

    result = await task.run()

    assert result.cancelled
    assert len(result.extraction.patches) == 1


@pytest.mark.asyncio
async def test_run_may_only_be_awaited_once() -> None:
    task = GenerationTask(_ChunkStream(["x"]))
    await task.run()

    with pytest.raises(RuntimeError):
        await task.run()


@pytest.mark.asyncio
async def test_from_client_uses_stream_text() -> None:
    calls: list[dict] = []

    class _Client:
        async def _chunks(self) -> AsyncIterator[str]:
            for chunk in PATCH_RESPONSE:
                yield chunk

        def stream_text(self, prompt, *, history=None, system_prompt=None):
            calls.append({"prompt": prompt, "history": history, "system_prompt": system_prompt})
            return self._chunks()

    task = GenerationTask.from_client(_Client(), "Add a greeting", system_prompt="rules")  # type: ignore[arg-type]

    result = await task.run()

    assert calls == [{"prompt": "Add a greeting", "history": None, "system_prompt": "rules"}]
    assert len(result.extraction.patches) == 1
