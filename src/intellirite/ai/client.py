"""Streaming chat client for OpenAI-compatible endpoints.

:class:`AIClient` produces the raw model text that the patch extractor later
parses. Transient transport failures are retried with exponential backoff, but
only while nothing has been handed to the caller yet: once a delta has been
yielded, a failure surfaces as :class:`StreamInterruptedError` so partial text
is never duplicated.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)

# Stream event type -> attribute holding its text. Unlisted types (raw chunks,
# tool-call deltas, logprobs) carry nothing the patch pipeline consumes.
_EVENT_TEXT_ATTRIBUTES: Mapping[str, str] = {
    "content.delta": "delta",
    "content.done": "content",
    "refusal.delta": "delta",
    "refusal.done": "refusal",
}


class StreamInterruptedError(RuntimeError):
    """The stream failed after some text had already been yielded."""


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            temperature=settings.temperature,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            metadata=dict(settings.metadata) or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class AIStreamEvent:
    """Text-bearing stream event: ``type`` is the OpenAI event name."""

    type: str
    content: str | None = None
    parsed: Any | None = None


@dataclass(slots=True)
class ChatRequest:
    """Keyword arguments for one ``chat.completions.stream`` call."""

    model: str
    messages: List[ChatCompletionMessageParam]
    temperature: float | None = None
    max_tokens: int | None = None
    metadata: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "messages": list(self.messages)}
        optional = {"temperature": self.temperature, "max_tokens": self.max_tokens, "metadata": self.metadata or None}
        payload.update({key: value for key, value in optional.items() if value is not None})
        payload.update(self.extra)
        return payload

    def describe(self) -> str:
        """One line per message with role and size, for debug logs."""

        lines = [f"model={self.model} temperature={self.temperature} max_tokens={self.max_tokens}"]
        for message in self.messages:
            content = message.get("content") or ""
            lines.append(f"  {message.get('role', '?')}: {len(str(content))} chars")
        return "\n".join(lines)


def build_messages(
    prompt: str,
    *,
    history: Sequence[Mapping[str, str]] | None = None,
    system_prompt: str | None = None,
) -> List[Mapping[str, Any]]:
    """Order a chat as system prompt, prior turns, then ``prompt`` from the user."""

    messages: List[Mapping[str, Any]] = [{"role": "system", "content": system_prompt}] if system_prompt else []
    messages.extend(history or ())
    messages.append({"role": "user", "content": prompt})
    return messages


class AIClient:
    """Async wrapper around :class:`openai.AsyncOpenAI` chat streaming."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def build_request(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra: Any,
    ) -> ChatRequest:
        coerced: List[ChatCompletionMessageParam] = []
        for message in messages:
            try:
                coerced.append(cast(ChatCompletionMessageParam, dict(message)))
            except (TypeError, ValueError) as exc:
                raise TypeError("Messages must be mapping-like objects") from exc
        if not coerced:
            raise ValueError("At least one message is required to start a chat")
        return ChatRequest(
            model=self._settings.model,
            messages=coerced,
            temperature=self._settings.temperature if temperature is None else temperature,
            max_tokens=max_tokens,
            metadata={**(self._settings.metadata or {}), **(metadata or {})},
            extra=dict(extra),
        )

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        **options: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Yield text-bearing events for ``messages``; ``options`` go to :meth:`build_request`."""

        request = self.build_request(messages, **options)
        LOGGER.debug("Streaming completion from %s (%s message(s))", request.model, len(request.messages))
        if self._settings.debug_logging:
            LOGGER.debug("Chat request:\n%s", request.describe())

        payload = request.to_payload()
        yielded = 0
        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    LOGGER.info("Retrying completion (attempt %s)", attempt.retry_state.attempt_number)
                try:
                    async with self._client.chat.completions.stream(**payload) as stream:
                        async for raw in stream:
                            event = _to_stream_event(raw)
                            if event is None:
                                continue
                            yielded += 1
                            yield event
                except TRANSIENT_ERRORS as exc:
                    if yielded:
                        LOGGER.warning("Stream failed after %s event(s): %s", yielded, exc)
                        raise StreamInterruptedError(f"Stream interrupted: {exc}") from exc
                    raise
                return

    async def stream_text(
        self,
        prompt: str,
        *,
        history: Sequence[Mapping[str, str]] | None = None,
        system_prompt: str | None = None,
        **options: Any,
    ) -> AsyncIterator[str]:
        """Yield the content deltas of the reply to ``prompt``."""

        messages = build_messages(prompt, history=history, system_prompt=system_prompt)
        async for event in self.stream_chat(messages, **options):
            if event.type == "content.delta" and event.content:
                yield event.content

    async def complete_text(self, prompt: str, **kwargs: Any) -> str:
        """Return the whole reply to ``prompt`` once the stream finishes."""

        return "".join([chunk async for chunk in self.stream_text(prompt, **kwargs)])

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(multiplier=self._settings.retry_min_seconds, max=self._settings.retry_max_seconds),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
        )

    async def aclose(self) -> None:
        """Release the HTTP connection pool of the wrapped client."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _to_stream_event(raw: ChatCompletionStreamEvent[Any]) -> AIStreamEvent | None:
    event_type = getattr(raw, "type", None)
    attribute = _EVENT_TEXT_ATTRIBUTES.get(event_type or "")
    if attribute is None:
        return None
    text = getattr(raw, attribute, None)
    if event_type == "content.done":
        return AIStreamEvent(type=event_type, content=text, parsed=getattr(raw, "parsed", None))
    if event_type == "content.delta" and not text:
        return None
    return AIStreamEvent(type=event_type, content=None if text is None else str(text))


__all__ = ["AIClient", "AIStreamEvent", "ChatRequest", "ClientSettings", "StreamInterruptedError", "build_messages"]
