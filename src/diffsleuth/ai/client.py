"""Async model provider built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .orchestration.cancellation import CancellationToken
from .orchestration.errors import CancellationError, ProviderError
from .orchestration.types import StreamChunk, TextChunk, ToolCallChunk

__all__ = ["AIClient", "ClientSettings"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client.

    ``read_timeout`` of ``None`` leaves streamed reads unbounded so the
    dispatcher's request timeout decides when a stalled stream is abandoned.
    """

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    connect_timeout: float = 10.0
    read_timeout: float | None = None
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float | None = 0.2
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    supports_system_role: bool = True
    debug_logging: bool = False


class _ChunkStream:
    """Async iterator of normalized chunks over an open completion stream.

    ``aclose`` releases the underlying HTTP response whether or not iteration
    ever started.
    """

    def __init__(self, client: AIClient, stream: Any, stack: AsyncExitStack) -> None:
        self._client = client
        self._stream = stream
        self._events = stream.__aiter__()
        self._stack = stack
        self._closed = False

    def __aiter__(self) -> _ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._closed:
            raise StopAsyncIteration
        while True:
            event = await self._events.__anext__()
            chunk = self._client._normalize_stream_event(event, self._stream)
            if chunk is not None:
                return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stack.aclose()


class AIClient:
    """Model provider streaming text and tool-call chunks with retry on open.

    Only opening the stream is retried: once chunks have been delivered a
    failure propagates, since a partial response cannot be replayed.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def supports_system_role(self) -> bool:
        return self._settings.supports_system_role

    async def send_request(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        token: CancellationToken,
    ) -> _ChunkStream:
        """Open a streamed chat completion and return its chunk iterator.

        Raises:
            CancellationError: ``token`` fired before the stream opened.
            ProviderError: The stream could not be opened after all retries.
        """
        payload = self._build_chat_payload(messages, tools)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        stack = AsyncExitStack()
        try:
            async for attempt in self._retrying():
                with attempt:
                    token.raise_if_cancelled()
                    stream = await stack.enter_async_context(
                        self._client.chat.completions.stream(**payload)
                    )
        except CancellationError:
            await stack.aclose()
            raise
        except Exception as exc:
            await stack.aclose()
            LOGGER.error("Unable to open chat completion stream: %s", exc)
            raise ProviderError(f"Model request failed: {exc}", cause=exc) from exc
        return _ChunkStream(self, stream, stack)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout),
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    def _build_chat_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [dict(message) for message in messages],
        }
        if tools:
            payload["tools"] = [dict(tool) for tool in tools]
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        if self._settings.metadata:
            payload["metadata"] = dict(self._settings.metadata)
        return payload

    def _normalize_stream_event(
        self,
        event: ChatCompletionStreamEvent[Any],
        stream: Any = None,
    ) -> StreamChunk | None:
        event_type = getattr(event, "type", None)
        if event_type == "content.delta":
            delta_text = getattr(event, "delta", None)
            if delta_text:
                return TextChunk(str(delta_text))
            return None
        if event_type == "tool_calls.function.arguments.done":
            index = getattr(event, "index", None)
            call_id = (
                getattr(event, "id", None)
                or getattr(event, "tool_call_id", None)
                or _snapshot_tool_call_id(stream, index)
                or f"call_{index if index is not None else 0}"
            )
            return ToolCallChunk(
                call_id=str(call_id),
                name=str(getattr(event, "name", "") or ""),
                arguments=getattr(event, "arguments", None) or "{}",
            )
        return None

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            result = close()
        except Exception as exc:  # pragma: no cover
            LOGGER.debug("AI client close failed to start: %s", exc)
            return
        if inspect.isawaitable(result):
            await result


def _snapshot_tool_call_id(stream: Any, index: int | None) -> str | None:
    """Look up a tool call id in the stream's accumulated completion snapshot."""
    if stream is None or index is None:
        return None
    snapshot = getattr(stream, "current_completion_snapshot", None)
    try:
        calls = snapshot.choices[0].message.tool_calls or []
        return calls[index].id
    except (AttributeError, IndexError, TypeError):
        return None
