"""Request dispatcher: one provider round-trip under timeout and cancellation.

The dispatcher converts a conversation into the provider's wire format, opens
the response stream and consumes it chunk by chunk. Consumption runs in its
own task and is raced against a timer and the caller's cancellation token.
When the timer wins, the consumption loop is told to stop through a linked
token and its eventual outcome is retrieved and discarded; the in-flight
request itself is left to finish on its own.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator
from typing import Any, Awaitable, Mapping, Protocol, Sequence, Union, runtime_checkable

from .cancellation import CancellationToken, CancellationTokenSource
from .errors import CancellationError, OrchestrationError, ProviderError, RequestTimeoutError
from .types import Message, StreamChunk, TextChunk, ToolCall, ToolCallChunk, ToolCallRequest, ToolCallResponse

__all__ = [
    "ModelProvider",
    "RequestDispatcher",
    "convert_messages",
    "DEFAULT_REQUEST_TIMEOUT_MS",
    "DISPATCH_OPERATION",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_MS = 300_000
DISPATCH_OPERATION = "LLM request"


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------

ProviderStream = Union[AsyncIterator[StreamChunk], Awaitable[AsyncIterator[StreamChunk]]]


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol for model providers that stream text and tool-call chunks.

    ``send_request`` may return the chunk iterator directly (an async
    generator) or an awaitable resolving to it, for providers that wait on
    response headers before streaming. The :class:`~diffsleuth.ai.client.AIClient`
    conforms to this protocol.

    Attributes:
        supports_system_role: False for providers without a system role;
            system turns are then relabelled as assistant turns.
    """

    supports_system_role: bool

    def send_request(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        token: CancellationToken,
    ) -> ProviderStream:
        """Start a streamed completion for ``messages``."""
        ...


# -----------------------------------------------------------------------------
# Wire Conversion
# -----------------------------------------------------------------------------


def convert_messages(
    messages: Sequence[Message],
    *,
    system_role: bool = True,
) -> list[dict[str, Any]]:
    """Convert messages to OpenAI-style chat params.

    User turns without content are dropped rather than sent. When
    ``system_role`` is False, system turns are sent as assistant turns.
    """
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "user" and message.content is None:
            LOGGER.debug("Dropping user message with no content")
            continue
        param = message.to_chat_param()
        if message.role == "system" and not system_role:
            param["role"] = "assistant"
        converted.append(param)
    return converted


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


class RequestDispatcher:
    """Sends one request to a model provider and accumulates the response.

    Example:
        >>> dispatcher = RequestDispatcher()
        >>> response = await dispatcher.send(provider, request, token, 60_000)
        >>> response.content
    """

    def __init__(self, *, operation: str = DISPATCH_OPERATION) -> None:
        self._operation = operation

    @property
    def operation(self) -> str:
        return self._operation

    async def send(
        self,
        provider: ModelProvider,
        request: ToolCallRequest,
        token: CancellationToken | None = None,
        timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
    ) -> ToolCallResponse:
        """Send ``request`` to ``provider`` and return the accumulated response.

        Raises:
            CancellationError: ``token`` fired before or during the request.
            RequestTimeoutError: The response did not finish within ``timeout_ms``.
            ProviderError: The provider failed to produce a response.
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        token = token or CancellationToken.none()
        if token.is_cancellation_requested:
            raise CancellationError("Request cancelled before dispatch")

        messages = convert_messages(
            request.messages,
            system_role=getattr(provider, "supports_system_role", True),
        )
        linked = CancellationTokenSource.linked(token)
        consumer = asyncio.ensure_future(
            self._consume(provider, messages, request.tools, linked.token)
        )
        timer = asyncio.ensure_future(asyncio.sleep(timeout_ms / 1000))
        cancel_wait = asyncio.ensure_future(token.wait())

        try:
            done, _ = await asyncio.wait(
                {consumer, timer, cancel_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if consumer in done:
                return consumer.result()

            if token.is_cancellation_requested:
                LOGGER.info("%s cancelled while awaiting the response", self._operation)
                raise CancellationError("Request cancelled during dispatch")

            LOGGER.warning(
                "%s abandoned after %dms; late results will be discarded",
                self._operation,
                timeout_ms,
            )
            raise RequestTimeoutError(self._operation, timeout_ms)
        finally:
            timer.cancel()
            cancel_wait.cancel()
            if not consumer.done():
                linked.cancel()
                consumer.add_done_callback(self._discard_late_outcome)
            linked.dispose()

    async def _consume(
        self,
        provider: ModelProvider,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        token: CancellationToken,
    ) -> ToolCallResponse:
        content_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        seen_ids: set[str] = set()
        stream: Any = None

        try:
            stream = provider.send_request(messages, tools, token)
            if inspect.isawaitable(stream):
                stream = await stream
            token.raise_if_cancelled()

            async for chunk in stream:
                if token.is_cancellation_requested:
                    raise CancellationError("Response stream consumption cancelled")
                if isinstance(chunk, TextChunk):
                    if chunk.text:
                        content_parts.append(chunk.text)
                elif isinstance(chunk, ToolCallChunk):
                    call_id = chunk.call_id
                    if not call_id:
                        call_id = _generated_call_id(len(tool_calls), seen_ids)
                        LOGGER.debug("Tool call %s arrived without an id; using %s", chunk.name, call_id)
                    elif call_id in seen_ids:
                        LOGGER.debug("Ignoring repeated tool call chunk %s", call_id)
                        continue
                    seen_ids.add(call_id)
                    tool_calls.append(
                        ToolCall(id=call_id, name=chunk.name, arguments=chunk.arguments or "{}")
                    )
                else:
                    LOGGER.debug("Ignoring unknown stream chunk %r", chunk)
            token.raise_if_cancelled()
        except OrchestrationError:
            raise
        except Exception as exc:
            raise ProviderError(f"Model provider failed: {exc}", cause=exc) from exc
        finally:
            await _close_stream(stream)

        content = "".join(content_parts)
        return ToolCallResponse(
            content=content or None,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    def _discard_late_outcome(self, task: asyncio.Future[ToolCallResponse]) -> None:
        if task.cancelled():
            LOGGER.debug("Abandoned %s was cancelled", self._operation)
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.debug("Discarding late failure from abandoned %s: %s", self._operation, exc)
        else:
            LOGGER.debug("Discarding late response from abandoned %s", self._operation)


def _generated_call_id(index: int, taken: set[str]) -> str:
    call_id = f"call_{index}"
    while call_id in taken:
        index += 1
        call_id = f"call_{index}"
    return call_id


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "aclose", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception as exc:  # pragma: no cover
        LOGGER.debug("Provider stream close failed: %s", exc)
