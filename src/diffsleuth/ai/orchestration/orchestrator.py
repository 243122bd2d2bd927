"""Conversation orchestrator: the iterate-call-tool-observe loop.

The orchestrator sends the conversation to the request dispatcher, interprets
the response and either finishes (no tool calls, or a successful call to the
completion tool) or executes the requested tool calls one at a time, appends
their results and goes round again. The loop is bounded by
``max_iterations`` provider turns and stops at every suspension point when
the cancellation token fires. When the prompt outgrows ``max_context_tokens``
the model is asked once, through an appended user turn, for its final answer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from .cancellation import CancellationToken
from .dispatcher import DEFAULT_REQUEST_TIMEOUT_MS, ModelProvider, RequestDispatcher
from .errors import CancellationError
from .tokens import TokenCounter, count_message_tokens
from .tools.submit_review import SUBMIT_REVIEW_TOOL_NAME
from .types import (
    Conversation,
    Message,
    OrchestrationResult,
    OrchestrationState,
    ToolCall,
    ToolCallRecord,
    ToolCallRequest,
    ToolResult,
)

__all__ = [
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "ToolCallHandler",
    "ToolExecutorProtocol",
    "CANCELLED_SENTINEL",
    "INCOMPLETE_MESSAGE",
    "CONTEXT_FULL_MESSAGE",
    "DEFAULT_MAX_ITERATIONS",
    "is_cancellation_sentinel",
]

LOGGER = logging.getLogger(__name__)

CANCELLED_SENTINEL = "Conversation cancelled by user"
INCOMPLETE_MESSAGE = "Conversation reached maximum iterations. The conversation may be incomplete."
CONTEXT_FULL_MESSAGE = (
    "Context window is full. Please provide your final analysis based on the information "
    "you have gathered so far."
)
DEFAULT_MAX_ITERATIONS = 100


def is_cancellation_sentinel(text: str | None) -> bool:
    """Return True when ``text`` is the orchestrator's cancellation result."""
    return text == CANCELLED_SENTINEL


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class ToolExecutorProtocol(Protocol):
    """What the orchestrator needs from a tool executor.

    Tool failures must be reported as failed :class:`ToolResult` values.
    """

    async def execute(
        self,
        name: str,
        arguments: str,
        *,
        token: CancellationToken | None = None,
        call_id: str = "",
    ) -> ToolResult:
        ...


class ToolCallHandler(Protocol):
    """Lifecycle events emitted by the orchestrator.

    Every method is optional; handlers only implement what they need.
    """

    def on_iteration_start(self, current: int, maximum: int) -> None:
        ...

    def on_tool_call_start(self, call: ToolCall, index: int, total: int) -> None:
        ...

    def on_tool_call_complete(self, call: ToolCall, result: ToolResult, duration_ms: float) -> None:
        ...


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Configuration for one orchestration run.

    Attributes:
        system_prompt: Prepended to every request; not stored in the conversation.
        max_iterations: Maximum provider turns before the run gives up.
        request_timeout_ms: Per-request timeout handed to the dispatcher.
        label: Log prefix, e.g. ``"Main Analysis"`` or ``"Subagent #1"``.
        completion_tool_name: Tool whose successful result ends the run.
        max_context_tokens: Prompt size at which the model is asked for its
            final answer. The guard is off without a ``token_counter``.
        token_counter: Counts prompt tokens for the context-window guard.
    """

    system_prompt: str | None = None
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    label: str | None = None
    completion_tool_name: str | None = SUBMIT_REVIEW_TOOL_NAME
    max_context_tokens: int | None = None
    token_counter: TokenCounter | None = None

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.request_timeout_ms <= 0:
            raise ValueError("request_timeout_ms must be positive")
        if self.max_context_tokens is not None and self.max_context_tokens <= 0:
            raise ValueError("max_context_tokens must be positive")


# -----------------------------------------------------------------------------
# Orchestrator
# -----------------------------------------------------------------------------


class ConversationOrchestrator:
    """Runs a tool-calling conversation until completion.

    Used for the main analysis and, with a filtered tool set, for every
    sub-investigation.

    Example:
        >>> orchestrator = ConversationOrchestrator(provider, executor, tools=specs)
        >>> result = await orchestrator.run(conversation, token, handler)
        >>> result.state
        <OrchestrationState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        provider: ModelProvider,
        tool_executor: ToolExecutorProtocol,
        *,
        config: OrchestratorConfig | None = None,
        tools: Sequence[Mapping[str, Any]] = (),
        dispatcher: RequestDispatcher | None = None,
    ) -> None:
        self._provider = provider
        self._tool_executor = tool_executor
        self._config = config or OrchestratorConfig()
        self._tools = tuple(tools)
        self._dispatcher = dispatcher or RequestDispatcher()
        self._state = OrchestrationState.IDLE
        self._iterations = 0

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def state(self) -> OrchestrationState:
        """State of the current or most recent run."""
        return self._state

    @property
    def iterations(self) -> int:
        """Provider turns issued by the current or most recent run."""
        return self._iterations

    @property
    def _log_prefix(self) -> str:
        return f"[{self._config.label}]" if self._config.label else "[Conversation]"

    async def run(
        self,
        conversation: Conversation,
        token: CancellationToken | None = None,
        handler: ToolCallHandler | None = None,
    ) -> OrchestrationResult:
        """Execute the conversation loop.

        Returns:
            The final answer (``COMPLETED``), :data:`CANCELLED_SENTINEL`
            (``CANCELLED``) or :data:`INCOMPLETE_MESSAGE` (``BUDGET_EXHAUSTED``).

        Raises:
            RequestTimeoutError: A provider request exceeded its timeout.
            ProviderError: The model provider failed.
        """
        if self._state in (OrchestrationState.RUNNING, OrchestrationState.TOOL_DISPATCH):
            raise RuntimeError("orchestrator is already running")

        token = token or CancellationToken.none()
        prefix = self._log_prefix
        max_iterations = self._config.max_iterations
        records: list[ToolCallRecord] = []
        final_answer_requested = False
        self._iterations = 0
        self._state = OrchestrationState.RUNNING

        while self._iterations < max_iterations:
            turn = self._iterations + 1
            if token.is_cancellation_requested:
                LOGGER.info("%s Cancelled before iteration %d", prefix, turn)
                return self._finish_cancelled(records)

            LOGGER.info("%s Iteration %d/%d", prefix, turn, max_iterations)
            _notify(handler, "on_iteration_start", turn, max_iterations)
            self._state = OrchestrationState.RUNNING

            messages = self._prepare_messages(conversation)
            if not final_answer_requested and self._context_is_full(messages):
                conversation.add_user_message(CONTEXT_FULL_MESSAGE)
                final_answer_requested = True
                messages = self._prepare_messages(conversation)

            request = ToolCallRequest(messages=messages, tools=self._tools)
            self._iterations = turn
            try:
                response = await self._dispatcher.send(
                    self._provider,
                    request,
                    token,
                    self._config.request_timeout_ms,
                )
            except CancellationError:
                LOGGER.info("%s Cancelled during iteration %d", prefix, turn)
                return self._finish_cancelled(records)
            except Exception as exc:
                self._state = OrchestrationState.FAILED
                LOGGER.error("%s Error in iteration %d: %s", prefix, turn, exc)
                raise

            if not response.tool_calls:
                conversation.add_assistant_message(response.content)
                if response.is_empty:
                    LOGGER.warning("%s Model returned an empty turn; treating as completion", prefix)
                LOGGER.info("%s Completed successfully", prefix)
                return self._finish(
                    response.content or "",
                    OrchestrationState.COMPLETED,
                    records,
                )

            conversation.add_assistant_message(response.content, response.tool_calls)
            self._state = OrchestrationState.TOOL_DISPATCH
            calls = response.tool_calls
            LOGGER.info(
                "%s Executing %d tool(s): %s",
                prefix,
                len(calls),
                ", ".join(call.name for call in calls),
            )

            for index, call in enumerate(calls):
                if token.is_cancellation_requested:
                    LOGGER.info("%s Cancelled before tool call %s", prefix, call.name)
                    return self._finish_cancelled(records)

                _notify(handler, "on_tool_call_start", call, index, len(calls))
                result, duration_ms = await self._execute_tool(call, token)
                content = result.to_message_content()
                conversation.add_tool_message(call.id, content)
                records.append(
                    ToolCallRecord(
                        call_id=call.id,
                        name=call.name,
                        arguments=call.arguments,
                        result=content,
                        success=result.success,
                        error=result.error,
                        duration_ms=duration_ms,
                    )
                )
                _notify(handler, "on_tool_call_complete", call, result, duration_ms)

                if result.success and call.name == self._config.completion_tool_name:
                    LOGGER.info("%s Completed via %s", prefix, call.name)
                    return self._finish(result.result, OrchestrationState.COMPLETED, records)

        LOGGER.warning("%s Reached maximum iterations (%d)", prefix, max_iterations)
        return self._finish(INCOMPLETE_MESSAGE, OrchestrationState.BUDGET_EXHAUSTED, records)

    def _prepare_messages(self, conversation: Conversation) -> tuple[Message, ...]:
        history = conversation.history()
        if self._config.system_prompt:
            return (Message.system(self._config.system_prompt), *history)
        return history

    def _context_is_full(self, messages: Sequence[Message]) -> bool:
        limit = self._config.max_context_tokens
        counter = self._config.token_counter
        if limit is None or counter is None:
            return False
        used = count_message_tokens(messages, counter)
        if used < limit:
            return False
        LOGGER.warning(
            "%s Context window is full (%d/%d tokens); requesting final answer",
            self._log_prefix,
            used,
            limit,
        )
        return True

    async def _execute_tool(self, call: ToolCall, token: CancellationToken) -> tuple[ToolResult, float]:
        start = time.perf_counter()
        try:
            result = await self._tool_executor.execute(
                call.name,
                call.arguments,
                token=token,
                call_id=call.id,
            )
        except Exception as exc:
            LOGGER.warning("%s Tool executor raised for %s: %s", self._log_prefix, call.name, exc)
            result = ToolResult.failure(str(exc) or exc.__class__.__name__)
        return result, (time.perf_counter() - start) * 1000

    def _finish_cancelled(self, records: list[ToolCallRecord]) -> OrchestrationResult:
        return self._finish(CANCELLED_SENTINEL, OrchestrationState.CANCELLED, records)

    def _finish(
        self,
        content: str,
        state: OrchestrationState,
        records: list[ToolCallRecord],
    ) -> OrchestrationResult:
        self._state = state
        return OrchestrationResult(
            content=content,
            state=state,
            iterations=self._iterations,
            tool_calls=tuple(records),
        )


def _notify(handler: Any, method: str, *args: Any) -> None:
    callback = getattr(handler, method, None) if handler is not None else None
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        LOGGER.debug("Handler %s raised exception", method, exc_info=True)
