"""Runs one isolated sub-investigation through a nested orchestrator."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Sequence

from ...progress.nested import NestedSessionAdapter
from ...progress.sink import ProgressSink
from ..orchestration.cancellation import CancellationToken
from ..orchestration.dispatcher import DEFAULT_REQUEST_TIMEOUT_MS, ModelProvider, RequestDispatcher
from ..orchestration.orchestrator import (
    DEFAULT_MAX_ITERATIONS,
    ConversationOrchestrator,
    OrchestratorConfig,
)
from ..orchestration.tokens import TokenCounter
from ..orchestration.tools.executor import ExecutorConfig, ToolExecutor
from ..orchestration.tools.registry import ToolRegistry
from ..orchestration.types import Conversation, OrchestrationState, ToolCallRecord
from ..prompts import subagent_system_prompt, subagent_user_message

__all__ = [
    "SubagentExecutor",
    "SubagentTask",
    "SubagentResult",
    "DISALLOWED_TOOLS",
    "CANCELLED_ERROR",
]

LOGGER = logging.getLogger(__name__)

DISALLOWED_TOOLS: tuple[str, ...] = ("run_subagent",)
CANCELLED_ERROR = "cancelled"
TASK_LABEL_LENGTH = 50


@dataclass(slots=True, frozen=True)
class SubagentTask:
    """An investigation handed to a subagent.

    Attributes:
        task: What to investigate, where to look and what to return.
        context: Findings from the parent analysis, if any.
        max_iterations: Turn budget override for this subagent.
    """

    task: str
    context: str | None = None
    max_iterations: int | None = None


@dataclass(slots=True, frozen=True)
class SubagentResult:
    """Outcome of a sub-investigation."""

    success: bool
    response: str
    tool_calls_made: int = 0
    error: str | None = None
    state: OrchestrationState | None = None
    tool_calls: tuple[ToolCallRecord, ...] = ()


def _task_label(task: str) -> str:
    text = " ".join(task.split())
    if len(text) > TASK_LABEL_LENGTH:
        return text[:TASK_LABEL_LENGTH].rstrip() + "..."
    return text


class SubagentExecutor:
    """Creates an isolated conversation and orchestrator for each investigation.

    The subagent sees the parent's tools minus :data:`DISALLOWED_TOOLS`, so it
    can never spawn subagents of its own. Progress goes to ``progress_sink``
    through a :class:`NestedSessionAdapter`.
    """

    def __init__(
        self,
        provider: ModelProvider,
        registry: ToolRegistry,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        executor_config: ExecutorConfig | None = None,
        dispatcher: RequestDispatcher | None = None,
        progress_sink: ProgressSink | None = None,
        max_context_tokens: int | None = None,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._max_iterations = max_iterations
        self._request_timeout_ms = request_timeout_ms
        self._executor_config = executor_config
        self._dispatcher = dispatcher
        self.progress_sink = progress_sink
        self._max_context_tokens = max_context_tokens
        self._token_counter = token_counter

    @property
    def disallowed_tools(self) -> Sequence[str]:
        return DISALLOWED_TOOLS

    async def execute(
        self,
        task: SubagentTask,
        token: CancellationToken,
        subagent_id: int,
    ) -> SubagentResult:
        """Run the investigation and return its raw response.

        Failures are reported in the result, never raised. A cancelled run is
        reported with ``error == "cancelled"``.
        """
        label = f"Subagent #{subagent_id}"
        start = time.perf_counter()
        LOGGER.info("[%s] Starting: \"%s\"", label, _task_label(task.task))

        registry = self._registry.filtered(exclude=DISALLOWED_TOOLS)
        specs = [tool.spec for tool in registry.list_tools()]
        max_iterations = task.max_iterations or self._max_iterations
        orchestrator = ConversationOrchestrator(
            self._provider,
            ToolExecutor(registry, self._executor_config),
            config=OrchestratorConfig(
                system_prompt=subagent_system_prompt(
                    task.task,
                    specs,
                    max_iterations=max_iterations,
                    context=task.context,
                ),
                max_iterations=max_iterations,
                request_timeout_ms=self._request_timeout_ms,
                label=label,
                max_context_tokens=self._max_context_tokens,
                token_counter=self._token_counter,
            ),
            tools=registry.get_openai_tools(),
            dispatcher=self._dispatcher,
        )
        conversation = Conversation()
        conversation.add_user_message(subagent_user_message(task.task))
        handler = NestedSessionAdapter(self.progress_sink, subagent_id) if self.progress_sink else None

        try:
            outcome = await orchestrator.run(conversation, token, handler)
        except Exception as exc:
            LOGGER.error("[%s] Failed: %s", label, exc)
            return SubagentResult(
                success=False,
                response="",
                error=str(exc) or exc.__class__.__name__,
                state=orchestrator.state,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        made = len(outcome.tool_calls)
        if outcome.cancelled:
            LOGGER.info("[%s] Cancelled after %.0fms", label, duration_ms)
            return SubagentResult(
                success=False,
                response="",
                tool_calls_made=made,
                error=CANCELLED_ERROR,
                state=outcome.state,
                tool_calls=outcome.tool_calls,
            )

        LOGGER.info("[%s] Completed in %.0fms with %d tool calls", label, duration_ms, made)
        return SubagentResult(
            success=True,
            response=outcome.content,
            tool_calls_made=made,
            state=outcome.state,
            tool_calls=outcome.tool_calls,
        )
