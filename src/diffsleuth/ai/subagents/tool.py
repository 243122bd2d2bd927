"""The ``run_subagent`` tool: spawns a focused, isolated investigation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..orchestration.cancellation import CancellationToken, CancellationTokenSource
from ..orchestration.dispatcher import DEFAULT_REQUEST_TIMEOUT_MS
from ..orchestration.tools.types import ToolSpec
from ..orchestration.types import ToolResult
from .budget import SubagentBudgetManager
from .executor import CANCELLED_ERROR, SubagentExecutor, SubagentResult, SubagentTask

__all__ = [
    "RunSubagentTool",
    "RUN_SUBAGENT_TOOL_NAME",
    "MIN_TASK_LENGTH",
    "max_exceeded_message",
    "task_too_short_message",
    "timeout_message",
    "failed_message",
]

LOGGER = logging.getLogger(__name__)

RUN_SUBAGENT_TOOL_NAME = "run_subagent"
MIN_TASK_LENGTH = 30
CANCELLED_MESSAGE = "Subagent was cancelled"

_DESCRIPTION = """Spawn a focused investigation agent for complex analysis.

USE THIS TEMPLATE:
"Task about [module/file]:
Questions:
1. How does [function] work?
2. Does [function] handle [concern]?
Examine: [function names]"

RULES:
- ONE MODULE per subagent (spawn multiple for multiple modules)
- Questions about CURRENT code only (no "changes", "new", "old")
- Subagent CANNOT run tests or execute code

MANDATORY when: 4+ files, security code, 3+ file dependency chains."""


def max_exceeded_message(maximum: int) -> str:
    return (
        f"Maximum subagents ({maximum}) reached for this session. "
        "Use direct tools for remaining investigations."
    )


def task_too_short_message(minimum: int = MIN_TASK_LENGTH) -> str:
    return (
        f"Task too brief ({minimum}+ chars needed). "
        "Include: WHAT to investigate, WHERE to look, WHAT to return."
    )


def timeout_message(timeout_ms: int) -> str:
    return f"Subagent timed out after {timeout_ms / 1000:g}s. Break into smaller, more focused tasks."


def failed_message(error: str) -> str:
    return f"Subagent failed: {error}"


class RunSubagentTool:
    """Delegates an investigation to a :class:`SubagentExecutor`.

    The spawn is checked against the session's :class:`SubagentBudgetManager`.
    The subagent runs under a token linked to the caller's token and to a
    timer, so either user cancellation or the timeout stops it. Rejections,
    timeouts and failures are returned as failed tool results.
    """

    def __init__(
        self,
        executor: SubagentExecutor,
        budget: SubagentBudgetManager,
        *,
        timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
    ) -> None:
        self._executor = executor
        self._budget = budget
        self._timeout_ms = timeout_ms
        self._spec = ToolSpec(
            name=RUN_SUBAGENT_TOOL_NAME,
            description=_DESCRIPTION,
            parameters={
                "type": "object",
                "properties": {
                    "task": {
                        "type": "string",
                        "description": (
                            "Detailed investigation task. Include: "
                            "1) WHAT to investigate (specific question or concern), "
                            "2) WHERE to look (relevant files, directories, symbols), "
                            "3) WHAT to return (expected deliverables). "
                            f"At least {MIN_TASK_LENGTH} characters."
                        ),
                    },
                    "context": {
                        "type": "string",
                        "description": (
                            "Relevant context from your current analysis: code snippets, "
                            "file paths, findings, or symbol names."
                        ),
                    },
                },
                "required": ["task"],
                "additionalProperties": False,
            },
        )

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def spec(self) -> ToolSpec:
        return self._spec

    @property
    def budget(self) -> SubagentBudgetManager:
        return self._budget

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: int) -> None:
        if value <= 0:
            raise ValueError("timeout_ms must be positive")
        self._timeout_ms = value

    async def execute(self, arguments: Mapping[str, Any], *, token: CancellationToken) -> ToolResult:
        task = str(arguments.get("task") or "").strip()
        context = arguments.get("context")
        if len(task) < MIN_TASK_LENGTH:
            return ToolResult.failure(task_too_short_message())

        maximum = self._budget.max_per_session
        if not self._budget.can_spawn():
            LOGGER.warning("Subagent spawn rejected: session limit reached (%d)", maximum)
            return ToolResult.failure(max_exceeded_message(maximum))

        subagent_id = self._budget.record_spawn()
        LOGGER.info(
            "Subagent #%d spawned (%d/%d, %d remaining)",
            subagent_id,
            self._budget.spawn_count,
            maximum,
            self._budget.remaining_budget(),
        )

        source = CancellationTokenSource.linked(token)
        timed_out = False

        def _on_timeout() -> None:
            nonlocal timed_out
            timed_out = True
            source.cancel()

        timer = asyncio.get_running_loop().call_later(self._timeout_ms / 1000, _on_timeout)
        try:
            result = await self._executor.execute(
                SubagentTask(task=task, context=str(context) if context else None),
                source.token,
                subagent_id,
            )
        finally:
            timer.cancel()
            source.dispose()

        if not result.success:
            if timed_out:
                LOGGER.warning("Subagent #%d timed out after %dms", subagent_id, self._timeout_ms)
                return ToolResult.failure(timeout_message(self._timeout_ms))
            if result.error == CANCELLED_ERROR:
                return ToolResult.failure(CANCELLED_MESSAGE)
            return ToolResult.failure(failed_message(result.error or "unknown error"))

        return ToolResult.ok(self.format_result(result, subagent_id))

    @staticmethod
    def format_result(result: SubagentResult, subagent_id: int) -> str:
        """Render a successful investigation for the parent model."""
        return (
            f"## Subagent #{subagent_id} Investigation Complete\n\n"
            f"**Tool calls made:** {result.tool_calls_made}\n\n"
            f"---\n\n{result.response}"
        )
