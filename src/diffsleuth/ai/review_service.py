"""Composition root wiring the orchestration core into a diff review."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Iterable

from ..progress.debounce import DebouncedProgressSink
from ..progress.narration import NarrationAdapter
from ..progress.sink import NullProgressSink, ProgressSink
from ..services.settings import Settings
from .client import AIClient
from .orchestration.cancellation import CancellationToken
from .orchestration.dispatcher import ModelProvider, RequestDispatcher
from .orchestration.errors import OrchestrationError
from .orchestration.orchestrator import ConversationOrchestrator, OrchestratorConfig
from .orchestration.tokens import TiktokenCounter, TokenCounter
from .orchestration.tools.executor import ExecutorConfig, ToolExecutor
from .orchestration.tools.registry import ToolRegistry
from .orchestration.tools.submit_review import SubmitReviewTool
from .orchestration.tools.types import Tool
from .orchestration.types import Conversation, OrchestrationState, ToolCallRecord
from .prompts import review_system_prompt, review_user_prompt
from .subagents.budget import SubagentBudgetManager
from .subagents.executor import SubagentExecutor
from .subagents.tool import RunSubagentTool

__all__ = ["ReviewService", "ReviewResult", "MAIN_ANALYSIS_LABEL"]

LOGGER = logging.getLogger(__name__)

MAIN_ANALYSIS_LABEL = "Main Analysis"


@dataclass(slots=True, frozen=True)
class ReviewResult:
    """Outcome of one review session.

    Attributes:
        analysis: The review text, cancellation sentinel, incomplete notice or
            an error description.
        state: Terminal state of the main conversation.
        iterations: Provider turns issued by the main conversation.
        tool_calls: Tool calls made by the main conversation.
        subagents_spawned: Sub-investigations started during the session.
        error: Failure description when the session failed.
    """

    analysis: str
    state: OrchestrationState
    iterations: int = 0
    tool_calls: tuple[ToolCallRecord, ...] = ()
    subagents_spawned: int = 0
    error: str | None = None

    @property
    def tool_call_count(self) -> int:
        return len(self.tool_calls)

    @property
    def cancelled(self) -> bool:
        return self.state is OrchestrationState.CANCELLED

    @property
    def failed(self) -> bool:
        return self.state is OrchestrationState.FAILED


class ReviewService:
    """Runs diff reviews against a model provider.

    One service runs one analysis at a time: the subagent budget is reset at
    the start of every :meth:`analyze` call and shared with every nested
    investigation spawned during it.

    Example:
        >>> service = ReviewService(settings, tools=[read_file_tool])
        >>> result = await service.analyze(diff_text, sink=console_sink)
        >>> await service.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        provider: ModelProvider | None = None,
        *,
        tools: Iterable[Tool] = (),
        dispatcher: RequestDispatcher | None = None,
        executor_config: ExecutorConfig | None = None,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self._settings = settings.clamped()
        self._provider: ModelProvider = provider or AIClient(self._settings.to_client_settings())
        self._dispatcher = dispatcher or RequestDispatcher()
        self._token_counter = token_counter or TiktokenCounter(self._settings.model)

        self._registry = ToolRegistry()
        for tool in tools:
            self._registry.register(tool)
        self._registry.register(SubmitReviewTool(), allow_override=True)

        self._budget = SubagentBudgetManager(self._settings.max_subagents_per_session)
        self._subagent_executor = SubagentExecutor(
            self._provider,
            self._registry,
            max_iterations=self._settings.max_iterations,
            request_timeout_ms=self._settings.request_timeout_ms,
            executor_config=executor_config,
            dispatcher=self._dispatcher,
            max_context_tokens=self._settings.max_context_tokens,
            token_counter=self._token_counter,
        )
        self._registry.register(
            RunSubagentTool(
                self._subagent_executor,
                self._budget,
                timeout_ms=self._settings.request_timeout_ms,
            ),
            allow_override=True,
        )
        self._tool_executor = ToolExecutor(self._registry, executor_config)
        self._running = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def provider(self) -> ModelProvider:
        return self._provider

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def budget(self) -> SubagentBudgetManager:
        return self._budget

    async def analyze(
        self,
        diff: str,
        *,
        title: str | None = None,
        token: CancellationToken | None = None,
        sink: ProgressSink | None = None,
    ) -> ReviewResult:
        """Review ``diff`` and return the outcome.

        Model timeouts and provider failures are reported in the result rather
        than raised.
        """
        if not diff or not diff.strip():
            raise ValueError("diff must not be empty")
        if self._running:
            raise RuntimeError("an analysis is already running on this service")

        self._running = True
        self._budget.reset()
        self._tool_executor.reset()
        progress = DebouncedProgressSink(sink or NullProgressSink())
        self._subagent_executor.progress_sink = progress

        specs = [tool.spec for tool in self._registry.list_tools()]
        orchestrator = ConversationOrchestrator(
            self._provider,
            self._tool_executor,
            config=OrchestratorConfig(
                system_prompt=review_system_prompt(
                    specs,
                    max_iterations=self._settings.max_iterations,
                    max_subagents=self._budget.max_per_session,
                ),
                max_iterations=self._settings.max_iterations,
                request_timeout_ms=self._settings.request_timeout_ms,
                label=MAIN_ANALYSIS_LABEL,
                max_context_tokens=self._settings.max_context_tokens,
                token_counter=self._token_counter,
            ),
            tools=self._registry.get_openai_tools(),
            dispatcher=self._dispatcher,
        )
        conversation = Conversation()
        conversation.add_user_message(review_user_prompt(diff, title=title))

        LOGGER.info("Starting review with %d tool(s)", len(specs))
        try:
            outcome = await orchestrator.run(conversation, token, NarrationAdapter(progress))
        except OrchestrationError as exc:
            LOGGER.error("Review failed: %s", exc)
            return ReviewResult(
                analysis=f"Error during analysis: {exc}",
                state=OrchestrationState.FAILED,
                iterations=orchestrator.iterations,
                subagents_spawned=self._budget.spawn_count,
                error=str(exc),
            )
        finally:
            progress.flush()
            self._subagent_executor.progress_sink = None
            self._running = False

        LOGGER.info(
            "Review finished: state=%s iterations=%d tool_calls=%d subagents=%d",
            outcome.state.value,
            outcome.iterations,
            len(outcome.tool_calls),
            self._budget.spawn_count,
        )
        return ReviewResult(
            analysis=outcome.content,
            state=outcome.state,
            iterations=outcome.iterations,
            tool_calls=outcome.tool_calls,
            subagents_spawned=self._budget.spawn_count,
        )

    async def aclose(self) -> None:
        """Release the provider's network resources."""
        close = getattr(self._provider, "aclose", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
