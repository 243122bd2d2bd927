"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence, Union

from diffsleuth.ai.orchestration.cancellation import CancellationToken
from diffsleuth.ai.orchestration.types import StreamChunk, TextChunk, ToolCall, ToolCallChunk, ToolResult
from diffsleuth.progress.sink import LineRange


# =============================================================================
# Model provider stubs
# =============================================================================


@dataclass
class Hang:
    """Scripted turn that blocks until ``release`` is set or the token fires.

    When released, ``chunks`` are streamed as a normal (late) response.
    """

    release: asyncio.Event | None = None
    chunks: Sequence[StreamChunk] = ()


@dataclass
class ProviderCall:
    messages: list[dict[str, Any]]
    tools: list[Mapping[str, Any]]


Turn = Union[Sequence[StreamChunk], BaseException, Hang, Callable[[], Sequence[StreamChunk]]]


class ScriptedProvider:
    """Model provider replaying scripted turns.

    Each turn is a list of chunks, an exception to raise, a :class:`Hang`, or
    a callable producing chunks (evaluated when the turn is requested).

    Example:
        provider = ScriptedProvider([text_turn("LGTM")])
    """

    def __init__(self, turns: Sequence[Turn] = (), *, supports_system_role: bool = True) -> None:
        self.turns: list[Turn] = list(turns)
        self.supports_system_role = supports_system_role
        self.calls: list[ProviderCall] = []
        self.finished_streams = 0

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def send_request(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        token: CancellationToken,
    ):
        self.calls.append(ProviderCall([dict(m) for m in messages], list(tools)))
        turn: Turn = self.turns.pop(0) if self.turns else [TextChunk("Default response")]
        try:
            if isinstance(turn, BaseException):
                raise turn
            if isinstance(turn, Hang):
                waiters = [asyncio.ensure_future(token.wait())]
                if turn.release is not None:
                    waiters.append(asyncio.ensure_future(turn.release.wait()))
                try:
                    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    for waiter in waiters:
                        waiter.cancel()
                chunks: Sequence[StreamChunk] = turn.chunks
            elif callable(turn):
                chunks = turn()
            else:
                chunks = turn
            for chunk in chunks:
                await asyncio.sleep(0)
                yield chunk
        finally:
            self.finished_streams += 1


class AwaitableProvider(ScriptedProvider):
    """Provider whose ``send_request`` is a coroutine resolving to the stream."""

    async def send_request(self, messages, tools, token):  # type: ignore[override]
        await asyncio.sleep(0)
        return super().send_request(messages, tools, token)


def text_turn(text: str) -> list[StreamChunk]:
    """A turn consisting of streamed text only."""
    if not text:
        return []
    middle = max(1, len(text) // 2)
    return [TextChunk(text[:middle]), TextChunk(text[middle:])] if len(text) > 1 else [TextChunk(text)]


def tool_turn(*calls: tuple[str, str, Mapping[str, Any]], text: str | None = None) -> list[StreamChunk]:
    """A turn requesting tool calls given as ``(call_id, name, arguments)``."""
    chunks: list[StreamChunk] = [TextChunk(text)] if text else []
    for call_id, name, arguments in calls:
        chunks.append(ToolCallChunk(call_id=call_id, name=name, arguments=json.dumps(arguments)))
    return chunks


# =============================================================================
# Tool executor stubs
# =============================================================================


class StubToolExecutor:
    """Tool executor returning canned results and recording calls."""

    def __init__(
        self,
        results: Mapping[str, ToolResult | Callable[[str], ToolResult]] | None = None,
        *,
        on_execute: Callable[[str], None] | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.on_execute = on_execute
        self.calls: list[tuple[str, str, str]] = []

    async def execute(
        self,
        name: str,
        arguments: str,
        *,
        token: CancellationToken | None = None,
        call_id: str = "",
    ) -> ToolResult:
        self.calls.append((name, arguments, call_id))
        if self.on_execute is not None:
            self.on_execute(name)
        await asyncio.sleep(0)
        outcome = self.results.get(name)
        if outcome is None:
            return ToolResult.ok(f"Result for {name}")
        if callable(outcome):
            return outcome(arguments)
        return outcome


# =============================================================================
# Progress and handler recorders
# =============================================================================


@dataclass
class RecordingSink:
    """Progress sink that records every event as a tuple."""

    events: list[tuple[Any, ...]] = field(default_factory=list)

    def on_progress(self, text: str) -> None:
        self.events.append(("progress", text))

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        self.events.append(("tool_start", name, dict(args)))

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        self.events.append(("tool_complete", name, success, summary))

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        self.events.append(("file_reference", path, line_range))

    def on_thinking(self, text: str) -> None:
        self.events.append(("thinking", text))

    def on_markdown(self, text: str) -> None:
        self.events.append(("markdown", text))

    def of_kind(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]

    @property
    def progress(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "progress"]


@dataclass
class RecordingHandler:
    """Orchestrator handler that records lifecycle events."""

    events: list[tuple[Any, ...]] = field(default_factory=list)

    def on_iteration_start(self, current: int, maximum: int) -> None:
        self.events.append(("iteration", current, maximum))

    def on_tool_call_start(self, call: ToolCall, index: int, total: int) -> None:
        self.events.append(("start", call.name, index, total))

    def on_tool_call_complete(self, call: ToolCall, result: ToolResult, duration_ms: float) -> None:
        self.events.append(("complete", call.name, result.success))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
