"""Progress narration for nested sub-investigations.

Sub-investigation lines are prefixed with a small ordinal badge so they can
be told apart from the main analysis when both streams interleave::

    📂 Read `src/index.ts`
    🔹 #1: 📂 Read `src/auth.ts`
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from ..ai.orchestration.types import ToolCall, ToolResult
from .narration import NarrationAdapter
from .sink import LineRange, ProgressSink

__all__ = ["NestedSessionAdapter", "session_badge"]

# Leading pictograph, symbol or variation selector, as used by tool messages.
_EMOJI_START = re.compile("^[\u2190-\u2bff\ufe0f\U0001f000-\U0001faff]")


def session_badge(session_id: int) -> str:
    return f"🔹 #{session_id}: "


class _PrefixedSink:
    def __init__(self, inner: ProgressSink, prefix: str) -> None:
        self._inner = inner
        self._prefix = prefix

    def on_progress(self, text: str) -> None:
        self._inner.on_progress(f"{self._prefix}{text}")

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        self._inner.on_tool_start(name, args)

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        self._inner.on_tool_complete(name, success, summary)

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        self._inner.on_file_reference(path, line_range)

    def on_thinking(self, text: str) -> None:
        self._inner.on_thinking(f"{self._prefix}{text}")

    def on_markdown(self, text: str) -> None:
        # Only the fragment that opens a tool message carries the badge.
        if _EMOJI_START.match(text):
            self._inner.on_markdown(f"{self._prefix}{text}")
        else:
            self._inner.on_markdown(text)


class NestedSessionAdapter:
    """Orchestrator handler for a sub-investigation's narration."""

    def __init__(self, sink: ProgressSink, session_id: int) -> None:
        self._session_id = session_id
        self._prefix = session_badge(session_id)
        self._narration = NarrationAdapter(_PrefixedSink(sink, self._prefix))

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def sink(self) -> ProgressSink:
        """The prefixing sink that nested narration writes into."""
        return self._narration.sink

    def on_iteration_start(self, current: int, maximum: int) -> None:
        return None

    def on_tool_call_start(self, call: ToolCall, index: int, total: int) -> None:
        self._narration.on_tool_call_start(call, index, total)

    def on_tool_call_complete(self, call: ToolCall, result: ToolResult, duration_ms: float) -> None:
        self._narration.on_tool_call_complete(call, result, duration_ms)
