"""Narration of orchestrator tool activity as short progress lines.

Fast tools (file reads, listings, symbol lookups) usually finish before the
UI repaints, so they are narrated in past tense when the call starts. Tools
that take seconds (thinking steps, sub-investigations) are narrated in the
present continuous. Iteration-start events are not narrated.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from ..ai.orchestration.types import ToolCall, ToolResult
from .sink import LineRange, ProgressSink

__all__ = [
    "NarrationAdapter",
    "ACTIVITY",
    "MAX_ARGUMENT_LENGTH",
    "format_tool_start",
    "sanitize",
]

LOGGER = logging.getLogger(__name__)

ACTIVITY = {
    "thinking": "💭",
    "searching": "🔍",
    "reading": "📂",
    "analyzing": "🔎",
}

MAX_ARGUMENT_LENGTH = 80
ELLIPSIS = "…"

Formatter = Callable[[Mapping[str, Any]], str]


def sanitize(value: Any, fallback: str) -> str:
    """Make an argument value safe to interpolate inside inline code."""
    if value is None:
        return fallback
    text = " ".join(str(value).split())
    text = text.replace("`", "'")
    if not text:
        return fallback
    if len(text) > MAX_ARGUMENT_LENGTH:
        text = text[: MAX_ARGUMENT_LENGTH - 1].rstrip() + ELLIPSIS
    return text


def _arg(args: Mapping[str, Any], key: str, fallback: str) -> str:
    return sanitize(args.get(key), fallback)


_TOOL_FORMATTERS: dict[str, Formatter] = {
    # Past tense: fast lookups
    "read_file": lambda a: f"{ACTIVITY['reading']} Read `{_arg(a, 'file_path', 'file')}`",
    "list_directory": lambda a: f"{ACTIVITY['reading']} Listed `{_arg(a, 'path', 'directory')}`",
    "find_symbol": lambda a: f"{ACTIVITY['searching']} Found symbol `{_arg(a, 'name_path', 'symbol')}`",
    "find_usages": lambda a: f"{ACTIVITY['analyzing']} Found usages of `{_arg(a, 'symbol_name', 'symbol')}`",
    "find_files_by_pattern": lambda a: (
        f"{ACTIVITY['searching']} Found files matching `{_arg(a, 'pattern', 'pattern')}`"
    ),
    "get_symbols_overview": lambda a: f"{ACTIVITY['analyzing']} Got symbols in `{_arg(a, 'path', 'file')}`",
    "search_for_pattern": lambda a: f"{ACTIVITY['searching']} Searched for `{_arg(a, 'pattern', 'pattern')}`",
    "submit_review": lambda a: "📝 Submitted review",
    # Present continuous: open-ended work
    "run_subagent": lambda a: f"🤖 Running sub-investigation{ELLIPSIS}",
    "think_about_context": lambda a: f"🧠 Reflecting on context{ELLIPSIS}",
    "think_about_investigation": lambda a: f"🧠 Checking investigation progress{ELLIPSIS}",
    "think_about_task": lambda a: f"🧠 Verifying task alignment{ELLIPSIS}",
    "think_about_completion": lambda a: f"🧠 Verifying analysis completeness{ELLIPSIS}",
}


def format_tool_start(name: str, args: Mapping[str, Any]) -> str:
    """Return the progress line for a tool call that is starting."""
    formatter = _TOOL_FORMATTERS.get(name)
    if formatter is not None:
        return formatter(args)
    if name.startswith("think_about_"):
        return f"{ACTIVITY['thinking']} Thinking{ELLIPSIS}"
    return f"🔧 Ran `{sanitize(name, 'tool')}`"


def _line_range(args: Mapping[str, Any]) -> LineRange | None:
    start = args.get("start_line")
    end = args.get("end_line")
    if not isinstance(start, int) or isinstance(start, bool) or start < 1:
        return None
    if not isinstance(end, int) or isinstance(end, bool) or end < start:
        end = None
    return LineRange(start, end)


class NarrationAdapter:
    """Orchestrator handler that narrates tool calls into a progress sink."""

    def __init__(self, sink: ProgressSink) -> None:
        self._sink = sink

    @property
    def sink(self) -> ProgressSink:
        return self._sink

    def on_iteration_start(self, current: int, maximum: int) -> None:
        return None

    def on_tool_call_start(self, call: ToolCall, index: int, total: int) -> None:
        args = call.parsed_arguments()
        self._sink.on_progress(format_tool_start(call.name, args))
        self._sink.on_tool_start(call.name, args)
        if call.name == "read_file":
            path = args.get("file_path")
            if isinstance(path, str) and path.strip():
                self._sink.on_file_reference(path.strip(), _line_range(args))

    def on_tool_call_complete(self, call: ToolCall, result: ToolResult, duration_ms: float) -> None:
        summary = "completed" if result.success else (result.error or "failed")
        LOGGER.debug("Tool %s finished in %.1fms: %s", call.name, duration_ms, summary)
        self._sink.on_tool_complete(call.name, result.success, summary)
