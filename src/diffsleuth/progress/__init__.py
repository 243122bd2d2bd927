"""Progress narration, rate limiting and nesting for analysis runs."""

from .sink import LineRange, NullProgressSink, ProgressSink
from .narration import NarrationAdapter, format_tool_start, sanitize
from .debounce import DebouncedProgressSink
from .nested import NestedSessionAdapter, session_badge

__all__ = [
    "LineRange",
    "ProgressSink",
    "NullProgressSink",
    "NarrationAdapter",
    "format_tool_start",
    "sanitize",
    "DebouncedProgressSink",
    "NestedSessionAdapter",
    "session_badge",
]
