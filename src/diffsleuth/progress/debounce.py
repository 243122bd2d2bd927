"""Rate limiting for progress updates."""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

from .sink import LineRange, ProgressSink

__all__ = ["DebouncedProgressSink", "DEFAULT_MIN_INTERVAL"]

DEFAULT_MIN_INTERVAL = 0.1


class DebouncedProgressSink:
    """Wraps a sink so that at most one progress line per interval gets through.

    The first progress line in a window is delivered immediately; later ones
    inside the window replace each other as the pending line. Every other
    event except file references delivers the pending line first, so a
    tool-complete notice never overtakes the line that announced the tool.
    Call :meth:`flush` when the run ends.
    """

    def __init__(
        self,
        inner: ProgressSink,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")
        self._inner = inner
        self._min_interval = min_interval
        self._clock = clock
        self._last_emit: float | None = None
        self._pending: str | None = None

    @property
    def inner(self) -> ProgressSink:
        return self._inner

    @property
    def pending(self) -> str | None:
        return self._pending

    def on_progress(self, text: str) -> None:
        now = self._clock()
        if self._last_emit is None or now - self._last_emit >= self._min_interval:
            self._inner.on_progress(text)
            self._last_emit = now
            self._pending = None
        else:
            self._pending = text

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        self._flush_pending()
        self._inner.on_tool_start(name, args)

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        self._flush_pending()
        self._inner.on_tool_complete(name, success, summary)

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        self._inner.on_file_reference(path, line_range)

    def on_thinking(self, text: str) -> None:
        self._flush_pending()
        self._inner.on_thinking(text)

    def on_markdown(self, text: str) -> None:
        self._flush_pending()
        self._inner.on_markdown(text)

    def flush(self) -> None:
        """Deliver the pending progress line, if any."""
        self._flush_pending()

    def _flush_pending(self) -> None:
        text, self._pending = self._pending, None
        if not text:
            return
        self._inner.on_progress(text)
        self._last_emit = self._clock()
