"""Progress sink protocol shared by the narration, debounce and UI layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

__all__ = ["LineRange", "ProgressSink", "NullProgressSink"]


@dataclass(slots=True, frozen=True)
class LineRange:
    """1-based inclusive line span attached to a file reference."""

    start: int
    end: int | None = None

    def __post_init__(self) -> None:
        if self.start < 1:
            raise ValueError("line numbers start at 1")
        if self.end is not None and self.end < self.start:
            raise ValueError("end line precedes start line")

    def __str__(self) -> str:
        if self.end is None or self.end == self.start:
            return f"L{self.start}"
        return f"L{self.start}-L{self.end}"


@runtime_checkable
class ProgressSink(Protocol):
    """Receiver of human-readable progress for a running analysis."""

    def on_progress(self, text: str) -> None:
        ...

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        ...

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        ...

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        ...

    def on_thinking(self, text: str) -> None:
        ...

    def on_markdown(self, text: str) -> None:
        ...


class NullProgressSink:
    """Sink that discards everything."""

    def on_progress(self, text: str) -> None:
        pass

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        pass

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        pass

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        pass

    def on_thinking(self, text: str) -> None:
        pass

    def on_markdown(self, text: str) -> None:
        pass
