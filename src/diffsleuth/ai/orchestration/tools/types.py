"""Tool system types for the orchestration layer.

This module defines the core types used by the tool execution system:
the specification advertised to the model, the :class:`Tool` protocol and a
:class:`SimpleTool` wrapper for plain callables.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

from ..cancellation import CancellationToken
from ..types import ToolResult

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
    "format_tool_result_content",
]


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's parameters.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else {
                    "type": "object",
                    "properties": {},
                },
            },
        }


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

# Synchronous tool handler
ToolHandler = Callable[[Mapping[str, Any]], Any]

# Asynchronous tool handler
AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations.

    ``execute`` may return a :class:`ToolResult` or any value, which the
    executor formats as a successful result. Raised exceptions are converted
    into failed results by the executor.
    """

    @property
    def name(self) -> str:
        """Get the tool's unique name."""
        ...

    @property
    def spec(self) -> ToolSpec:
        """Get the tool's specification."""
        ...

    async def execute(
        self,
        arguments: Mapping[str, Any],
        *,
        token: CancellationToken,
    ) -> Any:
        """Execute the tool with already-validated arguments."""
        ...


# -----------------------------------------------------------------------------
# Simple Tool Implementation
# -----------------------------------------------------------------------------


@dataclass
class SimpleTool:
    """Simple tool implementation wrapping a callable.

    Example:
        def my_handler(args: dict) -> str:
            return f"Hello, {args.get('name', 'World')}!"

        tool = SimpleTool(
            spec=ToolSpec(name="greet", description="Greet someone"),
            handler=my_handler,
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = asyncio.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        """Get the tool's name from its spec."""
        return self.spec.name

    async def execute(
        self,
        arguments: Mapping[str, Any],
        *,
        token: CancellationToken,
    ) -> Any:
        """Execute the tool handler."""
        if self._is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        return self.handler(arguments)


def format_tool_result_content(result: Any) -> str:
    """Format a raw tool return value as message content."""
    if isinstance(result, ToolResult):
        return result.to_message_content()
    if result is None:
        return "null"
    if isinstance(result, str):
        return result
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, (int, float)):
        return str(result)
    if isinstance(result, (dict, list, tuple)):
        try:
            return json.dumps(result, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            return str(result)
    return str(result)
