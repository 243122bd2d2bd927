"""Tool registry for the orchestration layer.

This module provides a registry for managing tool registrations,
allowing tools to be registered, retrieved, listed and filtered.
"""

from __future__ import annotations

import logging
from typing import Any, Collection

from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec

__all__ = [
    "ToolRegistry",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    """Raised when a requested tool is not found in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found in registry")


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for managing tool registrations.

    Example:
        registry = ToolRegistry()
        registry.register(SubmitReviewTool())
        registry.register_function(
            spec=ToolSpec(name="greet", description="Greet"),
            handler=lambda args: f"Hello, {args['name']}!",
        )
        registry.get_openai_tools()
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool, *, allow_override: bool = False) -> Tool:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        name = tool.name
        if name in self._tools and not allow_override:
            raise DuplicateToolError(name)
        self._tools[name] = tool
        LOGGER.debug("Registered tool: %s", name)
        return tool

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        allow_override: bool = False,
    ) -> Tool:
        """Register a plain function (sync or async) as a tool."""
        return self.register(SimpleTool(spec=spec, handler=handler), allow_override=allow_override)

    def unregister(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_required(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool has that name.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def list_names(self) -> list[str]:
        return list(self._tools)

    def get_openai_tools(self) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI format, in registration order."""
        return [tool.spec.to_openai_tool() for tool in self._tools.values()]

    def filtered(self, *, exclude: Collection[str]) -> ToolRegistry:
        """Return a new registry without the tools named in ``exclude``."""
        registry = ToolRegistry()
        for name, tool in self._tools.items():
            if name not in exclude:
                registry.register(tool)
        return registry

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
