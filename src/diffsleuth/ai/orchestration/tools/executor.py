"""Tool executor for the orchestration layer.

This module provides the ToolExecutor class that runs tools from a registry.
Arguments arrive as the serialized JSON the model produced; they are decoded
and validated against the tool's JSON schema here, not by the orchestrator.
Every failure (unknown tool, bad arguments, timeout, raised exception) is
returned as a failed :class:`ToolResult` so the model can react to it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from ..cancellation import CancellationToken
from ..errors import CancellationError
from ..types import ToolResult
from .registry import ToolRegistry
from .types import Tool, format_tool_result_content

__all__ = [
    "ToolExecutor",
    "ExecutorConfig",
    "MAX_SCHEMA_ERRORS",
]

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 5


# -----------------------------------------------------------------------------
# Executor Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for the tool executor.

    Attributes:
        default_timeout: Timeout for a single tool execution in seconds.
        max_calls_per_session: Ceiling on tool calls before the executor
            starts refusing them. ``None`` disables the ceiling.
        log_arguments: Whether to log tool arguments (may contain sensitive data).
        log_results: Whether to log tool results.
    """

    default_timeout: float | None = None
    max_calls_per_session: int | None = None
    log_arguments: bool = False
    log_results: bool = False


# -----------------------------------------------------------------------------
# Tool Executor
# -----------------------------------------------------------------------------


class ToolExecutor:
    """Executor for running tools from a registry.

    Example:
        registry = ToolRegistry()
        registry.register(my_tool)

        executor = ToolExecutor(registry)
        result = await executor.execute("my_tool", '{"arg": "value"}')
        if not result.success:
            print(result.error)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ExecutorConfig | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()
        self._call_count = 0

    @property
    def registry(self) -> ToolRegistry:
        """Get the underlying tool registry."""
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        """Get the executor configuration."""
        return self._config

    @property
    def call_count(self) -> int:
        """Number of tool calls accepted since the last reset."""
        return self._call_count

    def reset(self) -> None:
        """Reset the per-session call counter."""
        self._call_count = 0

    async def execute(
        self,
        name: str,
        arguments: str | Mapping[str, Any] | None,
        *,
        token: CancellationToken | None = None,
        call_id: str = "",
        timeout: float | None = None,
    ) -> ToolResult:
        """Execute a tool by name.

        Args:
            name: Name of the tool to execute.
            arguments: Serialized JSON arguments, or an already decoded mapping.
            token: Cancellation token handed to the tool.
            call_id: Optional call ID for tracing.
            timeout: Optional timeout override in seconds.

        Returns:
            A :class:`ToolResult`; this method does not raise for tool failures.
        """
        limit = self._config.max_calls_per_session
        if limit is not None and self._call_count >= limit:
            LOGGER.warning("Tool call %s rejected: session limit of %d reached", name, limit)
            return ToolResult.failure(
                f"Rate limit exceeded: {self._call_count} tool calls made, maximum {limit} "
                "per analysis session. Please refine your analysis approach."
            )
        self._call_count += 1

        tool = self._registry.get(name)
        if tool is None:
            LOGGER.warning("Tool '%s' not found in registry", name)
            return ToolResult.failure(f"Tool '{name}' not found in registry")

        try:
            parsed = _decode_arguments(arguments)
        except ValueError as exc:
            LOGGER.debug("Rejected arguments for tool %s: %s", name, exc)
            return ToolResult.failure(f"Invalid arguments for {name}: {exc}")

        problems = _validate_arguments(tool, parsed)
        if problems:
            LOGGER.debug("Schema validation failed for tool %s: %s", name, problems)
            return ToolResult.failure(f"Invalid arguments for {name}: {'; '.join(problems)}")

        if self._config.log_arguments:
            LOGGER.debug("Executing tool %s (call_id=%s) with arguments: %s", name, call_id, parsed)
        else:
            LOGGER.debug("Executing tool %s (call_id=%s)", name, call_id)

        effective_timeout = timeout if timeout is not None else self._config.default_timeout
        active_token = token or CancellationToken.none()
        start_time = time.perf_counter()
        try:
            if effective_timeout is not None and effective_timeout > 0:
                raw = await asyncio.wait_for(
                    tool.execute(parsed, token=active_token),
                    timeout=effective_timeout,
                )
            else:
                raw = await tool.execute(parsed, token=active_token)
        except asyncio.TimeoutError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s timed out after %.1fms", name, duration_ms)
            if effective_timeout:
                return ToolResult.failure(f"Tool '{name}' timed out after {effective_timeout}s")
            return ToolResult.failure(str(exc) or f"Tool '{name}' timed out")
        except CancellationError:
            LOGGER.info("Tool %s was cancelled", name)
            return ToolResult.failure("cancelled")
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
            return ToolResult.failure(str(exc) or exc.__class__.__name__)

        duration_ms = (time.perf_counter() - start_time) * 1000
        result = raw if isinstance(raw, ToolResult) else ToolResult.ok(format_tool_result_content(raw))
        if self._config.log_results:
            LOGGER.debug("Tool %s completed in %.1fms with result: %s", name, duration_ms, result)
        else:
            LOGGER.debug("Tool %s completed in %.1fms (success=%s)", name, duration_ms, result.success)
        return result


def _decode_arguments(arguments: str | Mapping[str, Any] | None) -> dict[str, Any]:
    if arguments is None:
        return {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    text = arguments.strip()
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"arguments are not valid JSON ({exc.msg})") from exc
    if not isinstance(value, dict):
        raise ValueError("arguments must be a JSON object")
    return value


def _validate_arguments(tool: Tool, arguments: Mapping[str, Any]) -> list[str]:
    schema = tool.spec.parameters
    if not schema:
        return []
    try:
        validator = Draft202012Validator(dict(schema))
    except SchemaError as exc:  # pragma: no cover - tool authoring error
        LOGGER.error("Tool %s has an invalid parameter schema: %s", tool.name, exc.message)
        return [f"tool schema is invalid: {exc.message}"]

    problems: list[str] = []
    for issue in sorted(validator.iter_errors(dict(arguments)), key=lambda item: list(item.path)):
        path = ".".join(str(part) for part in issue.absolute_path)
        problems.append(f"{path}: {issue.message}" if path else issue.message)
        if len(problems) >= MAX_SCHEMA_ERRORS:
            break
    return problems
