"""Tool system for the orchestration layer.

This package provides the tool registry, executor, and related types
for managing and executing tools called by the model.

Example:
    from diffsleuth.ai.orchestration.tools import (
        ToolRegistry,
        ToolExecutor,
        ToolSpec,
    )

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="greet", description="Greet someone"),
        handler=lambda args: f"Hello, {args.get('name', 'World')}!",
    )

    executor = ToolExecutor(registry)
    result = await executor.execute("greet", '{"name": "Alice"}')
"""

from .types import (
    Tool,
    ToolSpec,
    ToolHandler,
    AsyncToolHandler,
    SimpleTool,
    format_tool_result_content,
)

from .registry import (
    ToolRegistry,
    DuplicateToolError,
    ToolNotFoundError,
)

from .executor import (
    ToolExecutor,
    ExecutorConfig,
)

from .submit_review import SubmitReviewTool, SUBMIT_REVIEW_TOOL_NAME

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "SimpleTool",
    "format_tool_result_content",
    # registry.py
    "ToolRegistry",
    "DuplicateToolError",
    "ToolNotFoundError",
    # executor.py
    "ToolExecutor",
    "ExecutorConfig",
    # submit_review.py
    "SubmitReviewTool",
    "SUBMIT_REVIEW_TOOL_NAME",
]
