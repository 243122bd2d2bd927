"""Sub-investigations: budget, executor and the ``run_subagent`` tool."""

from .budget import SubagentBudgetManager, DEFAULT_MAX_SUBAGENTS
from .executor import SubagentExecutor, SubagentResult, SubagentTask, DISALLOWED_TOOLS
from .tool import RunSubagentTool, RUN_SUBAGENT_TOOL_NAME, MIN_TASK_LENGTH

__all__ = [
    "SubagentBudgetManager",
    "DEFAULT_MAX_SUBAGENTS",
    "SubagentExecutor",
    "SubagentResult",
    "SubagentTask",
    "DISALLOWED_TOOLS",
    "RunSubagentTool",
    "RUN_SUBAGENT_TOOL_NAME",
    "MIN_TASK_LENGTH",
]
