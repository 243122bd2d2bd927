"""Prompt templates for diff review and sub-investigations."""

from __future__ import annotations

from typing import Sequence

from .orchestration.tools.types import ToolSpec

__all__ = [
    "review_system_prompt",
    "review_user_prompt",
    "subagent_system_prompt",
    "subagent_user_message",
    "format_tool_list",
]


def format_tool_list(tools: Sequence[ToolSpec]) -> str:
    """One bullet per tool: its name and the first line of its description."""
    if not tools:
        return "No tools available."
    lines = []
    for spec in tools:
        summary = spec.description.strip().splitlines()[0] if spec.description.strip() else ""
        lines.append(f"- **{spec.name}**: {summary}" if summary else f"- **{spec.name}**")
    return "\n".join(lines)


def review_system_prompt(
    tools: Sequence[ToolSpec],
    *,
    max_iterations: int,
    max_subagents: int,
) -> str:
    """System prompt for the top-level review conversation."""
    tool_names = {spec.name for spec in tools}
    subagent_section = ""
    if "run_subagent" in tool_names:
        subagent_section = f"""
## Sub-investigations

Use **run_subagent** for focused investigations that would take many tool
calls: one module per subagent, questions about the current code only. You
may spawn at most {max_subagents} subagents in this session.
"""

    return f"""You are an expert code reviewer. You review a diff, investigate the surrounding code with the available tools, and report problems that matter.

## Available Tools
{format_tool_list(tools)}
{subagent_section}
## Workflow

1. Read the diff and decide which changes need context.
2. Use the tools to check how the changed code is used and what it depends on.
3. Stop investigating once you have enough evidence. You have at most {max_iterations} turns.
4. Call **submit_review** with the complete review as the final step.

## Review Format

- **Summary**: what the change does, in two or three sentences.
- **Findings**: each with a file path, line numbers, severity and a concrete fix.
- **Recommendations**: anything that is not a defect but should change.

Only report issues you can support with evidence from the code."""


def review_user_prompt(diff: str, *, title: str | None = None) -> str:
    """User prompt carrying the diff under review."""
    header = f"Review the following change: {title}" if title else "Review the following change."
    return f"{header}\n\n```diff\n{diff.rstrip()}\n```"


def subagent_system_prompt(
    task: str,
    tools: Sequence[ToolSpec],
    *,
    max_iterations: int,
    context: str | None = None,
) -> str:
    """System prompt for an isolated sub-investigation."""
    context_section = context.strip() if context and context.strip() else "No additional context provided."
    return f"""You are a focused investigation subagent. Investigate one specific question thoroughly and return actionable findings.

## Your Task
{task}

## Context from Parent Analysis
{context_section}

## Available Tools
{format_tool_list(tools)}

## Instructions

1. Identify what needs to be investigated and what deliverables are expected.
2. Start broad (directory listings, symbol overviews), then read the specific code.
3. Trace usages where the impact of a change matters.
4. You have a limited budget of {max_iterations} turns. Prioritize the most useful investigations.

## Result Format

<findings>
Detailed findings with file paths, line numbers and quoted code.
</findings>

<summary>
Two or three sentences on the most important discoveries.
</summary>

<answer>
A direct answer if the task posed a specific question.
</answer>

Focus only on the assigned task. If you cannot find something, explain what you searched."""


def subagent_user_message(task: str) -> str:
    return f"Please investigate: {task}"
