"""Tests for prompt templates."""

from __future__ import annotations

from diffsleuth.ai.orchestration.tools import ToolSpec
from diffsleuth.ai.prompts import (
    format_tool_list,
    review_system_prompt,
    review_user_prompt,
    subagent_system_prompt,
    subagent_user_message,
)


SPECS = [
    ToolSpec(name="read_file", description="Read a file.\nSecond line is omitted."),
    ToolSpec(name="run_subagent", description="Spawn a focused investigation agent."),
]


def test_format_tool_list_uses_first_line() -> None:
    assert format_tool_list(SPECS) == (
        "- **read_file**: Read a file.\n"
        "- **run_subagent**: Spawn a focused investigation agent."
    )


def test_format_tool_list_empty() -> None:
    assert format_tool_list([]) == "No tools available."


def test_review_system_prompt_mentions_limits() -> None:
    prompt = review_system_prompt(SPECS, max_iterations=40, max_subagents=7)

    assert "at most 40 turns" in prompt
    assert "at most 7 subagents" in prompt
    assert "submit_review" in prompt


def test_review_system_prompt_without_subagents() -> None:
    prompt = review_system_prompt(SPECS[:1], max_iterations=40, max_subagents=7)

    assert "Sub-investigations" not in prompt


def test_review_user_prompt_wraps_diff() -> None:
    prompt = review_user_prompt("+added\n", title="Add feature")

    assert prompt == "Review the following change: Add feature\n\n```diff\n+added\n```"


def test_subagent_prompts() -> None:
    prompt = subagent_system_prompt("Check auth", SPECS[:1], max_iterations=12, context="  ")

    assert "## Your Task\nCheck auth" in prompt
    assert "No additional context provided." in prompt
    assert "12 turns" in prompt
    assert subagent_user_message("Check auth") == "Please investigate: Check auth"
