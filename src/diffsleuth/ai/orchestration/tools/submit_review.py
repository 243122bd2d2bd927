"""Explicit completion tool for review analysis.

Some models answer with planning text ("I will now review X") and no tool
calls, which would otherwise be taken as the final review. Calling
``submit_review`` is an unambiguous completion signal: the orchestrator ends
the loop and returns the submitted content as the final answer.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..cancellation import CancellationToken
from ..types import ToolResult
from .types import ToolSpec

__all__ = ["SubmitReviewTool", "SUBMIT_REVIEW_TOOL_NAME", "MIN_REVIEW_LENGTH"]

SUBMIT_REVIEW_TOOL_NAME = "submit_review"
MIN_REVIEW_LENGTH = 20


class SubmitReviewTool:
    """Returns the review content unchanged, flagged as a completion."""

    def __init__(self) -> None:
        self._spec = ToolSpec(
            name=SUBMIT_REVIEW_TOOL_NAME,
            description=(
                "Submit your final review. Call this as the FINAL step when all analysis is complete. "
                "The review content should include a summary, findings and recommendations."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "review_content": {
                        "type": "string",
                        "minLength": MIN_REVIEW_LENGTH,
                        "description": "The complete markdown-formatted review.",
                    },
                },
                "required": ["review_content"],
                "additionalProperties": False,
            },
        )

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def spec(self) -> ToolSpec:
        return self._spec

    async def execute(self, arguments: Mapping[str, Any], *, token: CancellationToken) -> ToolResult:
        return ToolResult.ok(str(arguments["review_content"]))
