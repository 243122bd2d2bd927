"""Tests for orchestration value types and the conversation container."""

from __future__ import annotations

import pytest

from diffsleuth.ai.orchestration.types import (
    Conversation,
    Message,
    OrchestrationResult,
    OrchestrationState,
    ToolCall,
    ToolCallResponse,
    ToolResult,
)


class TestToolCall:
    """Tests for ToolCall."""

    def test_parsed_arguments(self):
        assert ToolCall("c1", "read_file", '{"file_path": "a"}').parsed_arguments() == {"file_path": "a"}

    @pytest.mark.parametrize("arguments", ["", "{bad", "[1, 2]", "null"])
    def test_parsed_arguments_falls_back_to_empty(self, arguments):
        """Anything that is not a JSON object decodes to an empty dict."""
        assert ToolCall("c1", "read_file", arguments).parsed_arguments() == {}

    def test_chat_param(self):
        assert ToolCall("c1", "read_file", "").to_chat_param() == {
            "id": "c1",
            "type": "function",
            "function": {"name": "read_file", "arguments": "{}"},
        }


class TestMessage:
    """Tests for Message invariants."""

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValueError):
            Message(role="tool", content="x")

    def test_only_assistant_carries_tool_calls(self):
        with pytest.raises(ValueError):
            Message(role="user", content="x", tool_calls=(ToolCall("c1", "t"),))

    def test_tool_calls_normalized_to_tuple(self):
        message = Message(role="assistant", tool_calls=[ToolCall("c1", "t")])  # type: ignore[arg-type]

        assert isinstance(message.tool_calls, tuple)

    def test_assistant_without_calls_has_none(self):
        assert Message.assistant("text", []).tool_calls is None

    def test_frozen(self):
        message = Message.user("hi")

        with pytest.raises(AttributeError):
            message.content = "changed"  # type: ignore[misc]


class TestConversation:
    """Tests for Conversation."""

    def test_append_order_and_queries(self):
        conversation = Conversation()
        conversation.add_user_message("review")
        conversation.add_assistant_message(None, [ToolCall("c1", "read_file")])
        conversation.add_tool_message("c1", "contents")

        assert len(conversation) == 3
        assert [m.role for m in conversation] == ["user", "assistant", "tool"]
        assert conversation.last_message().content == "contents"
        assert len(conversation.messages_by_role("tool")) == 1

    def test_tool_message_needs_known_call(self):
        """Tool results must answer an earlier tool call."""
        conversation = Conversation([Message.user("hi")])

        with pytest.raises(ValueError):
            conversation.add_tool_message("ghost", "x")

    def test_history_is_a_snapshot(self):
        conversation = Conversation([Message.user("hi")])
        history = conversation.history()

        conversation.add_assistant_message("hello")

        assert len(history) == 1
        assert len(conversation.history()) == 2

    def test_empty_conversation(self):
        assert Conversation().last_message() is None


class TestToolResult:
    """Tests for ToolResult rendering."""

    def test_success_content(self):
        assert ToolResult.ok("data").to_message_content() == "data"
        assert ToolResult.ok("").to_message_content() == ""

    def test_failure_content(self):
        assert ToolResult.failure("File not found").to_message_content() == "Error: File not found"
        assert ToolResult(success=False).to_message_content() == "Error: Unknown error"


class TestResponsesAndResults:
    """Tests for ToolCallResponse and OrchestrationResult."""

    def test_empty_response(self):
        assert ToolCallResponse().is_empty
        assert not ToolCallResponse(content="x").is_empty
        assert ToolCallResponse(tool_calls=(ToolCall("c1", "t"),)).has_tool_calls

    def test_result_flags(self):
        assert OrchestrationResult("x", OrchestrationState.CANCELLED).cancelled
        assert OrchestrationResult("x", OrchestrationState.COMPLETED).completed
        assert not OrchestrationResult("x", OrchestrationState.BUDGET_EXHAUSTED).completed

    @pytest.mark.parametrize(
        "state,terminal",
        [
            (OrchestrationState.IDLE, False),
            (OrchestrationState.RUNNING, False),
            (OrchestrationState.TOOL_DISPATCH, False),
            (OrchestrationState.COMPLETED, True),
            (OrchestrationState.CANCELLED, True),
            (OrchestrationState.BUDGET_EXHAUSTED, True),
            (OrchestrationState.FAILED, True),
        ],
    )
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal
