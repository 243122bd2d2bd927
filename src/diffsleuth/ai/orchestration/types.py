"""Core type definitions for the conversation orchestration layer.

This module defines the immutable dataclasses that flow between the request
dispatcher, the tool executor and the orchestrator. Messages, tool calls and
stream chunks are frozen; the :class:`Conversation` is the one mutable,
append-only container and is owned by a single orchestration run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Sequence, Union

__all__ = [
    # Message model
    "MessageRole",
    "Message",
    "ToolCall",
    "Conversation",
    # Dispatcher contract
    "ToolCallRequest",
    "ToolCallResponse",
    "TextChunk",
    "ToolCallChunk",
    "StreamChunk",
    # Tool results and records
    "ToolResult",
    "ToolCallRecord",
    # Orchestration outcome
    "OrchestrationState",
    "OrchestrationResult",
]


# -----------------------------------------------------------------------------
# Message Model
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A single tool invocation requested by the model.

    Attributes:
        id: Opaque identifier, unique within the response that produced it.
        name: Name of the tool to invoke.
        arguments: Serialized JSON argument bundle. Validation is left to the
            tool executor.
    """

    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        """Best-effort decode of :attr:`arguments` for display purposes."""
        try:
            value = json.loads(self.arguments) if self.arguments else {}
        except (json.JSONDecodeError, TypeError):
            return {}
        return value if isinstance(value, dict) else {}

    def to_chat_param(self) -> dict[str, Any]:
        """Convert to the OpenAI ``tool_calls`` entry format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments or "{}"},
        }


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable conversation turn.

    Attributes:
        role: The role of the message sender.
        content: Text content, ``None`` for tool-only assistant turns.
        tool_calls: Tool calls requested by an assistant turn.
        tool_call_id: Back-reference from a tool turn to its ToolCall.
    """

    role: MessageRole
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None

    def __post_init__(self) -> None:
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")
        if self.tool_calls is not None:
            if self.role != "assistant":
                raise ValueError("only assistant messages may carry tool calls")
            if not isinstance(self.tool_calls, tuple):
                object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    def to_chat_param(self) -> dict[str, Any]:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_chat_param() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str | None) -> Message:
        """Create a user message."""
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: Sequence[ToolCall] | None = None,
    ) -> Message:
        """Create an assistant message."""
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> Message:
        """Create a tool result message."""
        return cls(role="tool", content=content, tool_call_id=tool_call_id)


class Conversation:
    """Append-only ordered sequence of :class:`Message` objects.

    A conversation is owned by exactly one orchestration run and is never
    shared between concurrent runs. Tool messages must reference a tool call
    id that appeared on an earlier assistant turn.
    """

    def __init__(self, messages: Sequence[Message] = ()) -> None:
        self._messages: list[Message] = []
        self._known_call_ids: set[str] = set()
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        if message.role == "tool" and message.tool_call_id not in self._known_call_ids:
            raise ValueError(
                f"tool message references unknown tool call id {message.tool_call_id!r}"
            )
        if message.tool_calls:
            self._known_call_ids.update(call.id for call in message.tool_calls)
        self._messages.append(message)

    def add_user_message(self, content: str | None) -> None:
        self.append(Message.user(content))

    def add_assistant_message(
        self,
        content: str | None,
        tool_calls: Sequence[ToolCall] | None = None,
    ) -> None:
        self.append(Message.assistant(content, tool_calls))

    def add_tool_message(self, tool_call_id: str, content: str) -> None:
        self.append(Message.tool(tool_call_id, content))

    def history(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def messages_by_role(self, role: MessageRole) -> tuple[Message, ...]:
        return tuple(message for message in self._messages if message.role == role)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))


# -----------------------------------------------------------------------------
# Dispatcher Contract
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    """One conversation state plus the tool descriptors available this turn."""

    messages: tuple[Message, ...]
    tools: tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        if not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))


@dataclass(slots=True, frozen=True)
class ToolCallResponse:
    """Accumulated model output for one turn.

    A response with neither content nor tool calls is an "empty turn" and is
    treated by the orchestrator as completion with empty output.
    """

    content: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls


@dataclass(slots=True, frozen=True)
class TextChunk:
    """A fragment of assistant text from the provider stream."""

    text: str


@dataclass(slots=True, frozen=True)
class ToolCallChunk:
    """A complete tool call delivered by the provider stream."""

    call_id: str
    name: str
    arguments: str = "{}"


StreamChunk = Union[TextChunk, ToolCallChunk]


# -----------------------------------------------------------------------------
# Tool Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Outcome of a tool execution. Failures are data, never exceptions.

    Attributes:
        success: Whether the tool produced a usable result.
        result: The payload fed back to the model on success.
        error: Failure description when ``success`` is False.
    """

    success: bool
    result: str = ""
    error: str | None = None

    @classmethod
    def ok(cls, result: str) -> ToolResult:
        return cls(success=True, result=result)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(success=False, error=error)

    def to_message_content(self) -> str:
        """Render the result as the content of a tool message."""
        if self.success and self.result:
            return self.result
        if self.success:
            return ""
        return f"Error: {self.error or 'Unknown error'}"


@dataclass(slots=True, frozen=True)
class ToolCallRecord:
    """Record of a tool call executed during orchestration.

    Attributes:
        call_id: The tool call identifier.
        name: Tool name.
        arguments: The serialized arguments the model supplied.
        result: The content appended to the conversation.
        success: Whether the call succeeded.
        error: Error text when the call failed.
        duration_ms: Wall-clock execution time.
    """

    call_id: str
    name: str
    arguments: str
    result: str
    success: bool
    error: str | None = None
    duration_ms: float = 0.0


# -----------------------------------------------------------------------------
# Orchestration Outcome
# -----------------------------------------------------------------------------


class OrchestrationState(str, Enum):
    """Lifecycle states of a conversation orchestration run."""

    IDLE = "idle"
    RUNNING = "running"
    TOOL_DISPATCH = "tool_dispatch"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestrationState.COMPLETED,
            OrchestrationState.CANCELLED,
            OrchestrationState.BUDGET_EXHAUSTED,
            OrchestrationState.FAILED,
        )


@dataclass(slots=True, frozen=True)
class OrchestrationResult:
    """Final outcome of an orchestration run.

    Attributes:
        content: Final answer, cancellation sentinel or incomplete notice.
        state: Terminal state reached.
        iterations: Number of provider turns issued.
        tool_calls: Records of every tool call executed.
    """

    content: str
    state: OrchestrationState
    iterations: int = 0
    tool_calls: tuple[ToolCallRecord, ...] = ()

    @property
    def cancelled(self) -> bool:
        return self.state is OrchestrationState.CANCELLED

    @property
    def completed(self) -> bool:
        return self.state is OrchestrationState.COMPLETED
