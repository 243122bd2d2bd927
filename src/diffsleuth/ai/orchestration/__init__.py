"""Conversation orchestration core: dispatcher, orchestrator and tools."""

# Core types
from .types import (
    Message,
    MessageRole,
    ToolCall,
    Conversation,
    ToolCallRequest,
    ToolCallResponse,
    TextChunk,
    ToolCallChunk,
    StreamChunk,
    ToolResult,
    ToolCallRecord,
    OrchestrationState,
    OrchestrationResult,
)

# Errors and cancellation
from .errors import (
    OrchestrationError,
    RequestTimeoutError,
    CancellationError,
    ProviderError,
)
from .cancellation import CancellationToken, CancellationTokenSource

# Request dispatcher
from .dispatcher import (
    ModelProvider,
    RequestDispatcher,
    convert_messages,
    DEFAULT_REQUEST_TIMEOUT_MS,
)

# Orchestrator
from .orchestrator import (
    ConversationOrchestrator,
    OrchestratorConfig,
    ToolCallHandler,
    ToolExecutorProtocol,
    CANCELLED_SENTINEL,
    INCOMPLETE_MESSAGE,
    CONTEXT_FULL_MESSAGE,
    DEFAULT_MAX_ITERATIONS,
    is_cancellation_sentinel,
)

# Tool system
from .tools import (
    ToolRegistry,
    ToolSpec,
    Tool,
    SimpleTool,
    ToolExecutor,
    ExecutorConfig,
    SubmitReviewTool,
    SUBMIT_REVIEW_TOOL_NAME,
)

__all__ = [
    # Types
    "Message",
    "MessageRole",
    "ToolCall",
    "Conversation",
    "ToolCallRequest",
    "ToolCallResponse",
    "TextChunk",
    "ToolCallChunk",
    "StreamChunk",
    "ToolResult",
    "ToolCallRecord",
    "OrchestrationState",
    "OrchestrationResult",
    # Errors and cancellation
    "OrchestrationError",
    "RequestTimeoutError",
    "CancellationError",
    "ProviderError",
    "CancellationToken",
    "CancellationTokenSource",
    # Dispatcher
    "ModelProvider",
    "RequestDispatcher",
    "convert_messages",
    "DEFAULT_REQUEST_TIMEOUT_MS",
    # Orchestrator
    "ConversationOrchestrator",
    "OrchestratorConfig",
    "ToolCallHandler",
    "ToolExecutorProtocol",
    "CANCELLED_SENTINEL",
    "INCOMPLETE_MESSAGE",
    "CONTEXT_FULL_MESSAGE",
    "DEFAULT_MAX_ITERATIONS",
    "is_cancellation_sentinel",
    # Tools
    "ToolRegistry",
    "ToolSpec",
    "Tool",
    "SimpleTool",
    "ToolExecutor",
    "ExecutorConfig",
    "SubmitReviewTool",
    "SUBMIT_REVIEW_TOOL_NAME",
]
