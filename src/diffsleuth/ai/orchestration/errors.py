"""Exception taxonomy for the orchestration layer."""

from __future__ import annotations

__all__ = [
    "OrchestrationError",
    "RequestTimeoutError",
    "CancellationError",
    "ProviderError",
]


class OrchestrationError(Exception):
    """Base class for errors raised by the orchestration layer."""


class RequestTimeoutError(OrchestrationError, TimeoutError):
    """Raised when an operation exceeds its time budget.

    Attributes:
        operation: Name of the operation that timed out.
        timeout_ms: The configured budget in milliseconds.
    """

    def __init__(self, operation: str, timeout_ms: int) -> None:
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"{operation} timed out after {timeout_ms}ms")


class CancellationError(OrchestrationError):
    """Raised when an external or derived cancellation token fires."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class ProviderError(OrchestrationError):
    """Raised when the model provider itself fails (network, auth, quota).

    The original exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)
