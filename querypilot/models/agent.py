"""
Agent Errors

Exception hierarchy for failures that end or redirect a turn. Failures the
model can react to (bad tool arguments, unknown tables, unsafe SQL) live in
their own layers and are fed back into the loop as tool results; the errors
here are the ones the orchestration layer has to handle itself.
"""

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Turn-fatal error categories surfaced to callers."""

    ITERATION_LIMIT_EXCEEDED = "iteration_limit_exceeded"
    PROVIDER_FAILURE = "provider_failure"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    DATA_SOURCE_NOT_FOUND = "data_source_not_found"
    INTERNAL_ERROR = "internal_error"


class AgentError(Exception):
    """
    Custom exception for agent execution errors.

    Attributes:
        agent: Name of the agent that raised the error
        message: Error description
        recoverable: Whether the caller can continue (e.g. via a fallback)
        context: Additional context for debugging
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(
        self,
        agent: str,
        message: str,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        self.agent = agent
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{agent}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/API responses."""
        return {
            "agent": self.agent,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
            "kind": str(self.kind),
        }


class ClassificationError(AgentError):
    """Supervisor output fell outside the closed label set."""

    def __init__(self, agent: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(agent, message, recoverable=True, context=context)


class IterationLimitExceeded(AgentError):
    """The agent loop used up its model round-trip budget."""

    kind = ErrorKind.ITERATION_LIMIT_EXCEEDED

    def __init__(self, agent: str, limit: int, context: dict[str, Any] | None = None):
        self.limit = limit
        super().__init__(
            agent,
            f"Exceeded {limit} model round-trips without a final answer",
            recoverable=False,
            context=context,
        )


class ProviderFailure(AgentError):
    """The language model provider kept failing after bounded retries."""

    kind = ErrorKind.PROVIDER_FAILURE

    def __init__(
        self,
        agent: str,
        message: str,
        attempts: int,
        context: dict[str, Any] | None = None,
    ):
        self.attempts = attempts
        super().__init__(agent, message, recoverable=False, context=context)


class TurnCancelled(AgentError):
    """The turn was aborted before it produced a result."""

    kind = ErrorKind.CANCELLED

    def __init__(self, agent: str, message: str = "Turn cancelled"):
        super().__init__(agent, message, recoverable=False)


class StateTransitionError(Exception):
    """Illegal mutation of conversation state (plan status, solution, error)."""
