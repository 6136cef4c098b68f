"""
Data models for QueryPilot.

Conversation state, turn results and the agent error hierarchy.
"""

from querypilot.models.agent import (
    AgentError,
    ClassificationError,
    ErrorKind,
    IterationLimitExceeded,
    ProviderFailure,
    StateTransitionError,
    TurnCancelled,
)
from querypilot.models.state import (
    AgentRole,
    AssignedRole,
    ChatMessage,
    ConversationState,
    IntentCategory,
    PlanStatus,
    PlanStep,
    TurnErrorInfo,
)
from querypilot.models.turn import Clarification, FinalAnswer, TurnFailure, TurnResult

__all__ = [
    "AgentError",
    "AgentRole",
    "AssignedRole",
    "ChatMessage",
    "Clarification",
    "ClassificationError",
    "ConversationState",
    "ErrorKind",
    "FinalAnswer",
    "IntentCategory",
    "IterationLimitExceeded",
    "PlanStatus",
    "PlanStep",
    "ProviderFailure",
    "StateTransitionError",
    "TurnCancelled",
    "TurnErrorInfo",
    "TurnFailure",
    "TurnResult",
]
