"""
Conversation State

The single mutable record threaded through supervisor, agent node and
tools for one turn. Mutation goes through accessor methods so the
append-only and status-transition rules hold wherever the state travels.
"""

import re
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from querypilot.llm.models import ToolCall
from querypilot.models.agent import ErrorKind, StateTransitionError

TOOL_CACHE_PREFIX = "tool:"
BLUEPRINT_KEY = "blueprint"
_STEP_RESULT_KEY = re.compile(r"^step_\d+$")


class PlanStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AssignedRole(StrEnum):
    SQL_AGENT = "sql_agent"
    SEARCH_AGENT = "search_agent"
    METADATA_AGENT = "metadata_agent"
    DATA_ANALYST = "data_analyst"


class AgentRole(StrEnum):
    """Agent nodes a turn can be routed to."""

    DISCOVERY = "discovery_agent"
    SQL = "sql_agent"
    SEARCH = "search_agent"


class IntentCategory(StrEnum):
    """Closed label set the supervisor classifies into."""

    DISCOVERY = "discovery_agent"
    GENERATOR = "generator_agent"


_ALLOWED_TRANSITIONS: dict[PlanStatus, set[PlanStatus]] = {
    PlanStatus.PENDING: {PlanStatus.IN_PROGRESS},
    PlanStatus.IN_PROGRESS: {PlanStatus.COMPLETED, PlanStatus.FAILED},
    PlanStatus.COMPLETED: set(),
    PlanStatus.FAILED: set(),
}


class PlanStep(BaseModel):
    task: str
    status: PlanStatus = PlanStatus.PENDING
    assigned_to: AssignedRole
    description: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (PlanStatus.COMPLETED, PlanStatus.FAILED)


class ChatMessage(BaseModel):
    """Role-tagged message in the conversation history."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = Field(None, description="Tool name for tool-result messages")
    node: str | None = Field(None, description="Agent node that produced the message")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TurnErrorInfo(BaseModel):
    kind: ErrorKind
    message: str


class ConversationState(BaseModel):
    """
    State for one in-flight turn.

    ``user_id``, ``data_source_id`` and ``db_type`` are fixed for the turn.
    ``messages`` only grow; ``sql``/``query``/``explanation`` are written at
    most once through :meth:`set_solution`; ``error`` is written at most once
    through :meth:`fail` and stops any further routing.
    """

    user_id: str
    data_source_id: int
    db_type: str
    conversation_id: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    sql: str | None = None
    query: str | None = None
    index: str | None = None
    explanation: str | None = None
    plan: list[PlanStep] = Field(default_factory=list)
    intermediate_results: dict[str, Any] = Field(default_factory=dict)
    next: str | None = None
    error: TurnErrorInfo | None = None
    turn_start: int = 0

    # -- messages ---------------------------------------------------------

    def begin_turn(self, user_message: str) -> ChatMessage:
        """Mark the start of a new turn and append the user's message."""
        self.turn_start = len(self.messages)
        return self.add_message(ChatMessage(role="user", content=user_message))

    def add_message(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    @property
    def history(self) -> list[ChatMessage]:
        """Messages from earlier turns."""
        return self.messages[: self.turn_start]

    @property
    def current_turn(self) -> list[ChatMessage]:
        return self.messages[self.turn_start :]

    @property
    def latest_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""

    # -- solution ---------------------------------------------------------

    @property
    def has_solution(self) -> bool:
        return self.sql is not None or self.query is not None

    def set_solution(
        self,
        explanation: str,
        sql: str | None = None,
        query: str | None = None,
        index: str | None = None,
    ) -> None:
        if self.has_solution:
            raise StateTransitionError("A solution was already submitted for this turn")
        if (sql is None) == (query is None):
            raise StateTransitionError("Exactly one of sql or query must be provided")
        self.sql = sql
        self.query = query
        self.index = index
        self.explanation = explanation

    # -- plan -------------------------------------------------------------

    def add_plan_step(
        self,
        task: str,
        assigned_to: AssignedRole | str,
        description: str | None = None,
    ) -> int:
        self.plan.append(
            PlanStep(task=task, assigned_to=AssignedRole(assigned_to), description=description)
        )
        return len(self.plan) - 1

    def _step(self, index: int) -> PlanStep:
        if index < 0 or index >= len(self.plan):
            raise StateTransitionError(f"No plan step at index {index}")
        return self.plan[index]

    def transition_step(self, index: int, status: PlanStatus | str) -> PlanStep:
        step = self._step(index)
        target = PlanStatus(status)
        if target not in _ALLOWED_TRANSITIONS[step.status]:
            raise StateTransitionError(
                f"Plan step {index} cannot move from {step.status} to {target}"
            )
        step.status = target
        return step

    def start_step(self, index: int) -> PlanStep:
        return self.transition_step(index, PlanStatus.IN_PROGRESS)

    def complete_step(self, index: int, result: Any = None) -> PlanStep:
        step = self.transition_step(index, PlanStatus.COMPLETED)
        if result is not None:
            self.record_result(f"step_{index}", result)
        return step

    def fail_step(self, index: int, reason: str) -> PlanStep:
        step = self.transition_step(index, PlanStatus.FAILED)
        self.record_result(f"step_{index}", {"error": reason})
        return step

    # -- intermediate results ----------------------------------------------

    def record_result(self, key: str, value: Any) -> None:
        self.intermediate_results[key] = value

    @staticmethod
    def is_reserved_key(key: str) -> bool:
        """True for keys written by the plan, blueprint and tool-cache bookkeeping."""
        return (
            key.startswith(TOOL_CACHE_PREFIX)
            or key == BLUEPRINT_KEY
            or _STEP_RESULT_KEY.match(key) is not None
        )

    # -- failure ----------------------------------------------------------

    @property
    def is_failed(self) -> bool:
        return self.error is not None

    def fail(self, kind: ErrorKind, message: str) -> None:
        if self.error is not None:
            return
        self.error = TurnErrorInfo(kind=kind, message=message)
