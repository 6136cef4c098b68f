"""
QueryPilot Pipeline Orchestrator

LangGraph state machine for one turn:

    supervisor -> discovery_agent | sql_agent | search_agent -> END

The supervisor writes the chosen role into ``conversation.next`` and the
conditional edge follows it. A failed conversation goes straight to END.
Around the graph the pipeline resolves the data source, restores history
and any role waiting on a clarification, enforces the turn timeout, and
persists the turn's messages afterwards.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field

from querypilot.agents.node import AgentNode, LoopState, NodeOutcome
from querypilot.agents.supervisor import SupervisorAgent
from querypilot.config import AgentSettings
from querypilot.conversations.store import ConversationStore
from querypilot.discovery.errors import DataSourceNotFoundError
from querypilot.discovery.service import is_read_only_sql
from querypilot.models.agent import AgentError, ErrorKind
from querypilot.models.state import AgentRole, ConversationState
from querypilot.models.turn import TurnFailure, TurnResult
from querypilot.tools.base import ToolServices
from querypilot.validation.safety import (
    BlockingSafetyIssueError,
    SafetyReport,
    ensure_executable,
)

logger = logging.getLogger(__name__)


class PipelineState(TypedDict, total=False):
    """State threaded through the graph for one turn."""

    conversation: ConversationState
    correlation_id: str
    outcome: NodeOutcome | None


class ExecutionResult(BaseModel):
    """Rows returned by a validated final query."""

    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    execution_time_ms: float
    warnings: list[str] = Field(default_factory=list)


class QueryPilotPipeline:
    """Runs turns through the supervisor and the agent nodes."""

    def __init__(
        self,
        supervisor: SupervisorAgent,
        agents: dict[AgentRole, AgentNode],
        services: ToolServices,
        conversations: ConversationStore,
        settings: AgentSettings | None = None,
    ):
        self.supervisor = supervisor
        self.agents = agents
        self.services = services
        self.conversations = conversations
        self.settings = settings or AgentSettings()
        self.graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(PipelineState)

        workflow.add_node("supervisor", self._run_supervisor)
        for role in self.agents:
            workflow.add_node(str(role), self._agent_runner(role))

        workflow.set_entry_point("supervisor")
        workflow.add_conditional_edges(
            "supervisor",
            self._route_after_supervisor,
            {**{str(role): str(role) for role in self.agents}, "end": END},
        )
        for role in self.agents:
            workflow.add_edge(str(role), END)

        return workflow.compile()

    async def _run_supervisor(self, state: PipelineState) -> dict[str, Any]:
        conversation = state["conversation"]
        if conversation.is_failed:
            return {}
        await self.supervisor(conversation)
        return {"conversation": conversation}

    def _route_after_supervisor(self, state: PipelineState) -> str:
        conversation = state["conversation"]
        if conversation.is_failed or conversation.next not in {str(role) for role in self.agents}:
            return "end"
        return conversation.next

    def _agent_runner(self, role: AgentRole):
        agent = self.agents[role]

        async def run(state: PipelineState) -> dict[str, Any]:
            conversation = state["conversation"]
            outcome = await agent(conversation, correlation_id=state.get("correlation_id"))
            return {"conversation": conversation, "outcome": outcome}

        return run

    # -- turns ------------------------------------------------------------

    async def start_turn(
        self,
        message: str,
        user_id: str,
        data_source_id: int,
        conversation_id: str | None = None,
    ) -> ConversationState:
        """
        Build the conversation state for a new turn.

        Raises:
            DataSourceNotFoundError: The data source is not configured
        """
        record = await self.services.discovery.record(data_source_id)
        conversation_id = conversation_id or uuid.uuid4().hex
        state = ConversationState(
            user_id=user_id,
            data_source_id=data_source_id,
            db_type=str(record.type),
            conversation_id=conversation_id,
            messages=await self.conversations.history(conversation_id),
        )
        state.next = await self.conversations.get_pending_role(conversation_id)
        state.begin_turn(message)
        return state

    async def execute_turn(
        self, state: ConversationState, correlation_id: str | None = None
    ) -> TurnResult:
        """
        Run the graph for a prepared state and persist the turn.

        Cancellation marks the state as cancelled and propagates.
        """
        correlation_id = correlation_id or uuid.uuid4().hex
        start_time = time.perf_counter()
        outcome: NodeOutcome | None = None
        try:
            async with asyncio.timeout(self.settings.turn_timeout_seconds):
                final_state = await self.graph.ainvoke(
                    {"conversation": state, "correlation_id": correlation_id, "outcome": None}
                )
            outcome = final_state.get("outcome")
            if outcome is None:
                result = TurnFailure(
                    error=state.error.kind if state.error else ErrorKind.INTERNAL_ERROR,
                    message=state.error.message if state.error else "No agent handled the turn",
                )
            else:
                result = outcome.result
        except TimeoutError:
            message = f"Turn exceeded {self.settings.turn_timeout_seconds}s"
            state.fail(ErrorKind.TIMEOUT, message)
            result = TurnFailure(error=ErrorKind.TIMEOUT, message=message)
        except asyncio.CancelledError:
            state.fail(ErrorKind.CANCELLED, "Turn cancelled")
            logger.warning(
                "Turn cancelled",
                extra={"conversation_id": state.conversation_id, "correlation_id": correlation_id},
            )
            raise
        except AgentError as e:
            state.fail(e.kind, e.message)
            result = TurnFailure(error=e.kind, message=e.message)

        await self._persist(state, outcome)
        logger.info(
            f"Turn finished with {result.kind} in {(time.perf_counter() - start_time) * 1000:.1f}ms",
            extra={
                "conversation_id": state.conversation_id,
                "correlation_id": correlation_id,
                "data_source_id": state.data_source_id,
            },
        )
        return result

    async def run_turn(
        self,
        message: str,
        user_id: str,
        data_source_id: int,
        conversation_id: str | None = None,
    ) -> TurnResult:
        """Run one user message end to end."""
        try:
            state = await self.start_turn(message, user_id, data_source_id, conversation_id)
        except DataSourceNotFoundError as e:
            logger.warning(str(e), extra={"data_source_id": data_source_id})
            return TurnFailure(error=ErrorKind.DATA_SOURCE_NOT_FOUND, message=str(e))
        return await self.execute_turn(state)

    async def _persist(self, state: ConversationState, outcome: NodeOutcome | None) -> None:
        for message in state.current_turn:
            await self.conversations.append(state.conversation_id, message)
        suspended = outcome is not None and outcome.state == LoopState.SUSPENDED_FOR_CLARIFICATION
        await self.conversations.set_pending_role(
            state.conversation_id, state.next if suspended else None
        )

    # -- execution --------------------------------------------------------

    async def execute_final(self, data_source_id: int, sql: str) -> ExecutionResult:
        """
        Validate a final SQL statement and run it read-only.

        Raises:
            BlockingSafetyIssueError: The statement has blocking issues
            DataSourceNotFoundError: The data source is not configured
        """
        discovery = self.services.discovery
        graph = await discovery.schema_graph(data_source_id)
        report = self.services.validator.validate(
            sql, {table.table_name: table.row_count for table in graph.tables}
        )
        ensure_executable(report)
        if not is_read_only_sql(sql):
            raise BlockingSafetyIssueError(
                SafetyReport(
                    is_safe=False,
                    warnings=report.warnings,
                    blocking_issues=["Only SELECT or WITH statements can be executed"],
                    statement_types=report.statement_types,
                )
            )

        result = await discovery.connections.run_read_only_query(
            data_source_id, sql.strip().rstrip(";")
        )
        return ExecutionResult(
            columns=result.columns,
            rows=result.rows,
            row_count=result.row_count,
            execution_time_ms=result.execution_time_ms,
            warnings=report.warnings,
        )
