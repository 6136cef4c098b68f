"""
Agent Node

Runs the tool-invocation loop for one agent role:

    AWAITING_MODEL -> TOOL_CALL_REQUESTED -> TOOL_EXECUTING -> AWAITING_MODEL
                   -> FINAL_ANSWER | SUSPENDED_FOR_CLARIFICATION | FAILED

The node composes its skills into one system prompt and one tool set,
then asks the model for the next step until it answers in plain text,
submits a solution, asks the user a clarifying question, or runs out of
round-trips. Tool failures never leave the loop; they are appended as
tool results so the model can react to them.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from querypilot.agents.base import BaseAgent
from querypilot.config import AgentSettings
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMMessage, LLMRequest, ToolCall
from querypilot.models.agent import IterationLimitExceeded, ProviderFailure
from querypilot.models.state import (
    TOOL_CACHE_PREFIX,
    AgentRole,
    ChatMessage,
    ConversationState,
)
from querypilot.models.turn import Clarification, FinalAnswer, TurnFailure, TurnResult
from querypilot.prompts.loader import PromptLoader
from querypilot.skills.base import Skill, SkillContext
from querypilot.skills.bundles import skills_for_role
from querypilot.skills.composer import ComposedSkills, compose_skills
from querypilot.tools.base import ToolContext, ToolKind, ToolServices
from querypilot.tools.builtin.assistant import SubmittedSolution
from querypilot.tools.executor import ToolExecutor, ToolResult, render_result

logger = logging.getLogger(__name__)


class LoopState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_EXECUTING = "tool_executing"
    FINAL_ANSWER = "final_answer"
    SUSPENDED_FOR_CLARIFICATION = "suspended_for_clarification"
    FAILED = "failed"


@dataclass
class NodeOutcome:
    """Terminal loop state and the turn result it produced."""

    state: LoopState
    result: TurnResult
    iterations: int = 0


def tool_cache_key(name: str, arguments: dict[str, Any]) -> str:
    encoded = json.dumps(arguments, sort_keys=True, ensure_ascii=False, default=str)
    return f"{TOOL_CACHE_PREFIX}{name}:{encoded}"


def to_llm_message(message: ChatMessage) -> LLMMessage:
    return LLMMessage(
        role=message.role,
        content=message.content,
        tool_calls=message.tool_calls,
        tool_call_id=message.tool_call_id,
        name=message.name,
    )


class AgentNode(BaseAgent):
    """
    Tool-invocation loop for one role.

    Subclasses set ``role``; the skills, and through them the prompt and
    tool set, follow from the role and the active data source.
    """

    role: ClassVar[AgentRole]

    def __init__(
        self,
        llm_provider: BaseLLMProvider,
        services: ToolServices,
        executor: ToolExecutor | None = None,
        settings: AgentSettings | None = None,
        prompts: PromptLoader | None = None,
        semantic_search: bool = False,
        knowledge_search: bool = False,
        name: str | None = None,
    ):
        self.settings = settings or AgentSettings()
        super().__init__(
            name=name or type(self).__name__,
            llm_provider=llm_provider,
            max_retries=self.settings.provider_max_retries,
            retry_backoff_seconds=self.settings.provider_retry_backoff_seconds,
        )
        self.services = services
        self.executor = executor or ToolExecutor()
        self.prompts = prompts or PromptLoader()
        self.semantic_search = semantic_search
        self.knowledge_search = knowledge_search

    # -- composition ------------------------------------------------------

    def skills(self) -> list[Skill]:
        return skills_for_role(self.role, self.prompts)

    def skill_context(self, state: ConversationState) -> SkillContext:
        return SkillContext(
            data_source_id=state.data_source_id,
            db_type=state.db_type,
            role=str(self.role),
            semantic_search=self.semantic_search,
            knowledge_search=self.knowledge_search,
        )

    def prepare(self, state: ConversationState) -> ComposedSkills:
        """Compose skills for the active data source; fails before any model call."""
        return compose_skills(self.skills(), self.skill_context(state))

    def build_system_prompt(self, composed: ComposedSkills, state: ConversationState) -> str:
        ctx = self.skill_context(state)
        knowledge = [
            (key, render_result(value))
            for key, value in state.intermediate_results.items()
            if not key.startswith(TOOL_CACHE_PREFIX)
        ]
        environment = self.prompts.render(
            "agents/environment.md",
            data_source_id=state.data_source_id,
            db_type=state.db_type,
            language=ctx.language,
            plan=state.plan,
            knowledge=knowledge,
        )
        return f"{composed.system_prompt}\n\n{environment}" if composed.system_prompt else environment

    def build_messages(self, state: ConversationState, system_prompt: str) -> list[LLMMessage]:
        messages = [LLMMessage(role="system", content=system_prompt)]
        messages.extend(self._history_messages(state.history))
        messages.extend(to_llm_message(message) for message in state.current_turn)
        return messages

    def _history_messages(self, history: list[ChatMessage]) -> list[LLMMessage]:
        """Earlier turns as plain text: tool traffic dropped, same-role runs merged."""
        merged: list[LLMMessage] = []
        for message in history:
            if message.role not in ("user", "assistant") or not message.content.strip():
                continue
            if merged and merged[-1].role == message.role:
                merged[-1] = LLMMessage(
                    role=message.role,
                    content=f"{merged[-1].content}\n\n{message.content}",
                )
            else:
                merged.append(LLMMessage(role=message.role, content=message.content))

        window = self.settings.history_window
        merged = merged[-window:] if window else []
        while merged and merged[0].role != "user":
            merged.pop(0)
        return merged

    # -- loop -------------------------------------------------------------

    async def execute(self, state: ConversationState, correlation_id: str | None = None) -> NodeOutcome:
        composed = self.prepare(state)
        ctx = ToolContext(
            user_id=state.user_id,
            correlation_id=correlation_id or uuid.uuid4().hex,
            data_source_id=state.data_source_id,
            db_type=state.db_type,
            state=state,
            services=self.services,
        )
        specs = composed.specs()
        iterations = 0
        loop_state = LoopState.AWAITING_MODEL

        try:
            while True:
                if iterations >= self.settings.max_iterations:
                    raise IterationLimitExceeded(
                        self.name,
                        self.settings.max_iterations,
                        context={"data_source_id": state.data_source_id},
                    )
                iterations += 1
                logger.debug(
                    f"{self.name} iteration {iterations} ({loop_state})",
                    extra={"agent": self.name, "iteration": iterations},
                )

                system_prompt = self.build_system_prompt(composed, state)
                response = await self._generate(
                    LLMRequest(messages=self.build_messages(state, system_prompt), tools=specs)
                )

                if not response.tool_calls:
                    return self._finish_with_text(state, response.content, iterations)

                loop_state = LoopState.TOOL_CALL_REQUESTED
                logger.debug(
                    f"{self.name} {loop_state}: {[call.name for call in response.tool_calls]}",
                    extra={"agent": self.name, "iteration": iterations},
                )
                state.add_message(
                    ChatMessage(
                        role="assistant",
                        content=response.content,
                        tool_calls=response.tool_calls,
                        node=str(self.role),
                    )
                )
                loop_state = LoopState.TOOL_EXECUTING
                outcome = await self._handle_tool_calls(response.tool_calls, composed, ctx, state)
                if outcome is not None:
                    outcome.iterations = iterations
                    return outcome
                loop_state = LoopState.AWAITING_MODEL

        except (IterationLimitExceeded, ProviderFailure) as exc:
            logger.error(
                f"{self.name} failed: {exc.message}",
                extra={"agent": self.name, "kind": str(exc.kind), "iterations": iterations},
            )
            state.fail(exc.kind, exc.message)
            return NodeOutcome(
                state=LoopState.FAILED,
                result=TurnFailure(error=exc.kind, message=exc.message),
                iterations=iterations,
            )

    def _finish_with_text(
        self, state: ConversationState, content: str, iterations: int
    ) -> NodeOutcome:
        state.add_message(ChatMessage(role="assistant", content=content, node=str(self.role)))
        if state.explanation is None:
            state.explanation = content
        return NodeOutcome(
            state=LoopState.FINAL_ANSWER,
            result=FinalAnswer(text=content, explanation=content),
            iterations=iterations,
        )

    async def _handle_tool_calls(
        self,
        calls: list[ToolCall],
        composed: ComposedSkills,
        ctx: ToolContext,
        state: ConversationState,
    ) -> NodeOutcome | None:
        """
        Execute one response's calls; a terminal outcome ends the loop.

        The first submission call wins, then the first clarification call.
        A terminal call that fails validation is reported back like any other
        failed call and the remaining calls still run.
        """
        pending = [(call, self._kind(call, composed)) for call in calls]

        for kind in (ToolKind.SUBMISSION, ToolKind.CLARIFICATION):
            position = next((i for i, (_, k) in enumerate(pending) if k == kind), None)
            if position is None:
                continue
            call, _ = pending.pop(position)
            result = await self._run_call(call, composed, ctx, state)
            if result.success and kind == ToolKind.SUBMISSION:
                return self._finish_with_solution(call, result, state)
            if result.success:
                return self._suspend(call, result, state)
            logger.warning(
                f"{self.name} {kind} call rejected: {result.content}",
                extra={"agent": self.name, "tool": call.name},
            )
            self._append_result(state, call, result)

        regular = [call for call, kind in pending if kind == ToolKind.REGULAR]
        if self.settings.parallel_tool_calls and len(regular) > 1:
            results = await asyncio.gather(
                *(self._run_call(call, composed, ctx, state) for call in regular)
            )
        else:
            results = [await self._run_call(call, composed, ctx, state) for call in regular]
        outputs = dict(zip((id(call) for call in regular), results))

        for call, kind in pending:
            result = outputs.get(id(call)) or ToolResult(
                tool=call.name,
                call_id=call.id,
                success=False,
                error_kind="skipped",
                content=f"Skipped: only one {kind} call is handled per response.",
            )
            self._append_result(state, call, result)
        return None

    def _kind(self, call: ToolCall, composed: ComposedSkills) -> ToolKind:
        definition = composed.tool(call.name)
        return definition.kind if definition is not None else ToolKind.REGULAR

    async def _run_call(
        self,
        call: ToolCall,
        composed: ComposedSkills,
        ctx: ToolContext,
        state: ConversationState,
    ) -> ToolResult:
        definition = composed.tool(call.name)
        if definition is None:
            return ToolResult(
                tool=call.name,
                call_id=call.id,
                success=False,
                error_kind="unknown_tool",
                content=(
                    f"Error (unknown_tool): '{call.name}' is not available here. "
                    f"Available tools: {', '.join(composed.tool_names)}"
                ),
            )

        cache_key = tool_cache_key(call.name, call.arguments) if definition.cacheable else None
        if cache_key is not None and cache_key in state.intermediate_results:
            logger.debug(f"Replaying cached result for {call.name}", extra={"tool": call.name})
            return ToolResult(
                tool=call.name,
                call_id=call.id,
                success=True,
                content=state.intermediate_results[cache_key],
            )

        result = await self.executor.execute(call.name, call.arguments, ctx, call_id=call.id)
        if cache_key is not None and result.success:
            state.record_result(cache_key, result.content)
        return result

    def _append_result(self, state: ConversationState, call: ToolCall, result: ToolResult) -> None:
        state.add_message(
            ChatMessage(
                role="tool",
                content=result.content,
                tool_call_id=call.id,
                name=call.name,
                node=str(self.role),
            )
        )

    def _finish_with_solution(
        self, call: ToolCall, result: ToolResult, state: ConversationState
    ) -> NodeOutcome:
        solution: SubmittedSolution = result.data
        safety = None
        if solution.sql is not None:
            safety = self.services.validator.validate(solution.sql)

        state.set_solution(
            explanation=solution.explanation,
            sql=solution.sql,
            query=solution.query,
            index=solution.index,
        )
        self._append_result(
            state, call, ToolResult(tool=call.name, call_id=call.id, success=True, content="Submitted.")
        )
        state.add_message(
            ChatMessage(role="assistant", content=solution.explanation, node=str(self.role))
        )
        state.next = None
        logger.info(
            f"{self.name} submitted a {solution.language} solution",
            extra={"agent": self.name, "tool": call.name},
        )
        return NodeOutcome(
            state=LoopState.FINAL_ANSWER,
            result=FinalAnswer(
                text=solution.explanation,
                explanation=solution.explanation,
                sql=solution.sql,
                query=solution.query,
                index=solution.index,
                safety=safety,
            ),
        )

    def _suspend(self, call: ToolCall, result: ToolResult, state: ConversationState) -> NodeOutcome:
        question = result.data["question"]
        options = result.data["options"]
        self._append_result(
            state,
            call,
            ToolResult(tool=call.name, call_id=call.id, success=True, content="Waiting for the user."),
        )
        text = question
        if options:
            text += "\n" + "\n".join(f"- {option}" for option in options)
        state.add_message(ChatMessage(role="assistant", content=text, node=str(self.role)))
        state.next = str(self.role)
        logger.info(
            f"{self.name} suspended for clarification",
            extra={"agent": self.name, "question": question},
        )
        return NodeOutcome(
            state=LoopState.SUSPENDED_FOR_CLARIFICATION,
            result=Clarification(question=question, options=options),
        )
