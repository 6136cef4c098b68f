"""Built-in planning tools that record multi-step work on the conversation state."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field

from querypilot.models.agent import StateTransitionError
from querypilot.models.state import BLUEPRINT_KEY, AssignedRole, ConversationState, PlanStatus
from querypilot.tools.base import ToolCategory, ToolContext, tool
from querypilot.tools.executor import ToolExecutionError


@tool(
    name="add_plan_step",
    description="Append a step to the working plan for a multi-step request.",
    category=ToolCategory.PLANNING,
)
def add_plan_step(
    task: Annotated[str, Field(min_length=1, description="Short task title")],
    assigned_to: Annotated[AssignedRole, Field(description="Role responsible for the step")],
    description: Annotated[str | None, Field(description="What the step must produce")] = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    state = ctx.require_state()
    step = state.add_plan_step(task, assigned_to, description)
    return {"step": step, "task": task, "status": str(PlanStatus.PENDING)}


@tool(
    name="update_plan_step",
    description=(
        "Move a plan step forward: pending -> in_progress -> completed or failed. "
        "Attach the step's result when completing it, or the reason when failing it."
    ),
    category=ToolCategory.PLANNING,
)
def update_plan_step(
    step: Annotated[int, Field(ge=0, description="Step number returned by add_plan_step")],
    status: Literal["in_progress", "completed", "failed"],
    result: Annotated[Any, Field(description="Step output, or failure reason")] = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    state = ctx.require_state()
    try:
        if status == "in_progress":
            plan_step = state.start_step(step)
        elif status == "completed":
            plan_step = state.complete_step(step, result)
        else:
            plan_step = state.fail_step(step, str(result or "unspecified"))
    except StateTransitionError as exc:
        raise ToolExecutionError(str(exc)) from exc
    return {"step": step, "task": plan_step.task, "status": str(plan_step.status)}


@tool(
    name="save_intermediate_data",
    description="Keep a piece of structured data (ids, mappings, partial results) for later steps.",
    category=ToolCategory.PLANNING,
)
def save_intermediate_data(
    key: Annotated[str, Field(min_length=1)],
    data: Any,
    ctx: ToolContext | None = None,
) -> str:
    if ConversationState.is_reserved_key(key):
        raise ToolExecutionError(
            f"Key '{key}' is reserved for internal bookkeeping; choose another name"
        )
    ctx.require_state().record_result(key, data)
    return f"Saved '{key}'."


@tool(
    name="save_blueprint",
    description=(
        "Record the query blueprint once the tables are known: target tables, join "
        "logic and filters. It stays visible for the rest of the turn."
    ),
    category=ToolCategory.PLANNING,
)
def save_blueprint(
    target_tables: Annotated[list[str], Field(min_length=1)],
    join_logic: str | None = None,
    filter_logic: str | None = None,
    notes: str | None = None,
    ctx: ToolContext | None = None,
) -> str:
    blueprint = {
        "target_tables": target_tables,
        "join_logic": join_logic,
        "filter_logic": filter_logic,
        "notes": notes,
    }
    ctx.require_state().record_result(
        BLUEPRINT_KEY, {key: value for key, value in blueprint.items() if value is not None}
    )
    return f"Blueprint saved for {', '.join(target_tables)}."
