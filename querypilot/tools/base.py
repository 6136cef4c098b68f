"""Tool system base types and decorator."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, create_model

from querypilot.discovery.service import DiscoveryService
from querypilot.llm.models import ToolSpec
from querypilot.models.state import ConversationState
from querypilot.validation.safety import SqlSafetyValidator

logger = logging.getLogger(__name__)

_INJECTED_PARAMETERS = ("ctx", "context")


class ToolCategory(StrEnum):
    DISCOVERY = "discovery"
    SEARCH = "search"
    VALIDATION = "validation"
    ASSISTANT = "assistant"
    PLANNING = "planning"


class ToolKind(StrEnum):
    """How the agent loop treats an invocation."""

    REGULAR = "regular"
    CLARIFICATION = "clarification"
    SUBMISSION = "submission"


class ToolPolicy(BaseModel):
    enabled: bool = True
    requires_approval: bool = False
    max_execution_time_seconds: int = Field(default=30, ge=1)
    allowed_users: list[str] | None = None


class ToolDefinition(BaseModel):
    name: str
    description: str
    category: ToolCategory
    kind: ToolKind = ToolKind.REGULAR
    cacheable: bool = False
    policy: ToolPolicy
    parameters_schema: dict[str, Any]
    arguments_model: type[BaseModel] = Field(exclude=True)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema,
        )


@dataclass
class ToolServices:
    """Back-end services tools may call."""

    discovery: DiscoveryService
    validator: SqlSafetyValidator


class ToolContext(BaseModel):
    user_id: str
    correlation_id: str
    data_source_id: int
    db_type: str
    approved: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    state: ConversationState | None = None
    services: ToolServices | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def require_services(self) -> ToolServices:
        if self.services is None:
            raise RuntimeError("Tool context has no services attached")
        return self.services

    def require_state(self) -> ConversationState:
        if self.state is None:
            raise RuntimeError("Tool context has no conversation state attached")
        return self.state

    def log_action(self, action: str, metadata: dict[str, Any]) -> None:
        logger.info(
            "tool_action",
            extra={
                "user_id": self.user_id,
                "correlation_id": self.correlation_id,
                "data_source_id": self.data_source_id,
                "action": action,
                "metadata": metadata,
            },
        )


def _build_arguments_model(name: str, func: Callable[..., Any]) -> type[BaseModel]:
    """Pydantic model mirroring the handler's declared (non-injected) parameters."""
    signature = inspect.signature(func)
    type_hints = get_type_hints(func, include_extras=True)
    fields: dict[str, Any] = {}
    for param_name, param in signature.parameters.items():
        if param_name in _INJECTED_PARAMETERS:
            continue
        annotation = type_hints.get(param_name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param_name] = (annotation, default)

    model_name = "".join(part.title() for part in name.split("_")) + "Arguments"
    return create_model(model_name, __config__=ConfigDict(extra="ignore"), **fields)


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            key: _strip_titles(value)
            for key, value in schema.items()
            if not (key == "title" and isinstance(value, str))
        }
    if isinstance(schema, list):
        return [_strip_titles(item) for item in schema]
    return schema


def _extract_parameters_schema(arguments_model: type[BaseModel]) -> dict[str, Any]:
    schema = _strip_titles(arguments_model.model_json_schema())
    schema.setdefault("properties", {})
    schema.setdefault("required", [])
    return schema


def tool(
    name: str,
    description: str,
    category: ToolCategory,
    kind: ToolKind = ToolKind.REGULAR,
    cacheable: bool = False,
    requires_approval: bool = False,
    **policy_kwargs: Any,
):
    """
    Register a function as a model-callable tool.

    Parameters become the declared argument schema; describe them with
    ``Annotated[str, Field(description=...)]``. A ``ctx`` parameter receives
    the ToolContext and is never declared to the model.
    """

    def decorator(func: Callable[..., Any]):
        from querypilot.tools.registry import ToolRegistry

        arguments_model = _build_arguments_model(name, func)
        tool_def = ToolDefinition(
            name=name,
            description=description,
            category=category,
            kind=kind,
            cacheable=cacheable,
            policy=ToolPolicy(requires_approval=requires_approval, **policy_kwargs),
            parameters_schema=_extract_parameters_schema(arguments_model),
            arguments_model=arguments_model,
        )
        ToolRegistry.register(tool_def, func)
        return func

    return decorator
