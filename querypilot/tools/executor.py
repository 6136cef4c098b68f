"""Tool execution engine."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from querypilot.discovery.errors import DiscoveryError
from querypilot.tools.base import ToolContext, ToolDefinition
from querypilot.tools.policy import PolicyEngine, ToolError
from querypilot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class UnknownToolError(ToolError):
    kind = "unknown_tool"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgumentsError(ToolError):
    kind = "invalid_arguments"

    def __init__(self, tool: str, errors: list[dict[str, Any]]):
        self.tool = tool
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ())) or 'arguments'}: {error.get('msg')}"
            for error in errors
        )
        super().__init__(f"Invalid arguments for {tool}: {details}")


class ToolExecutionError(ToolError):
    kind = "tool_error"


class ToolResult(BaseModel):
    """What a tool call produced, already rendered for the model."""

    tool: str
    call_id: str | None = None
    success: bool
    content: str
    error_kind: str | None = None
    data: Any = None


def render_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(to_jsonable_python(result, fallback=str), ensure_ascii=False, indent=2)


class ToolExecutor:
    def __init__(self, policy_engine: PolicyEngine | None = None) -> None:
        self.policy_engine = policy_engine or PolicyEngine()

    def resolve(self, name: str) -> ToolDefinition:
        definition = ToolRegistry.get_definition(name)
        if definition is None or ToolRegistry.get_handler(name) is None:
            raise UnknownToolError(name)
        return definition

    def validate_arguments(self, name: str, args: dict[str, Any] | None) -> BaseModel:
        """Check raw model-supplied arguments against the tool's declared schema."""
        definition = self.resolve(name)
        args = args or {}
        if "__raw__" in args:
            raise InvalidArgumentsError(
                name,
                [{"loc": ("arguments",), "msg": "arguments are not a valid JSON object"}],
            )
        try:
            return definition.arguments_model.model_validate(args)
        except ValidationError as exc:
            raise InvalidArgumentsError(name, exc.errors(include_url=False)) from exc

    async def execute(
        self,
        name: str,
        args: dict[str, Any] | None,
        ctx: ToolContext,
        call_id: str | None = None,
    ) -> ToolResult:
        """
        Run one tool call and report the outcome as a ToolResult.

        Every failure the model can react to (unknown tool, policy denial,
        invalid arguments, discovery errors, handler exceptions) comes back
        as an unsuccessful result. Cancellation is never swallowed.
        """
        try:
            definition = self.resolve(name)
            self.policy_engine.enforce(definition, ctx)
            arguments = self.validate_arguments(name, args)
        except ToolError as exc:
            logger.warning(f"Tool call rejected: {name} - {exc}", extra={"tool": name})
            return self._failure(name, call_id, exc.kind, str(exc))

        handler = ToolRegistry.get_handler(name)
        kwargs = {field: getattr(arguments, field) for field in type(arguments).model_fields}
        if "ctx" in inspect.signature(handler).parameters:
            kwargs["ctx"] = ctx

        ctx.log_action("tool_invoked", {"tool": name, "args": sorted(kwargs.keys() - {"ctx"})})
        try:
            async with asyncio.timeout(definition.policy.max_execution_time_seconds):
                result = handler(**kwargs)
                if inspect.isawaitable(result):
                    result = await result
        except TimeoutError:
            message = (
                f"Tool {name} timed out after "
                f"{definition.policy.max_execution_time_seconds}s"
            )
            logger.warning(message, extra={"tool": name})
            return self._failure(name, call_id, "tool_timeout", message)
        except DiscoveryError as exc:
            logger.info(f"Tool {name} reported {exc.kind}: {exc}", extra={"tool": name})
            return self._failure(name, call_id, exc.kind, str(exc))
        except ToolError as exc:
            logger.warning(f"Tool execution failed: {name} - {exc}", extra={"tool": name})
            return self._failure(name, call_id, exc.kind, str(exc))
        except Exception as exc:
            logger.warning(f"Tool execution failed: {name} - {exc}", extra={"tool": name})
            return self._failure(name, call_id, "tool_error", f"{type(exc).__name__}: {exc}")

        ctx.log_action("tool_completed", {"tool": name})
        return ToolResult(
            tool=name,
            call_id=call_id,
            success=True,
            content=render_result(result),
            data=result,
        )

    @staticmethod
    def _failure(name: str, call_id: str | None, kind: str, message: str) -> ToolResult:
        return ToolResult(
            tool=name,
            call_id=call_id,
            success=False,
            content=f"Error ({kind}): {message}",
            error_kind=kind,
        )
