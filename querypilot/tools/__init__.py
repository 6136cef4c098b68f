"""Tool system entrypoint."""

from __future__ import annotations

from pathlib import Path

from querypilot.tools.base import ToolCategory, ToolContext, ToolKind, ToolServices
from querypilot.tools.executor import (
    InvalidArgumentsError,
    ToolExecutor,
    ToolResult,
    UnknownToolError,
)
from querypilot.tools.policy import PolicyEngine, ToolError, ToolPolicyError
from querypilot.tools.registry import ToolRegistry


def initialize_tools(policy_path: str | Path | None = None) -> None:
    # Register built-in tools
    from querypilot.tools.builtin import (  # noqa: F401
        assistant,
        discovery,
        planning,
        search,
        validation,
    )

    if policy_path:
        ToolRegistry.load_policy_config(policy_path)


__all__ = [
    "InvalidArgumentsError",
    "PolicyEngine",
    "ToolCategory",
    "ToolContext",
    "ToolError",
    "ToolExecutor",
    "ToolKind",
    "ToolPolicyError",
    "ToolRegistry",
    "ToolResult",
    "ToolServices",
    "UnknownToolError",
    "initialize_tools",
]
