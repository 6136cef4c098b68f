"""Query safety validation."""

from querypilot.validation.safety import (
    BlockingSafetyIssueError,
    SafetyReport,
    SqlSafetyValidator,
    ensure_executable,
)

__all__ = [
    "BlockingSafetyIssueError",
    "SafetyReport",
    "SqlSafetyValidator",
    "ensure_executable",
]
