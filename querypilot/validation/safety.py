"""
SQL Safety Validation

Rule-based checks on a generated statement before anything runs it. No
LLM calls and no database access: the statement is tokenised with sqlparse
and inspected for destructive operations, stacked statements and a few
performance anti-patterns.

Blocking issues stop execution; warnings are advisory only.
"""

import logging
import re

import sqlparse
from pydantic import BaseModel, Field
from sqlparse.sql import Statement, Where
from sqlparse.tokens import DDL, DML, Keyword

logger = logging.getLogger(__name__)

ALWAYS_DESTRUCTIVE = {"DROP", "TRUNCATE", "ALTER"}
WRITE_STATEMENTS = {"INSERT", "REPLACE", "MERGE", "CREATE", "GRANT", "REVOKE", "UPDATE", "DELETE"}
_WRITE_KEYWORDS = {"GRANT", "REVOKE", "MERGE"}
_JOIN_TERMINATORS = {"JOIN", "WHERE", "GROUP BY", "ORDER BY", "LIMIT", "HAVING", "UNION", "WINDOW"}
_STAR_ITEM = re.compile(r"(^|,)\s*([\w`\"]+\.)?\*\s*(,|$)")
_FROM_TABLE = re.compile(r"\bFROM\s+([`\"\w.]+)", re.IGNORECASE)


class SafetyReport(BaseModel):
    """Outcome of a safety check."""

    is_safe: bool
    warnings: list[str] = Field(default_factory=list)
    blocking_issues: list[str] = Field(default_factory=list)
    statement_types: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        lines = ["SAFE" if self.is_safe else "BLOCKED"]
        lines.extend(f"- [blocking] {issue}" for issue in self.blocking_issues)
        lines.extend(f"- [warning] {warning}" for warning in self.warnings)
        return "\n".join(lines)


class BlockingSafetyIssueError(Exception):
    """Execution refused because the statement has blocking issues."""

    def __init__(self, report: SafetyReport):
        self.report = report
        super().__init__("Execution refused: " + "; ".join(report.blocking_issues))


def ensure_executable(report: SafetyReport) -> None:
    if report.blocking_issues:
        raise BlockingSafetyIssueError(report)


class SqlSafetyValidator:
    """
    Usage:
        validator = SqlSafetyValidator(allow_write=False)
        report = validator.validate("DELETE FROM users")
        report.is_safe  # False
    """

    def __init__(self, allow_write: bool = False, large_table_rows: int = 100_000):
        self.allow_write = allow_write
        self.large_table_rows = large_table_rows

    def validate(self, sql: str, table_rows: dict[str, int | None] | None = None) -> SafetyReport:
        warnings: list[str] = []
        blocking: list[str] = []

        statements = [
            stmt for stmt in sqlparse.parse(sql or "") if stmt.token_first(skip_cm=True) is not None
        ]
        if not statements:
            return SafetyReport(is_safe=False, blocking_issues=["Statement is empty"])
        if len(statements) > 1:
            blocking.append(
                f"Found {len(statements)} statements; submit exactly one statement at a time"
            )

        statement_types = []
        for stmt in statements:
            statement_type = self._statement_type(stmt)
            statement_types.append(statement_type)
            blocking.extend(self._write_issues(stmt, statement_type))
            warnings.extend(self._join_warnings(stmt))
            if statement_type == "SELECT":
                warnings.extend(self._select_star_warnings(stmt, table_rows or {}))

        report = SafetyReport(
            is_safe=not blocking,
            warnings=warnings,
            blocking_issues=blocking,
            statement_types=statement_types,
        )
        if blocking:
            logger.info(f"SQL blocked: {'; '.join(blocking)}")
        return report

    # -- checks -----------------------------------------------------------

    @staticmethod
    def _keywords(stmt: Statement) -> list[str]:
        return [
            " ".join(token.normalized.upper().split())
            for token in stmt.flatten()
            if token.ttype in Keyword or token.ttype in DML or token.ttype in DDL
        ]

    def _statement_type(self, stmt: Statement) -> str:
        statement_type = stmt.get_type()
        if statement_type != "UNKNOWN":
            return statement_type
        first = stmt.token_first(skip_cm=True)
        return first.normalized.upper() if first is not None else "UNKNOWN"

    def _write_issues(self, stmt: Statement, statement_type: str) -> list[str]:
        keywords = set(self._keywords(stmt))
        issues = []

        for keyword in sorted(ALWAYS_DESTRUCTIVE & (keywords | {statement_type})):
            if not self.allow_write:
                issues.append(f"{keyword} is a destructive operation and requires write mode")

        has_where = any(isinstance(token, Where) for token in stmt.tokens)
        if statement_type in ("DELETE", "UPDATE") and not has_where:
            issues.append(
                f"{statement_type} without WHERE would affect every row; add a WHERE clause"
            )
        elif statement_type in WRITE_STATEMENTS and not self.allow_write:
            issues.append(f"{statement_type} modifies data and requires write mode")

        if self.allow_write:
            return issues
        # Data-modifying CTEs report the outer SELECT as the statement type.
        for keyword in sorted((self._write_keywords(stmt) & WRITE_STATEMENTS) - {statement_type}):
            issues.append(f"{keyword} inside a {statement_type} statement requires write mode")
        if statement_type == "SELECT" and "INTO" in keywords:
            issues.append("SELECT ... INTO creates a table and requires write mode")
        return issues

    @staticmethod
    def _write_keywords(stmt: Statement) -> set[str]:
        return {
            token.normalized.upper()
            for token in stmt.flatten()
            if token.ttype in DML
            or token.ttype in DDL
            or (token.ttype in Keyword and token.normalized.upper() in _WRITE_KEYWORDS)
        }

    def _join_warnings(self, stmt: Statement) -> list[str]:
        keywords = self._keywords(stmt)
        warnings = []
        for position, keyword in enumerate(keywords):
            if not keyword.endswith("JOIN") or keyword in ("CROSS JOIN", "NATURAL JOIN"):
                continue
            has_condition = False
            for following in keywords[position + 1 :]:
                if following in ("ON", "USING"):
                    has_condition = True
                    break
                if following.endswith("JOIN") or following in _JOIN_TERMINATORS:
                    break
            if not has_condition:
                warnings.append(
                    f"{keyword} without ON/USING may produce a cartesian product"
                )
        return warnings

    def _select_star_warnings(
        self,
        stmt: Statement,
        table_rows: dict[str, int | None],
    ) -> list[str]:
        has_wildcard = bool(_STAR_ITEM.search(self._select_list(stmt)))
        keywords = self._keywords(stmt)
        has_limit = "LIMIT" in keywords or "FETCH" in keywords or "TOP" in keywords
        if not has_wildcard or has_limit:
            return []

        match = _FROM_TABLE.search(str(stmt))
        table = match.group(1).strip('`"').split(".")[-1] if match else None
        rows = table_rows.get(table) if table else None
        if rows is not None and rows >= self.large_table_rows:
            return [
                f"SELECT * without LIMIT on {table} (~{rows} rows); "
                "add a LIMIT or select specific columns"
            ]
        return ["SELECT * without LIMIT may return a large result set; consider adding a LIMIT"]

    @staticmethod
    def _select_list(stmt: Statement) -> str:
        """Top-level text between SELECT and FROM."""
        parts: list[str] = []
        collecting = False
        for token in stmt.tokens:
            if token.ttype in DML and token.normalized.upper() == "SELECT":
                collecting = True
                continue
            if collecting and token.ttype in Keyword and token.normalized.upper() == "FROM":
                break
            if collecting:
                parts.append(str(token))
        return "".join(parts).strip()
