"""Built-in SQL validation tools."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field

from querypilot.connectors.base import ConnectorError
from querypilot.discovery.service import is_read_only_sql
from querypilot.tools.base import ToolCategory, ToolContext, tool
from querypilot.tools.builtin.formatting import markdown_table
from querypilot.tools.executor import ToolExecutionError
from querypilot.validation.safety import SafetyReport

SAMPLE_ROWS = 5


async def _check(sql: str, ctx: ToolContext) -> SafetyReport:
    services = ctx.require_services()
    graph = await services.discovery.schema_graph(ctx.data_source_id)
    table_rows = {table.table_name: table.row_count for table in graph.tables}
    return services.validator.validate(sql, table_rows)


@tool(
    name="validate_sql",
    description=(
        "Check a SQL statement before submitting it: destructive operations, stacked "
        "statements, missing WHERE/LIMIT, cartesian joins, and a database EXPLAIN dry run."
    ),
    category=ToolCategory.VALIDATION,
)
async def validate_sql(
    sql: Annotated[str, Field(min_length=1, description="The SQL statement to check")],
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    services = ctx.require_services()
    report = await _check(sql, ctx)

    if report.is_safe and is_read_only_sql(sql):
        try:
            await services.discovery.explain(ctx.data_source_id, sql)
        except ConnectorError as exc:
            report = report.model_copy(
                update={
                    "is_safe": False,
                    "blocking_issues": [
                        *report.blocking_issues,
                        f"Database rejected the statement: {exc}",
                    ],
                }
            )

    result = report.model_dump()
    if report.is_safe:
        result["next_step"] = "Statement passed validation; submit it when it answers the question."
    else:
        result["next_step"] = "Fix every blocking issue and validate again before submitting."
    return result


@tool(
    name="run_query_sample",
    description=(
        f"Run a SELECT/WITH query capped at {SAMPLE_ROWS} rows to check that it returns "
        "what you expect. Only read-only queries are accepted."
    ),
    category=ToolCategory.VALIDATION,
    max_execution_time_seconds=60,
)
async def run_query_sample(
    sql: Annotated[str, Field(min_length=1, description="A SELECT or WITH query")],
    ctx: ToolContext | None = None,
) -> str:
    services = ctx.require_services()
    if not is_read_only_sql(sql):
        raise ToolExecutionError("Only SELECT or WITH queries can be sampled")
    report = await _check(sql, ctx)
    if not report.is_safe:
        raise ToolExecutionError(report.summary())

    rows = await services.discovery.run_query_sample(ctx.data_source_id, sql, SAMPLE_ROWS)
    if not rows:
        return "Query ran successfully and returned no rows."
    return markdown_table(rows)
