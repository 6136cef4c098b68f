"""Built-in assistant tools: time, clarification and solution submission."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from querypilot.datasources.models import query_language
from querypilot.tools.base import ToolCategory, ToolContext, ToolKind, tool
from querypilot.tools.executor import ToolExecutionError

_FENCED_BLOCK = re.compile(r"```[ \t]*([\w+-]*)[^\n]*\n(.*?)```", re.DOTALL)
_QUERY_LABELS = {"", "sql", "mysql", "postgresql", "postgres", "lucene", "kql", "query"}

MODIFICATION_NOTICE = (
    "> Note: this statement modifies data. Review it carefully before running it."
)


class SubmittedSolution(BaseModel):
    """Payload of a submission tool; the agent loop turns it into the final answer."""

    language: str
    sql: str | None = None
    query: str | None = None
    index: str | None = None
    explanation: str
    risk_level: Literal["safe", "modification"] = "safe"


def render_solution_explanation(explanation: str, query: str, language: str) -> str:
    """
    Return the explanation with exactly one fenced ``language`` block holding ``query``.

    Query-like fenced blocks the model wrote itself (unlabelled, or labelled
    with a query language) are dropped and the canonical block takes the
    place of the first one; other blocks are kept. When there was none the
    block is appended.
    """
    canonical = f"```{language}\n{query.strip()}\n```"
    placed = False

    def replace(match: re.Match[str]) -> str:
        nonlocal placed
        label = match.group(1).lower()
        body = match.group(2).strip()
        if label not in _QUERY_LABELS and label != language.lower() and body != query.strip():
            return match.group(0)
        if placed:
            return ""
        placed = True
        return canonical

    rendered = _FENCED_BLOCK.sub(replace, explanation.strip())
    rendered = re.sub(r"\n{3,}", "\n\n", rendered).strip()
    if not placed:
        rendered = f"{rendered}\n\n{canonical}" if rendered else canonical
    return rendered


@tool(
    name="get_current_time",
    description=(
        "Current date and time, for resolving relative phrases like 'last year' or "
        "'this week'. Optionally in an IANA timezone such as 'Asia/Shanghai'."
    ),
    category=ToolCategory.ASSISTANT,
)
def get_current_time(
    timezone: Annotated[
        str | None, Field(description="IANA timezone; server local time when omitted")
    ] = None,
) -> dict[str, Any]:
    if timezone:
        try:
            now = datetime.now(ZoneInfo(timezone))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ToolExecutionError(f"Unknown timezone: {timezone}") from exc
    else:
        now = datetime.now().astimezone()
    return {
        "iso": now.isoformat(timespec="seconds"),
        "human": now.strftime("%Y-%m-%d %H:%M:%S"),
        "weekday": now.strftime("%A"),
        "timezone": timezone or str(now.tzinfo),
    }


@tool(
    name="clarify_intent",
    description=(
        "Ask the user a clarifying question when the request is ambiguous (which "
        "table, which metric, which time range). Ends your turn until the user answers."
    ),
    category=ToolCategory.ASSISTANT,
    kind=ToolKind.CLARIFICATION,
)
def clarify_intent(
    question: Annotated[str, Field(min_length=1, description="Question shown to the user")],
    options: Annotated[
        list[str] | None, Field(description="Suggested answers the user can pick from")
    ] = None,
) -> dict[str, Any]:
    return {"question": question, "options": list(options or [])}


@tool(
    name="submit_sql_solution",
    description=(
        "Submit the final SQL answer. Call this exactly once, after validation. The "
        "explanation is shown to the user verbatim."
    ),
    category=ToolCategory.ASSISTANT,
    kind=ToolKind.SUBMISSION,
)
def submit_sql_solution(
    sql: Annotated[str, Field(min_length=1, description="The final SQL statement")],
    explanation: Annotated[
        str, Field(min_length=1, description="Explanation for the user, including the SQL")
    ],
    risk_level: Annotated[
        Literal["safe", "modification"],
        Field(description="'modification' when the statement changes data"),
    ] = "safe",
    ctx: ToolContext | None = None,
) -> SubmittedSolution:
    language = query_language(ctx.db_type) if ctx else "sql"
    text = render_solution_explanation(explanation, sql, language)
    if risk_level == "modification":
        text = f"{text}\n\n{MODIFICATION_NOTICE}"
    return SubmittedSolution(
        language=language,
        sql=sql.strip(),
        explanation=text,
        risk_level=risk_level,
    )


@tool(
    name="submit_query_solution",
    description=(
        "Submit the final search query (Lucene query string). Call this exactly once. "
        "The explanation is shown to the user verbatim."
    ),
    category=ToolCategory.ASSISTANT,
    kind=ToolKind.SUBMISSION,
)
def submit_query_solution(
    query: Annotated[str, Field(min_length=1, description="The final query string")],
    explanation: Annotated[
        str, Field(min_length=1, description="Explanation for the user, including the query")
    ],
    index: Annotated[str | None, Field(description="Index the query targets")] = None,
    ctx: ToolContext | None = None,
) -> SubmittedSolution:
    language = query_language(ctx.db_type) if ctx else "lucene"
    return SubmittedSolution(
        language=language,
        query=query.strip(),
        index=index,
        explanation=render_solution_explanation(explanation, query, language),
    )
