"""Built-in discovery tools backed by the schema graph."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field

from querypilot.datasources.models import query_language
from querypilot.discovery.knowledge import render_knowledge
from querypilot.tools.base import ToolCategory, ToolContext, tool
from querypilot.tools.builtin.formatting import markdown_table


@tool(
    name="list_entities",
    description=(
        "List the tables and views (or indices for search engines) of the active "
        "data source with their descriptions and approximate row counts."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def list_entities(ctx: ToolContext | None = None) -> str:
    services = ctx.require_services()
    entities = await services.discovery.list_entities(ctx.data_source_id)
    if not entities:
        return "No entities found in this data source."
    return markdown_table([entity.model_dump() for entity in entities])


@tool(
    name="get_entity_schema",
    description=(
        "Show the columns of one table or index: types, nullability, primary keys, "
        "foreign-key targets and columns flagged as sensitive."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def get_entity_schema(
    entity: Annotated[str, Field(description="Table or index name")],
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    services = ctx.require_services()
    schema = await services.discovery.get_entity_schema(ctx.data_source_id, entity)
    return schema.model_dump(exclude_none=True)


@tool(
    name="sample_entity_data",
    description="Fetch a few example rows (or documents) to see what the data looks like.",
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def sample_entity_data(
    entity: Annotated[str, Field(description="Table or index name")],
    limit: Annotated[int, Field(ge=1, le=50, description="Number of rows to return")] = 5,
    ctx: ToolContext | None = None,
) -> str:
    services = ctx.require_services()
    rows = await services.discovery.sample_entity_data(ctx.data_source_id, entity, limit)
    if not rows:
        return f"{entity} has no rows."
    return markdown_table(rows)


@tool(
    name="get_entity_statistics",
    description=(
        "Profile a table: row count, null counts per column, min/max of numeric and "
        "date columns and the most frequent values of text columns."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
    max_execution_time_seconds=60,
)
async def get_entity_statistics(
    entity: Annotated[str, Field(description="Table name")],
    top_n: Annotated[int, Field(ge=1, le=20, description="Frequent values per text column")] = 5,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    services = ctx.require_services()
    stats = await services.discovery.get_entity_statistics(ctx.data_source_id, entity, top_n)
    return stats.model_dump(exclude_none=True)


@tool(
    name="search_column_values",
    description=(
        "Find distinct values of one column containing a keyword. Use it to map "
        "user wording (a city, a status, a product name) onto stored values."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def search_column_values(
    table: Annotated[str, Field(description="Table name")],
    column: Annotated[str, Field(description="Column to search")],
    keyword: Annotated[str, Field(min_length=1, description="Substring to look for")],
    limit: Annotated[int, Field(ge=1, le=50)] = 10,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    services = ctx.require_services()
    values = await services.discovery.search_column_values(
        ctx.data_source_id, table, column, keyword, limit
    )
    return values.model_dump(exclude_none=True)


@tool(
    name="find_join_path",
    description=(
        "Shortest foreign-key path between two tables, returned as JOIN clauses "
        "to append after FROM <start_table>."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def find_join_path(
    start_table: Annotated[str, Field(description="Table the query starts FROM")],
    end_table: Annotated[str, Field(description="Table that must be joined in")],
    ctx: ToolContext | None = None,
) -> str:
    services = ctx.require_services()
    fragments = await services.discovery.find_join_path(
        ctx.data_source_id, start_table, end_table
    )
    if not fragments:
        return f"{start_table} and {end_table} are the same table; no JOIN is needed."
    return "\n".join(fragments)


@tool(
    name="get_database_compass",
    description="Every foreign-key relation of the data source: the full join topology.",
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def get_database_compass(ctx: ToolContext | None = None) -> str:
    services = ctx.require_services()
    edges = await services.discovery.get_database_compass(ctx.data_source_id)
    if not edges:
        return "No foreign-key relations found in this data source."
    return "\n".join(
        f"{edge.from_table}.{edge.from_column} -> {edge.to_table}.{edge.to_column}"
        for edge in edges
    )


@tool(
    name="cross_entity_search",
    description=(
        "Search a keyword across every text column of every table when you do not "
        "know where a value lives. Returns a few matching rows per table."
    ),
    category=ToolCategory.DISCOVERY,
    max_execution_time_seconds=60,
)
async def cross_entity_search(
    keyword: Annotated[str, Field(min_length=1, description="Keyword to look for")],
    limit_per_table: Annotated[int | None, Field(ge=1, le=20)] = None,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    services = ctx.require_services()
    result = await services.discovery.cross_entity_search(
        ctx.data_source_id, keyword, limit_per_table
    )
    if not result.results:
        note = "partial scan, timed out" if result.partial else "all text columns scanned"
        return {"keyword": keyword, "results": [], "note": f"No matches ({note})."}
    return result.model_dump()


@tool(
    name="search_related_tables",
    description="Semantic search over table descriptions to shortlist tables for a question.",
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def search_related_tables(
    text: Annotated[str, Field(min_length=1, description="Question or topic")],
    k: Annotated[int, Field(ge=1, le=20)] = 5,
    ctx: ToolContext | None = None,
) -> list[str]:
    services = ctx.require_services()
    return await services.discovery.search_related_tables(ctx.data_source_id, text, k)


@tool(
    name="search_related_knowledge",
    description=(
        "Search the knowledge base for business term definitions and reference queries "
        "that answered similar questions. Use it for ambiguous domain wording or when "
        "you need a query template."
    ),
    category=ToolCategory.DISCOVERY,
    cacheable=True,
)
async def search_related_knowledge(
    query: Annotated[str, Field(min_length=1, description="Question, term or keywords")],
    limit: Annotated[int, Field(ge=1, le=10)] = 3,
    ctx: ToolContext | None = None,
) -> str:
    services = ctx.require_services()
    items = await services.discovery.search_related_knowledge(ctx.data_source_id, query, limit)
    if not items:
        return f"No knowledge base entries relate to '{query}'."
    return render_knowledge(items, query_language(ctx.db_type))
