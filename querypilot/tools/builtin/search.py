"""Built-in tools for search-engine data sources."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field

from querypilot.tools.base import ToolCategory, ToolContext, tool


@tool(
    name="get_index_summary",
    description="Document count and time range of an index.",
    category=ToolCategory.SEARCH,
    cacheable=True,
)
async def get_index_summary(
    index: Annotated[str, Field(description="Index name or pattern")],
    time_field: Annotated[str, Field(description="Timestamp field")] = "@timestamp",
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    client = await ctx.require_services().discovery.connections.search_client(ctx.data_source_id)
    return await client.index_summary(index, time_field=time_field)


@tool(
    name="get_field_stats",
    description=(
        "Top values of a keyword field or min/max/avg of a numeric field. Use it to "
        "learn which values a filter can take."
    ),
    category=ToolCategory.SEARCH,
    cacheable=True,
)
async def get_field_stats(
    index: Annotated[str, Field(description="Index name or pattern")],
    field: Annotated[str, Field(description="Field name as listed in the mapping")],
    top: Annotated[int, Field(ge=1, le=50)] = 10,
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    client = await ctx.require_services().discovery.connections.search_client(ctx.data_source_id)
    return await client.field_stats(index, field, top=top)


@tool(
    name="validate_search_query",
    description="Ask the search engine whether a Lucene query string parses for an index.",
    category=ToolCategory.SEARCH,
)
async def validate_search_query(
    index: Annotated[str, Field(description="Index name or pattern")],
    query: Annotated[str, Field(min_length=1, description="Lucene query string")],
    ctx: ToolContext | None = None,
) -> dict[str, Any]:
    client = await ctx.require_services().discovery.connections.search_client(ctx.data_source_id)
    result = await client.validate_query(index, query)
    if result.get("valid"):
        result["hits"] = await client.count(index, query)
    return result
