"""
Discovery Service

Structural questions about a data source, answered from the cached schema
graph or from small bounded queries: entity listing, schema detail,
samples, table statistics, column value lookup, join paths, the
foreign-key compass and cross-entity keyword search. Semantic lookups go
through the optional table index and knowledge base. Search-engine data
sources are served by the Elasticsearch client where the operation has a
meaning for indices.
"""

import asyncio
import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from querypilot.config import DiscoverySettings
from querypilot.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectorError,
    TableInfo,
    escape_like,
)
from querypilot.datasources.connections import DataSourceConnections
from querypilot.datasources.models import DataSourceRecord, query_language
from querypilot.discovery.cache import SchemaGraphCache
from querypilot.discovery.errors import DiscoveryError, UnknownColumnError
from querypilot.discovery.graph import ForeignKey, SchemaGraph
from querypilot.discovery.index import TableIndex
from querypilot.discovery.knowledge import KnowledgeBase, KnowledgeItem

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^\w+$")
_READ_ONLY_PREFIX = re.compile(r"^\s*(select|with)\b", re.IGNORECASE)


class EntitySummary(BaseModel):
    name: str
    type: str
    description: str | None = None
    row_count: int | None = None


class ColumnDetail(BaseModel):
    name: str
    data_type: str
    nullable: bool = True
    primary_key: bool = False
    sensitive: bool = False
    comment: str | None = None
    references: str | None = Field(None, description="'table.column' for foreign keys")


class EntitySchema(BaseModel):
    name: str
    type: str
    description: str | None = None
    row_count: int | None = None
    columns: list[ColumnDetail]


class ColumnValues(BaseModel):
    found: bool
    values: list[Any]
    note: str | None = None


class TableMatches(BaseModel):
    table: str
    columns: list[str] = Field(..., description="Text columns that matched the keyword")
    matches: list[dict[str, Any]]


class CrossSearchResult(BaseModel):
    keyword: str
    results: list[TableMatches]
    scanned_tables: int
    partial: bool = Field(False, description="True when the global timeout cut the scan short")


class ValueFrequency(BaseModel):
    value: Any
    count: int


class ColumnStatistics(BaseModel):
    name: str
    data_type: str
    null_count: int
    min: Any = None
    max: Any = None
    top_values: list[ValueFrequency] = Field(default_factory=list)


class EntityStatistics(BaseModel):
    entity: str
    row_count: int
    columns: list[ColumnStatistics]
    truncated: bool = Field(False, description="True when only the first columns were profiled")


class ResyncReport(BaseModel):
    data_source_id: int
    version: int
    tables: int
    indexed: int = 0


def ensure_identifier(value: str, label: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid {label} name '{value}': only letters, digits and _ are allowed")
    return value


def is_read_only_sql(sql: str) -> bool:
    return bool(_READ_ONLY_PREFIX.match(sql))


class DiscoveryService:
    """Discovery operations over configured data sources."""

    def __init__(
        self,
        connections: DataSourceConnections,
        cache: SchemaGraphCache,
        settings: DiscoverySettings | None = None,
        table_index: TableIndex | None = None,
        knowledge_base: KnowledgeBase | None = None,
    ) -> None:
        self.connections = connections
        self.cache = cache
        self.settings = settings or DiscoverySettings()
        self.table_index = table_index
        self.knowledge_base = knowledge_base

    # -- graph access -----------------------------------------------------

    async def schema_graph(self, data_source_id: int) -> SchemaGraph:
        connector = await self.connections.sql_connector(data_source_id)
        record = await self.connections.record(data_source_id)
        return await self.cache.get_or_build(
            data_source_id, lambda: connector.get_schema(record.schema_name)
        )

    async def resync(self, data_source_id: int) -> ResyncReport:
        """Invalidate and rebuild the schema graph (and table index)."""
        record = await self.connections.record(data_source_id)
        if record.is_search_engine:
            client = await self.connections.search_client(data_source_id)
            indices = await client.list_indices()
            return ResyncReport(data_source_id=data_source_id, version=0, tables=len(indices))

        connector = await self.connections.sql_connector(data_source_id)
        graph = await self.cache.rebuild(
            data_source_id, lambda: connector.get_schema(record.schema_name)
        )
        indexed = 0
        if self.table_index is not None:
            indexed = await self.table_index.index_tables(data_source_id, graph.tables)
        logger.info(
            f"Resynced data source {data_source_id} to version {graph.version}",
            extra={"data_source_id": data_source_id, "version": graph.version},
        )
        return ResyncReport(
            data_source_id=data_source_id,
            version=graph.version,
            tables=len(graph.table_names),
            indexed=indexed,
        )

    # -- entities ---------------------------------------------------------

    async def list_entities(self, data_source_id: int) -> list[EntitySummary]:
        record = await self.connections.record(data_source_id)
        if record.is_search_engine:
            client = await self.connections.search_client(data_source_id)
            return [
                EntitySummary(
                    name=index["name"],
                    type="index",
                    description=f"{index['doc_count']} documents",
                    row_count=index["doc_count"],
                )
                for index in await client.list_indices()
            ]
        graph = await self.schema_graph(data_source_id)
        return [
            EntitySummary(
                name=table.table_name,
                type="view" if "VIEW" in table.table_type.upper() else "table",
                description=table.comment,
                row_count=table.row_count,
            )
            for table in graph.tables
        ]

    async def get_entity_schema(self, data_source_id: int, entity: str) -> EntitySchema:
        record = await self.connections.record(data_source_id)
        if record.is_search_engine:
            client = await self.connections.search_client(data_source_id)
            mapping = await client.get_mapping(entity)
            return EntitySchema(
                name=entity,
                type="index",
                columns=[
                    ColumnDetail(
                        name=field,
                        data_type=field_type,
                        sensitive=self._is_sensitive(field),
                    )
                    for field, field_type in mapping.items()
                ],
            )
        graph = await self.schema_graph(data_source_id)
        table = graph.table(entity)
        return EntitySchema(
            name=table.table_name,
            type="view" if "VIEW" in table.table_type.upper() else "table",
            description=table.comment,
            row_count=table.row_count,
            columns=[self._column_detail(column) for column in table.columns],
        )

    def _column_detail(self, column: ColumnInfo) -> ColumnDetail:
        return ColumnDetail(
            name=column.name,
            data_type=column.data_type,
            nullable=column.is_nullable,
            primary_key=column.is_primary_key,
            sensitive=self._is_sensitive(column.name),
            comment=column.comment,
            references=(
                f"{column.foreign_table}.{column.foreign_column}"
                if column.is_foreign_key
                else None
            ),
        )

    def _is_sensitive(self, name: str) -> bool:
        lowered = name.lower()
        return any(keyword in lowered for keyword in self.settings.sensitive_keywords)

    async def sample_entity_data(
        self,
        data_source_id: int,
        entity: str,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        limit = max(1, min(limit, self.settings.sample_limit_max))
        record = await self.connections.record(data_source_id)
        if record.is_search_engine:
            client = await self.connections.search_client(data_source_id)
            return await client.sample(entity, size=limit)

        graph = await self.schema_graph(data_source_id)
        table = graph.table(entity)
        connector = await self.connections.sql_connector(data_source_id)
        result = await connector.execute(
            f"SELECT * FROM {connector.quote_identifier(table.table_name)} LIMIT {limit}"
        )
        return result.rows

    async def search_column_values(
        self,
        data_source_id: int,
        table: str,
        column: str,
        keyword: str,
        limit: int = 5,
    ) -> ColumnValues:
        ensure_identifier(table, "table")
        ensure_identifier(column, "column")
        limit = max(1, min(limit, self.settings.column_value_limit_max))

        graph = await self.schema_graph(data_source_id)
        table_info = graph.table(table)
        if table_info.column(column) is None:
            raise UnknownColumnError(table_info.table_name, column)

        connector = await self.connections.sql_connector(data_source_id)
        quoted = connector.quote_identifier(column)
        sql = (
            f"SELECT DISTINCT {quoted} AS value "
            f"FROM {connector.quote_identifier(table_info.table_name)} "
            f"WHERE {connector.text_match_clause(column, 1)} LIMIT {limit}"
        )
        result = await connector.execute(sql, [f"%{escape_like(keyword)}%"])
        values = [row["value"] for row in result.rows]
        if not values:
            return ColumnValues(
                found=False,
                values=[],
                note=f"No values in {table_info.table_name}.{column} contain '{keyword}'",
            )
        return ColumnValues(found=True, values=values)

    async def get_entity_statistics(
        self,
        data_source_id: int,
        entity: str,
        top_n: int = 5,
    ) -> EntityStatistics:
        """
        Profile one table: row count, per-column null counts, min/max of
        numeric and temporal columns and the most frequent values of text
        columns.

        Counts and ranges come from a single aggregate query; each text
        column then gets its own GROUP BY query. Sensitive columns only
        report null counts. Every statement runs read-only.
        """
        record = await self.connections.record(data_source_id)
        if record.is_search_engine:
            raise DiscoveryError(
                "Entity statistics cover SQL tables; use get_field_stats for index fields"
            )
        top_n = max(1, min(top_n, self.settings.column_value_limit_max))
        graph = await self.schema_graph(data_source_id)
        table = graph.table(entity)
        connector = await self.connections.sql_connector(data_source_id)
        quoted_table = connector.quote_identifier(table.table_name)

        profiled = table.columns[: self.settings.statistics_max_columns]
        select = ["COUNT(*) AS row_count"]
        for position, column in enumerate(profiled):
            quoted = connector.quote_identifier(column.name)
            select.append(f"COUNT({quoted}) AS c{position}_filled")
            if self._has_range(column):
                select.append(f"MIN({quoted}) AS c{position}_min")
                select.append(f"MAX({quoted}) AS c{position}_max")
        result = await connector.execute(
            f"SELECT {', '.join(select)} FROM {quoted_table}", read_only=True
        )
        totals = result.rows[0] if result.rows else {}
        row_count = int(totals.get("row_count") or 0)

        columns = [
            ColumnStatistics(
                name=column.name,
                data_type=column.data_type,
                null_count=row_count - int(totals.get(f"c{position}_filled") or 0),
                min=totals.get(f"c{position}_min"),
                max=totals.get(f"c{position}_max"),
            )
            for position, column in enumerate(profiled)
        ]

        candidates = [
            (stats, column)
            for stats, column in zip(columns, profiled)
            if column.is_text and not column.is_primary_key and not self._is_sensitive(column.name)
        ][: self.settings.statistics_top_value_columns]
        semaphore = asyncio.Semaphore(self.settings.cross_search_concurrency)

        async def top_values(stats: ColumnStatistics, column: ColumnInfo) -> None:
            quoted = connector.quote_identifier(column.name)
            sql = (
                f"SELECT {quoted} AS value, COUNT(*) AS frequency FROM {quoted_table} "
                f"WHERE {quoted} IS NOT NULL GROUP BY {quoted} "
                f"ORDER BY frequency DESC LIMIT {top_n}"
            )
            async with semaphore:
                try:
                    grouped = await connector.execute(sql, read_only=True)
                except ConnectorError as exc:
                    logger.warning(
                        f"Top values skipped for {table.table_name}.{column.name}: {exc}",
                        extra={"data_source_id": data_source_id, "table": table.table_name},
                    )
                    return
            stats.top_values = [
                ValueFrequency(value=row["value"], count=int(row["frequency"]))
                for row in grouped.rows
            ]

        if row_count:
            await asyncio.gather(*(top_values(stats, column) for stats, column in candidates))

        return EntityStatistics(
            entity=table.table_name,
            row_count=row_count,
            columns=columns,
            truncated=len(profiled) < len(table.columns),
        )

    def _has_range(self, column: ColumnInfo) -> bool:
        return (column.is_numeric or column.is_temporal) and not self._is_sensitive(column.name)

    # -- relationships ----------------------------------------------------

    async def find_join_path(self, data_source_id: int, start: str, end: str) -> list[str]:
        graph = await self.schema_graph(data_source_id)
        return graph.find_join_path(start, end)

    async def get_database_compass(self, data_source_id: int) -> list[ForeignKey]:
        graph = await self.schema_graph(data_source_id)
        return graph.edges()

    async def search_related_tables(
        self,
        data_source_id: int,
        text: str,
        k: int | None = None,
    ) -> list[str]:
        if self.table_index is None:
            raise DiscoveryError("Semantic table search is not enabled for this deployment")
        return await self.table_index.nearest(data_source_id, text, k=k or 5)

    async def search_related_knowledge(
        self,
        data_source_id: int,
        text: str,
        limit: int = 3,
    ) -> list[KnowledgeItem]:
        """Definitions and reference queries for the data source's query language."""
        if self.knowledge_base is None:
            raise DiscoveryError("The knowledge base is not enabled for this deployment")
        record = await self.connections.record(data_source_id)
        return await self.knowledge_base.search(
            text, k=max(1, limit), source_type=query_language(record.type)
        )

    # -- keyword search ---------------------------------------------------

    async def cross_entity_search(
        self,
        data_source_id: int,
        keyword: str,
        limit_per_table: int | None = None,
    ) -> CrossSearchResult:
        """
        Case-insensitive substring search across every text column of every table.

        Each table contributes at most ``limit_per_table`` rows and tables
        without matches are omitted. Scans run concurrently (bounded by a
        semaphore) under one global timeout; on timeout the tables finished
        so far are returned with ``partial=True``.
        """
        if limit_per_table is None:
            limit_per_table = self.settings.cross_search_limit_per_table
        limit = max(0, limit_per_table)
        graph = await self.schema_graph(data_source_id)
        connector = await self.connections.sql_connector(data_source_id)
        tables = [table for table in graph.tables if any(col.is_text for col in table.columns)]

        semaphore = asyncio.Semaphore(self.settings.cross_search_concurrency)
        found: dict[str, TableMatches] = {}

        async def scan(table: TableInfo) -> None:
            async with semaphore:
                try:
                    match = await self._scan_table(connector, table, keyword, limit)
                except ConnectorError as exc:
                    logger.warning(
                        f"Cross-entity search skipped {table.table_name}: {exc}",
                        extra={"data_source_id": data_source_id, "table": table.table_name},
                    )
                    return
            if match is not None:
                found[table.table_name] = match

        partial = False
        try:
            async with asyncio.timeout(self.settings.cross_search_timeout_seconds):
                await asyncio.gather(*(scan(table) for table in tables))
        except TimeoutError:
            partial = True
            logger.warning(
                f"Cross-entity search timed out after {self.settings.cross_search_timeout_seconds}s "
                f"({len(found)} tables matched so far)",
                extra={"data_source_id": data_source_id},
            )

        return CrossSearchResult(
            keyword=keyword,
            results=[found[table.table_name] for table in tables if table.table_name in found],
            scanned_tables=len(tables),
            partial=partial,
        )

    async def _scan_table(
        self,
        connector: BaseConnector,
        table: TableInfo,
        keyword: str,
        limit: int,
    ) -> TableMatches | None:
        text_columns = [col.name for col in table.columns if col.is_text]
        predicates = " OR ".join(
            connector.text_match_clause(column, position)
            for position, column in enumerate(text_columns, start=1)
        )
        sql = (
            f"SELECT * FROM {connector.quote_identifier(table.table_name)} "
            f"WHERE {predicates} LIMIT {limit}"
        )
        pattern = f"%{escape_like(keyword)}%"
        result = await connector.execute(sql, [pattern] * len(text_columns))
        rows = result.rows[:limit]
        if not rows:
            return None

        needle = keyword.lower()
        matched = [
            column
            for column in text_columns
            if any(needle in str(row.get(column, "")).lower() for row in rows)
        ]
        return TableMatches(table=table.table_name, columns=matched, matches=rows)

    # -- query helpers used by validation tools ----------------------------

    async def explain(self, data_source_id: int, sql: str) -> None:
        connector = await self.connections.sql_connector(data_source_id)
        await connector.explain(sql.strip().rstrip(";"))

    async def run_query_sample(
        self,
        data_source_id: int,
        sql: str,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        """Run a read-only query wrapped as a sub-select capped at ``limit`` rows."""
        if not is_read_only_sql(sql):
            raise ValueError("Only SELECT or WITH queries can be sampled")
        connector = await self.connections.sql_connector(data_source_id)
        inner = sql.strip().rstrip(";")
        result = await connector.execute(
            f"SELECT * FROM ({inner}) AS sample_sub LIMIT {limit}", read_only=True
        )
        return result.rows

    async def record(self, data_source_id: int) -> DataSourceRecord:
        return await self.connections.record(data_source_id)
