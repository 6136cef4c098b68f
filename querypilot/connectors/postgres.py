"""
PostgreSQL Connector

Async PostgreSQL connector using asyncpg.

Introspection reads one schema in four catalog queries (tables, columns,
primary keys, foreign keys) and stitches the results together, so the cost
does not grow with one round-trip per table.
"""

import logging
import time
from collections import defaultdict
from typing import Any

import asyncpg

from querypilot.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)

logger = logging.getLogger(__name__)

_TABLES_QUERY = """
    SELECT
        c.relname AS table_name,
        n.nspname AS table_schema,
        CASE c.relkind WHEN 'v' THEN 'VIEW' WHEN 'm' THEN 'MATERIALIZED VIEW' ELSE 'BASE TABLE' END
            AS table_type,
        c.reltuples::bigint AS row_estimate,
        obj_description(c.oid, 'pg_class') AS comment
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1
    AND c.relkind IN ('r', 'p', 'v', 'm')
    ORDER BY c.relname
"""

_COLUMNS_QUERY = """
    SELECT
        c.table_name,
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        col_description(
            (quote_ident(c.table_schema) || '.' || quote_ident(c.table_name))::regclass,
            c.ordinal_position
        ) AS comment
    FROM information_schema.columns c
    WHERE c.table_schema = $1
    ORDER BY c.table_name, c.ordinal_position
"""

_PRIMARY_KEYS_QUERY = """
    SELECT tc.table_name, kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
    AND tc.table_schema = $1
"""

_FOREIGN_KEYS_QUERY = """
    SELECT
        tc.table_name,
        kcu.column_name,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
    AND tc.table_schema = $1
    ORDER BY tc.table_name, kcu.ordinal_position
"""


class PostgresConnector(BaseConnector):
    """PostgreSQL connector with an asyncpg connection pool."""

    dialect = "postgresql"

    async def connect(self) -> None:
        """
        Create the asyncpg pool and check the server answers.

        Raises:
            ConnectionError: If connection fails
        """
        if self._connected and self._pool:
            logger.debug("Already connected, skipping connection")
            return

        try:
            logger.info(f"Connecting to PostgreSQL at {self.host}:{self.port}/{self.database}")
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.timeout,
                **self.kwargs,
            )
            async with self._pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info(f"Connected to PostgreSQL: {version.split(',')[0]}")
            self._connected = True
        except asyncpg.PostgresError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e
        except OSError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Connection error: {e}") from e

    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
        read_only: bool = False,
    ) -> QueryResult:
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")

        start_time = time.perf_counter()
        query_timeout = timeout or self.timeout

        try:
            async with self._pool.acquire() as conn:
                if read_only:
                    async with conn.transaction(readonly=True):
                        rows = await conn.fetch(query, *(params or []), timeout=query_timeout)
                else:
                    rows = await conn.fetch(query, *(params or []), timeout=query_timeout)
        except asyncpg.QueryCanceledError as e:
            logger.error(f"Query timed out after {query_timeout}s: {query[:100]}...")
            raise QueryError(f"Query timeout ({query_timeout}s)") from e
        except asyncpg.PostgresError as e:
            logger.error(f"Query failed: {e}\nQuery: {query[:200]}...")
            raise QueryError(f"Query execution failed: {e}") from e

        result_rows = [dict(row) for row in rows]
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f"Query executed in {execution_time_ms:.2f}ms, returned {len(result_rows)} rows"
        )
        return QueryResult(
            rows=result_rows,
            row_count=len(result_rows),
            columns=list(rows[0].keys()) if rows else [],
            execution_time_ms=execution_time_ms,
        )

    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")

        schema_filter = schema_name or "public"
        try:
            async with self._pool.acquire() as conn:
                tables = await conn.fetch(_TABLES_QUERY, schema_filter)
                columns = await conn.fetch(_COLUMNS_QUERY, schema_filter)
                primary_keys = await conn.fetch(_PRIMARY_KEYS_QUERY, schema_filter)
                foreign_keys = await conn.fetch(_FOREIGN_KEYS_QUERY, schema_filter)
        except asyncpg.PostgresError as e:
            logger.error(f"Schema introspection failed: {e}")
            raise SchemaError(f"Failed to introspect schema: {e}") from e

        pk_map: dict[str, set[str]] = defaultdict(set)
        for row in primary_keys:
            pk_map[row["table_name"]].add(row["column_name"])

        fk_map: dict[tuple[str, str], tuple[str, str]] = {
            (row["table_name"], row["column_name"]): (
                row["foreign_table_name"],
                row["foreign_column_name"],
            )
            for row in foreign_keys
        }

        columns_by_table: dict[str, list[ColumnInfo]] = defaultdict(list)
        for col in columns:
            table_name = col["table_name"]
            fk_target = fk_map.get((table_name, col["column_name"]))
            columns_by_table[table_name].append(
                ColumnInfo(
                    name=col["column_name"],
                    data_type=col["data_type"],
                    is_nullable=col["is_nullable"] == "YES",
                    default_value=col["column_default"],
                    comment=col["comment"],
                    is_primary_key=col["column_name"] in pk_map[table_name],
                    is_foreign_key=fk_target is not None,
                    foreign_table=fk_target[0] if fk_target else None,
                    foreign_column=fk_target[1] if fk_target else None,
                )
            )

        table_infos = [
            TableInfo(
                schema=row["table_schema"],
                table_name=row["table_name"],
                columns=columns_by_table.get(row["table_name"], []),
                row_count=int(row["row_estimate"]) if row["row_estimate"] and row["row_estimate"] > 0 else None,
                table_type=row["table_type"],
                comment=row["comment"],
            )
            for row in tables
        ]
        logger.info(f"Introspected schema '{schema_filter}': found {len(table_infos)} tables")
        return table_infos

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def text_match_clause(self, column: str, position: int) -> str:
        return (
            f"CAST({self.quote_identifier(column)} AS TEXT) "
            f"ILIKE {self.placeholder(position)} ESCAPE '\\'"
        )

    async def close(self) -> None:
        if not self._pool:
            logger.debug("No connection pool to close")
            return
        try:
            await self._pool.close()
        finally:
            self._pool = None
            self._connected = False
            logger.info("PostgreSQL connection closed")
