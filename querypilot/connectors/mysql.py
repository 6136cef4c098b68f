"""
MySQL Connector

Async-compatible MySQL connector using mysql-connector-python.

The driver is synchronous, so query and schema work runs in worker threads
via asyncio.to_thread; each call opens and closes its own connection.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any

import mysql.connector
from mysql.connector import Error as MySQLError

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


class MySQLConnector(BaseConnector):
    """MySQL connector using mysql-connector-python."""

    dialect = "mysql"

    def __init__(
        self,
        host: str,
        port: int = 3306,
        database: str = "",
        user: str = "root",
        password: str = "",
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ) -> None:
        super().__init__(
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            pool_size=pool_size,
            timeout=timeout,
            **kwargs,
        )

    async def connect(self) -> None:
        """Validate connection credentials."""
        if self._connected:
            return
        try:
            await asyncio.to_thread(self._test_connection_sync)
        except MySQLError as exc:
            logger.error(f"MySQL connection failed: {exc}")
            raise ConnectionError(f"Failed to connect to MySQL: {exc}") from exc
        self._connected = True

    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
        read_only: bool = False,
    ) -> QueryResult:
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")

        start_time = time.perf_counter()
        try:
            rows, columns = await asyncio.to_thread(
                self._execute_sync, query, params, timeout or self.timeout, read_only
            )
        except MySQLError as exc:
            logger.error(f"MySQL query failed: {exc}\nQuery: {query[:200]}...")
            raise QueryError(f"Query execution failed: {exc}") from exc

        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
        )

    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")
        try:
            return await asyncio.to_thread(self._get_schema_sync, schema_name or self.database)
        except MySQLError as exc:
            logger.error(f"MySQL schema introspection failed: {exc}")
            raise SchemaError(f"Failed to introspect schema: {exc}") from exc

    def placeholder(self, position: int) -> str:
        return "%s"

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def text_match_clause(self, column: str, position: int) -> str:
        # Backslash is also the string-literal escape in MySQL.
        return (
            f"CAST({self.quote_identifier(column)} AS CHAR) "
            f"LIKE {self.placeholder(position)} ESCAPE '\\\\'"
        )

    async def close(self) -> None:
        self._connected = False

    def _connection_kwargs(self, query_timeout: int | None = None) -> dict[str, Any]:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database or None,
            "user": self.user,
            "password": self.password,
            "autocommit": True,
            "connection_timeout": query_timeout or self.timeout,
        }
        kwargs.update(self.kwargs)
        return kwargs

    def _test_connection_sync(self) -> None:
        conn = mysql.connector.connect(**self._connection_kwargs())
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT VERSION()")
            cursor.fetchone()
            cursor.close()
        finally:
            conn.close()

    def _execute_sync(
        self,
        query: str,
        params: list[Any] | None,
        query_timeout: int,
        read_only: bool = False,
    ) -> tuple[list[dict[str, Any]], list[str]]:
        conn = mysql.connector.connect(**self._connection_kwargs(query_timeout))
        if read_only:
            conn.start_transaction(readonly=True)
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(query, tuple(params) if params else None)
            if not cursor.with_rows:
                return [], []
            rows = cursor.fetchall()
            columns = [col[0] for col in cursor.description]
            return rows, columns
        finally:
            cursor.close()
            if read_only:
                conn.rollback()
            conn.close()

    def _get_schema_sync(self, schema_name: str) -> list[TableInfo]:
        conn = mysql.connector.connect(**self._connection_kwargs())
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(
                """
                SELECT table_name, table_type, table_rows, table_comment
                FROM information_schema.tables
                WHERE table_schema = %s
                ORDER BY table_name
                """,
                (schema_name,),
            )
            tables = cursor.fetchall()

            cursor.execute(
                """
                SELECT table_name, column_name, column_type, is_nullable,
                       column_default, column_key, column_comment
                FROM information_schema.columns
                WHERE table_schema = %s
                ORDER BY table_name, ordinal_position
                """,
                (schema_name,),
            )
            columns = cursor.fetchall()

            cursor.execute(
                """
                SELECT table_name, column_name,
                       referenced_table_name, referenced_column_name
                FROM information_schema.key_column_usage
                WHERE table_schema = %s AND referenced_table_name IS NOT NULL
                ORDER BY table_name, ordinal_position
                """,
                (schema_name,),
            )
            fk_map = {
                (str(row["table_name"]), str(row["column_name"])): (
                    str(row["referenced_table_name"]),
                    str(row["referenced_column_name"]),
                )
                for row in cursor.fetchall()
            }
        finally:
            cursor.close()
            conn.close()

        columns_by_table: dict[str, list[ColumnInfo]] = defaultdict(list)
        for col in columns:
            table_name = str(col["table_name"])
            col_name = str(col["column_name"])
            fk_target = fk_map.get((table_name, col_name))
            columns_by_table[table_name].append(
                ColumnInfo(
                    name=col_name,
                    data_type=str(col["column_type"]),
                    is_nullable=str(col["is_nullable"]).upper() == "YES",
                    default_value=(
                        str(col["column_default"]) if col["column_default"] is not None else None
                    ),
                    comment=col["column_comment"] or None,
                    is_primary_key=str(col["column_key"]).upper() == "PRI",
                    is_foreign_key=fk_target is not None,
                    foreign_table=fk_target[0] if fk_target else None,
                    foreign_column=fk_target[1] if fk_target else None,
                )
            )

        return [
            TableInfo(
                schema=schema_name,
                table_name=str(row["table_name"]),
                columns=columns_by_table.get(str(row["table_name"]), []),
                row_count=int(row["table_rows"]) if row.get("table_rows") is not None else None,
                table_type=str(row["table_type"]),
                comment=row.get("table_comment") or None,
            )
            for row in tables
        ]
