"""
Base Database Connector

Abstract base class for the SQL drivers behind a data source. Provides a
consistent async interface for connecting, querying, introspecting and
dry-running SQL, plus the dialect details (identifier quoting, parameter
placeholders, case-insensitive matching) the discovery layer needs to build
its own statements safely.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

TEXT_TYPE_MARKERS = ("char", "text", "string", "enum", "uuid", "json", "citext")
_NUMERIC_TYPE = re.compile(
    r"^(tiny|small|medium|big)?int(eger|\d)?\b|^(numeric|decimal|real|double|float|money|\w*serial)"
)
_TEMPORAL_TYPE = re.compile(r"^(date|datetime|time|timestamp|year)\b")


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally (escape character: backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ============================================================================
# Data Models
# ============================================================================


class ColumnInfo(BaseModel):
    """Information about a database column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    is_nullable: bool = Field(True, description="Whether column can be NULL")
    default_value: str | None = Field(None, description="Default value if any")
    comment: str | None = Field(None, description="Column comment")
    is_primary_key: bool = Field(default=False, description="Is part of primary key")
    is_foreign_key: bool = Field(default=False, description="Is a foreign key")
    foreign_table: str | None = Field(None, description="Referenced table if FK")
    foreign_column: str | None = Field(None, description="Referenced column if FK")

    @property
    def is_text(self) -> bool:
        data_type = self.data_type.lower()
        return any(marker in data_type for marker in TEXT_TYPE_MARKERS)

    @property
    def is_numeric(self) -> bool:
        return bool(_NUMERIC_TYPE.match(self.data_type.lower()))

    @property
    def is_temporal(self) -> bool:
        return bool(_TEMPORAL_TYPE.match(self.data_type.lower()))


class TableInfo(BaseModel):
    """Information about a database table."""

    schema_name: str = Field(..., alias="schema", description="Schema/database name")
    table_name: str = Field(..., description="Table name")
    columns: list[ColumnInfo] = Field(..., description="List of columns")
    row_count: int | None = Field(None, description="Approximate row count")
    table_type: str = Field(default="TABLE", description="TABLE, VIEW, etc.")
    comment: str | None = Field(None, description="Table comment")

    model_config = ConfigDict(populate_by_name=True)

    def column(self, name: str) -> ColumnInfo | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class QueryResult(BaseModel):
    """Result from query execution."""

    rows: list[dict[str, Any]] = Field(..., description="Query result rows")
    row_count: int = Field(..., description="Number of rows returned")
    columns: list[str] = Field(..., description="Column names")
    execution_time_ms: float = Field(..., description="Query execution time in ms")


class ConnectorError(Exception):
    """Base exception for connector errors."""


class ConnectionError(ConnectorError):
    """Error establishing or managing database connection."""


class QueryError(ConnectorError):
    """Error executing database query."""


class SchemaError(ConnectorError):
    """Error introspecting database schema."""


# ============================================================================
# Base Connector
# ============================================================================


class BaseConnector(ABC):
    """
    Abstract base class for SQL connectors.

    Usage:
        async with PostgresConnector(host="localhost", ...) as connector:
            tables = await connector.get_schema()
            result = await connector.execute(
                f"SELECT * FROM {connector.quote_identifier('users')} "
                f"WHERE id = {connector.placeholder(1)}",
                [123],
            )
    """

    dialect: str = "sql"

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.timeout = timeout
        self.kwargs = kwargs

        self._pool = None
        self._connected = False

        logger.info(f"Initialized {self.__class__.__name__} for {user}@{host}:{port}/{database}")

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the connection (idempotent).

        Raises:
            ConnectionError: If connection fails
        """

    @abstractmethod
    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
        read_only: bool = False,
    ) -> QueryResult:
        """
        Execute a SQL query.

        With ``read_only`` the statement runs inside a read-only transaction,
        so the database itself rejects any write it attempts.

        Raises:
            QueryError: If query execution fails
            ConnectionError: If not connected
        """

    @abstractmethod
    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """
        Introspect tables, columns and foreign keys.

        Raises:
            SchemaError: If schema introspection fails
        """

    @abstractmethod
    async def close(self) -> None:
        """Close connections (idempotent)."""

    @abstractmethod
    def placeholder(self, position: int) -> str:
        """Parameter placeholder for the 1-based ``position``."""

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def text_match_clause(self, column: str, position: int) -> str:
        """Case-insensitive substring predicate on ``column`` bound to a parameter."""
        return (
            f"LOWER(CAST({self.quote_identifier(column)} AS CHAR)) "
            f"LIKE LOWER({self.placeholder(position)}) ESCAPE '\\'"
        )

    async def explain(self, sql: str) -> QueryResult:
        """Dry-run ``sql`` through the planner without executing it."""
        return await self.execute(f"EXPLAIN {sql}", read_only=True)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self.user}@{self.host}:{self.port}/{self.database} ({status})>"
