"""
Data source drivers.

SQL connectors (PostgreSQL, MySQL) share the BaseConnector interface; the
search-engine client speaks the Elasticsearch REST API.
"""

from querypilot.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ConnectorError,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)

__all__ = [
    "BaseConnector",
    "ColumnInfo",
    "ConnectionError",
    "ConnectorError",
    "QueryError",
    "QueryResult",
    "SchemaError",
    "TableInfo",
]
