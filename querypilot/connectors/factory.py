"""Connector factory for configured data sources."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from querypilot.connectors.base import BaseConnector
from querypilot.connectors.elasticsearch import ElasticsearchClient
from querypilot.connectors.mysql import MySQLConnector
from querypilot.connectors.postgres import PostgresConnector
from querypilot.datasources.models import DataSourceRecord

_SCHEMES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "mysql": "mysql",
    "elasticsearch": "elasticsearch",
    "http": "elasticsearch",
    "https": "elasticsearch",
}


def infer_database_type(database_url: str) -> str:
    """Infer logical data source type from connection URL scheme."""
    scheme = urlparse(database_url).scheme.split("+")[0].lower()
    if scheme not in _SCHEMES:
        raise ValueError(f"Unsupported data source URL scheme: {scheme}")
    return _SCHEMES[scheme]


def create_connector(
    record: DataSourceRecord,
    *,
    pool_size: int = 5,
    timeout: int = 30,
) -> BaseConnector:
    """Create an (unconnected) SQL connector for ``record``."""
    url = record.url.get_secret_value()
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(f"Invalid URL for data source {record.id}: host is required.")

    common = {
        "host": parsed.hostname,
        "database": parsed.path.lstrip("/"),
        "password": unquote(parsed.password or ""),
        "pool_size": pool_size,
        "timeout": timeout,
        **record.options,
    }
    if record.type == "postgresql":
        return PostgresConnector(
            port=parsed.port or 5432,
            user=unquote(parsed.username or "postgres"),
            **common,
        )
    if record.type == "mysql":
        return MySQLConnector(
            port=parsed.port or 3306,
            user=unquote(parsed.username or "root"),
            **common,
        )
    raise ValueError(f"Data source {record.id} ({record.type}) is not a SQL data source")


def create_search_client(record: DataSourceRecord, *, timeout: int = 30) -> ElasticsearchClient:
    """Create a search-engine client for ``record``."""
    if record.type != "elasticsearch":
        raise ValueError(f"Data source {record.id} ({record.type}) is not a search engine")
    parsed = urlparse(record.url.get_secret_value())
    if not parsed.hostname:
        raise ValueError(f"Invalid URL for data source {record.id}: host is required.")
    scheme = "https" if parsed.scheme in ("https", "elasticsearch+https") else "http"
    return ElasticsearchClient(
        host=parsed.hostname,
        port=parsed.port or 9200,
        user=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
        scheme=scheme,
        timeout=timeout,
        verify_tls=record.options.get("verify_tls", True),
    )
