"""
Elasticsearch Client

Thin async client over the Elasticsearch REST API (httpx). Covers what the
search agent needs: index listing, flattened mappings, document samples,
Lucene query-string search, field statistics and query validation.
"""

import logging
from typing import Any

import httpx

from querypilot.connectors.base import ConnectionError, ConnectorError, QueryError, SchemaError

logger = logging.getLogger(__name__)

NUMERIC_TYPES = {
    "long",
    "integer",
    "short",
    "byte",
    "double",
    "float",
    "half_float",
    "scaled_float",
    "unsigned_long",
}
DATE_TYPES = {"date", "date_nanos"}


class SearchEngineError(ConnectorError):
    """Error returned by the search engine."""


def flatten_mapping(properties: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested mapping ``properties`` into ``{"a.b": "keyword"}``."""
    fields: dict[str, str] = {}
    for name, spec in properties.items():
        path = f"{prefix}{name}"
        if "properties" in spec:
            fields.update(flatten_mapping(spec["properties"], prefix=f"{path}."))
            if spec.get("type") == "nested":
                fields[path] = "nested"
            continue
        fields[path] = spec.get("type", "object")
        for sub_name, sub_spec in (spec.get("fields") or {}).items():
            fields[f"{path}.{sub_name}"] = sub_spec.get("type", "object")
    return fields


class ElasticsearchClient:
    """Async Elasticsearch REST client."""

    dialect = "elasticsearch"

    def __init__(
        self,
        host: str,
        port: int = 9200,
        user: str | None = None,
        password: str | None = None,
        scheme: str = "http",
        timeout: int = 30,
        verify_tls: bool = True,
    ):
        self.base_url = f"{scheme}://{host}:{port}"
        auth = (user, password) if user else None
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=float(timeout),
            verify=verify_tls,
        )
        self._connected = False
        logger.info(f"Initialized ElasticsearchClient for {self.base_url}")

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            info = await self._request("GET", "/")
        except httpx.HTTPError as exc:
            raise ConnectionError(f"Failed to connect to Elasticsearch: {exc}") from exc
        version = (info.get("version") or {}).get("number", "unknown")
        logger.info(f"Connected to Elasticsearch {version} at {self.base_url}")
        self._connected = True

    async def close(self) -> None:
        await self._client.aclose()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._client.request(method, path, json=json, params=params)
        if response.status_code >= 400:
            try:
                reason = response.json().get("error", response.text)
            except ValueError:
                reason = response.text
            if isinstance(reason, dict):
                reason = reason.get("reason") or reason.get("type") or str(reason)
            raise SearchEngineError(f"Elasticsearch {method} {path} failed: {reason}")
        return response.json()

    async def list_indices(self) -> list[dict[str, Any]]:
        rows = await self._request(
            "GET", "/_cat/indices", params={"format": "json", "h": "index,docs.count,health"}
        )
        indices = [
            {
                "name": row["index"],
                "doc_count": int(row.get("docs.count") or 0),
                "health": row.get("health"),
            }
            for row in rows
            if not row["index"].startswith(".")
        ]
        return sorted(indices, key=lambda item: item["name"])

    async def get_mapping(self, index: str) -> dict[str, str]:
        try:
            data = await self._request("GET", f"/{index}/_mapping")
        except SearchEngineError as exc:
            raise SchemaError(str(exc)) from exc
        fields: dict[str, str] = {}
        for index_body in data.values():
            properties = (index_body.get("mappings") or {}).get("properties") or {}
            fields.update(flatten_mapping(properties))
        return fields

    async def sample(self, index: str, size: int = 5) -> list[dict[str, Any]]:
        data = await self._request(
            "POST", f"/{index}/_search", json={"size": size, "query": {"match_all": {}}}
        )
        return [hit.get("_source", {}) for hit in data["hits"]["hits"]]

    async def search(self, index: str, query_string: str, size: int = 10) -> list[dict[str, Any]]:
        body = {"size": size, "query": {"query_string": {"query": query_string}}}
        try:
            data = await self._request("POST", f"/{index}/_search", json=body)
        except SearchEngineError as exc:
            raise QueryError(str(exc)) from exc
        return [hit.get("_source", {}) for hit in data["hits"]["hits"]]

    async def count(self, index: str, query_string: str | None = None) -> int:
        body = {"query": {"query_string": {"query": query_string}}} if query_string else None
        data = await self._request("POST", f"/{index}/_count", json=body)
        return int(data.get("count", 0))

    async def index_summary(self, index: str, time_field: str = "@timestamp") -> dict[str, Any]:
        mapping = await self.get_mapping(index)
        summary: dict[str, Any] = {
            "index": index,
            "doc_count": await self.count(index),
            "field_count": len(mapping),
        }
        if mapping.get(time_field) in DATE_TYPES:
            data = await self._request(
                "POST",
                f"/{index}/_search",
                json={
                    "size": 0,
                    "aggs": {
                        "earliest": {"min": {"field": time_field}},
                        "latest": {"max": {"field": time_field}},
                    },
                },
            )
            aggs = data.get("aggregations", {})
            summary["time_field"] = time_field
            summary["earliest"] = aggs.get("earliest", {}).get("value_as_string")
            summary["latest"] = aggs.get("latest", {}).get("value_as_string")
        return summary

    async def field_stats(self, index: str, field: str, top: int = 10) -> dict[str, Any]:
        mapping = await self.get_mapping(index)
        field_type = mapping.get(field)
        if field_type is None:
            raise SchemaError(f"Field '{field}' not found in index '{index}'")

        if field_type in NUMERIC_TYPES or field_type in DATE_TYPES:
            data = await self._request(
                "POST",
                f"/{index}/_search",
                json={"size": 0, "aggs": {"stats": {"stats": {"field": field}}}},
            )
            return {"field": field, "type": field_type, "stats": data["aggregations"]["stats"]}

        agg_field = field
        if field_type == "text":
            if mapping.get(f"{field}.keyword") != "keyword":
                raise SchemaError(
                    f"Field '{field}' is full-text without a keyword sub-field; "
                    "term statistics are not available"
                )
            agg_field = f"{field}.keyword"

        data = await self._request(
            "POST",
            f"/{index}/_search",
            json={"size": 0, "aggs": {"top": {"terms": {"field": agg_field, "size": top}}}},
        )
        buckets = data["aggregations"]["top"]["buckets"]
        return {
            "field": field,
            "type": field_type,
            "top_values": [{"value": b["key"], "count": b["doc_count"]} for b in buckets],
        }

    async def validate_query(self, index: str, query_string: str) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"/{index}/_validate/query",
            params={"explain": "true"},
            json={"query": {"query_string": {"query": query_string}}},
        )
        valid = bool(data.get("valid"))
        errors = [
            entry.get("error")
            for entry in data.get("explanations") or []
            if not entry.get("valid", True) and entry.get("error")
        ]
        if not valid and data.get("error"):
            errors.append(data["error"])
        return {"valid": valid, "errors": errors}

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"<ElasticsearchClient {self.base_url} ({status})>"
