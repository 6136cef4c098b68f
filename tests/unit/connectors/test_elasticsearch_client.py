"""
Unit tests for ElasticsearchClient

Tests the REST client against an httpx mock transport:
- Index listing hides system indices
- Mapping flattening including multi-fields and nested objects
- Query-string search and error translation
- Field statistics for numeric, keyword and text fields
- Query validation
"""

import json

import httpx
import pytest

from querypilot.connectors.base import ConnectionError, QueryError, SchemaError
from querypilot.connectors.elasticsearch import ElasticsearchClient, flatten_mapping

MAPPING = {
    "logs-2026.10": {
        "mappings": {
            "properties": {
                "@timestamp": {"type": "date"},
                "level": {"type": "keyword"},
                "status": {"type": "integer"},
                "message": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
                "note": {"type": "text"},
                "user": {"properties": {"name": {"type": "keyword"}}},
            }
        }
    }
}


class FakeElasticsearch:
    """Routes requests to canned responses and records them."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path == "/":
            return httpx.Response(200, json={"version": {"number": "8.15.0"}})
        if path == "/_cat/indices":
            return httpx.Response(
                200,
                json=[
                    {"index": "logs-2026.10", "docs.count": "1200", "health": "green"},
                    {"index": ".kibana", "docs.count": "3", "health": "green"},
                    {"index": "audit", "docs.count": None, "health": "yellow"},
                ],
            )
        if path.endswith("/_mapping"):
            if path.startswith("/missing"):
                return httpx.Response(
                    404, json={"error": {"type": "index_not_found_exception", "reason": "no such index [missing]"}}
                )
            return httpx.Response(200, json=MAPPING)
        if path.endswith("/_validate/query"):
            query = body["query"]["query_string"]["query"]
            if "((" in query:
                return httpx.Response(
                    200,
                    json={
                        "valid": False,
                        "explanations": [{"valid": False, "error": "Cannot parse '(('"}],
                    },
                )
            return httpx.Response(200, json={"valid": True, "explanations": []})
        if path.endswith("/_count"):
            return httpx.Response(200, json={"count": 42})
        if path.endswith("/_search"):
            if "query_string" in json.dumps(body) and "bad:[" in json.dumps(body):
                return httpx.Response(400, json={"error": {"reason": "Failed to parse query"}})
            aggs = body.get("aggs", {})
            if "stats" in aggs:
                return httpx.Response(
                    200, json={"aggregations": {"stats": {"count": 3, "min": 200, "max": 500}}}
                )
            if "top" in aggs:
                return httpx.Response(
                    200,
                    json={
                        "aggregations": {
                            "top": {"buckets": [{"key": "error", "doc_count": 7}]}
                        }
                    },
                )
            if "earliest" in aggs:
                return httpx.Response(
                    200,
                    json={
                        "aggregations": {
                            "earliest": {"value_as_string": "2026-10-01T00:00:00Z"},
                            "latest": {"value_as_string": "2026-10-16T23:59:59Z"},
                        }
                    },
                )
            return httpx.Response(
                200,
                json={"hits": {"hits": [{"_source": {"level": "error", "status": 500}}]}},
            )
        return httpx.Response(404, text="not found")


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def client(fake_es):
    client = ElasticsearchClient(host="localhost", port=9200)
    client._client = httpx.AsyncClient(
        base_url=client.base_url, transport=httpx.MockTransport(fake_es)
    )
    return client


class TestFlattenMapping:
    def test_multi_fields_and_objects(self):
        fields = flatten_mapping(MAPPING["logs-2026.10"]["mappings"]["properties"])

        assert fields["message"] == "text"
        assert fields["message.keyword"] == "keyword"
        assert fields["user.name"] == "keyword"
        assert "user" not in fields

    def test_nested_type_is_kept(self):
        fields = flatten_mapping(
            {"items": {"type": "nested", "properties": {"sku": {"type": "keyword"}}}}
        )
        assert fields == {"items.sku": "keyword", "items": "nested"}


class TestElasticsearchClient:
    """Test ElasticsearchClient requests and responses."""

    @pytest.mark.asyncio
    async def test_connect(self, client):
        await client.connect()
        assert client.is_connected
        await client.close()
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        client = ElasticsearchClient(host="localhost")
        client._client = httpx.AsyncClient(
            base_url=client.base_url, transport=httpx.MockTransport(refuse)
        )
        with pytest.raises(ConnectionError):
            await client.connect()

    @pytest.mark.asyncio
    async def test_list_indices_hides_system_indices(self, client):
        indices = await client.list_indices()

        assert [index["name"] for index in indices] == ["audit", "logs-2026.10"]
        assert indices[0]["doc_count"] == 0
        assert indices[1]["doc_count"] == 1200

    @pytest.mark.asyncio
    async def test_missing_index_mapping(self, client):
        with pytest.raises(SchemaError, match="no such index"):
            await client.get_mapping("missing")

    @pytest.mark.asyncio
    async def test_search_sends_query_string(self, client, fake_es):
        hits = await client.search("logs-*", "level:error AND status:500", size=3)

        assert hits == [{"level": "error", "status": 500}]
        body = json.loads(fake_es.requests[-1].content)
        assert body == {"size": 3, "query": {"query_string": {"query": "level:error AND status:500"}}}

    @pytest.mark.asyncio
    async def test_search_error_becomes_query_error(self, client):
        with pytest.raises(QueryError, match="Failed to parse query"):
            await client.search("logs-*", "bad:[")

    @pytest.mark.asyncio
    async def test_index_summary_with_time_range(self, client):
        summary = await client.index_summary("logs-2026.10")

        assert summary["doc_count"] == 42
        assert summary["field_count"] == 7
        assert summary["earliest"] == "2026-10-01T00:00:00Z"

    @pytest.mark.asyncio
    async def test_numeric_field_stats(self, client):
        stats = await client.field_stats("logs-2026.10", "status")
        assert stats["stats"]["max"] == 500

    @pytest.mark.asyncio
    async def test_text_field_uses_keyword_subfield(self, client, fake_es):
        stats = await client.field_stats("logs-2026.10", "message")

        assert stats["top_values"] == [{"value": "error", "count": 7}]
        body = json.loads(fake_es.requests[-1].content)
        assert body["aggs"]["top"]["terms"]["field"] == "message.keyword"

    @pytest.mark.asyncio
    async def test_text_field_without_keyword(self, client):
        with pytest.raises(SchemaError, match="keyword sub-field"):
            await client.field_stats("logs-2026.10", "note")

    @pytest.mark.asyncio
    async def test_unknown_field(self, client):
        with pytest.raises(SchemaError, match="not found"):
            await client.field_stats("logs-2026.10", "nope")

    @pytest.mark.asyncio
    async def test_validate_query(self, client):
        assert await client.validate_query("logs-*", "level:error") == {"valid": True, "errors": []}

        result = await client.validate_query("logs-*", "((")
        assert result == {"valid": False, "errors": ["Cannot parse '(('"]}
