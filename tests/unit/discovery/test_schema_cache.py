"""Unit tests for SchemaGraphCache."""

import asyncio

import pytest

from querypilot.discovery.cache import SchemaGraphCache


class TestSchemaGraphCache:
    """Test single-writer building and versioning."""

    @pytest.mark.asyncio
    async def test_concurrent_readers_build_once(self, sample_tables):
        cache = SchemaGraphCache()
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return sample_tables

        graphs = await asyncio.gather(*(cache.get_or_build(1, loader) for _ in range(5)))
        assert calls == 1
        assert all(graph is graphs[0] for graph in graphs)

    @pytest.mark.asyncio
    async def test_rebuild_bumps_version(self, sample_tables):
        cache = SchemaGraphCache()

        async def loader():
            return sample_tables

        first = await cache.get_or_build(1, loader)
        second = await cache.rebuild(1, loader)
        assert (first.version, second.version) == (1, 2)
        assert cache.peek(1) is second

    @pytest.mark.asyncio
    async def test_invalidate(self, sample_tables):
        cache = SchemaGraphCache()

        async def loader():
            return sample_tables

        await cache.get_or_build(1, loader)
        cache.invalidate(1)
        assert cache.peek(1) is None
        rebuilt = await cache.get_or_build(1, loader)
        assert rebuilt.version == 2

    @pytest.mark.asyncio
    async def test_data_sources_are_independent(self, sample_tables):
        cache = SchemaGraphCache()

        async def loader():
            return sample_tables

        await cache.get_or_build(1, loader)
        await cache.get_or_build(2, loader)
        cache.invalidate(1)
        assert cache.peek(2) is not None
        assert cache.version(2) == 1
