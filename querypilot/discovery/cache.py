"""
Schema Graph Cache

Per-data-source cache of built schema graphs, shared by all turns.

Readers take the cached graph without locking. Building is single-writer:
the first reader to miss (or an explicit resync) takes the data source's
lock and builds; readers that miss while a build is running wait on the
same lock and then read the fresh graph instead of building again.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from querypilot.connectors.base import TableInfo
from querypilot.discovery.graph import SchemaGraph, build_schema_graph

logger = logging.getLogger(__name__)

TableLoader = Callable[[], Awaitable[list[TableInfo]]]


class SchemaGraphCache:
    def __init__(self) -> None:
        self._graphs: dict[int, SchemaGraph] = {}
        self._versions: dict[int, int] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def peek(self, data_source_id: int) -> SchemaGraph | None:
        return self._graphs.get(data_source_id)

    def version(self, data_source_id: int) -> int:
        return self._versions.get(data_source_id, 0)

    async def get_or_build(self, data_source_id: int, loader: TableLoader) -> SchemaGraph:
        graph = self._graphs.get(data_source_id)
        if graph is not None:
            return graph
        async with self._locks[data_source_id]:
            graph = self._graphs.get(data_source_id)
            if graph is None:
                graph = await self._build(data_source_id, loader)
        return graph

    async def rebuild(self, data_source_id: int, loader: TableLoader) -> SchemaGraph:
        """Drop the cached graph and build a new version."""
        async with self._locks[data_source_id]:
            self._graphs.pop(data_source_id, None)
            return await self._build(data_source_id, loader)

    def invalidate(self, data_source_id: int) -> None:
        if self._graphs.pop(data_source_id, None) is not None:
            logger.info(
                f"Invalidated schema graph for data source {data_source_id}",
                extra={"data_source_id": data_source_id},
            )

    def clear(self) -> None:
        self._graphs.clear()

    async def _build(self, data_source_id: int, loader: TableLoader) -> SchemaGraph:
        tables = await loader()
        version = self._versions.get(data_source_id, 0) + 1
        graph = build_schema_graph(data_source_id, tables, version=version)
        self._graphs[data_source_id] = graph
        self._versions[data_source_id] = version
        return graph
