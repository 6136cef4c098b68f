"""
Data Source Connections

Keeps one connected driver per data source and hands it out to concurrent
turns. Creation is guarded by a per-data-source lock so two turns never
open duplicate pools.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable

from querypilot.connectors.base import BaseConnector, QueryResult
from querypilot.connectors.elasticsearch import ElasticsearchClient
from querypilot.connectors.factory import create_connector, create_search_client
from querypilot.datasources.models import DataSourceRecord
from querypilot.datasources.registry import DataSourceStore

logger = logging.getLogger(__name__)


class DataSourceConnections:
    def __init__(
        self,
        store: DataSourceStore,
        pool_size: int = 5,
        query_timeout: int = 30,
        connector_factory: Callable[[DataSourceRecord], BaseConnector] | None = None,
        search_client_factory: Callable[[DataSourceRecord], ElasticsearchClient] | None = None,
    ) -> None:
        self.store = store
        self.query_timeout = query_timeout
        self._connector_factory = connector_factory or (
            lambda record: create_connector(record, pool_size=pool_size, timeout=query_timeout)
        )
        self._search_client_factory = search_client_factory or (
            lambda record: create_search_client(record, timeout=query_timeout)
        )
        self._connectors: dict[int, BaseConnector] = {}
        self._search_clients: dict[int, ElasticsearchClient] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def record(self, data_source_id: int) -> DataSourceRecord:
        return await self.store.get(data_source_id)

    async def sql_connector(self, data_source_id: int) -> BaseConnector:
        connector = self._connectors.get(data_source_id)
        if connector is not None and connector.is_connected:
            return connector
        async with self._locks[data_source_id]:
            connector = self._connectors.get(data_source_id)
            if connector is None or not connector.is_connected:
                record = await self.store.get(data_source_id)
                connector = self._connector_factory(record)
                await connector.connect()
                self._connectors[data_source_id] = connector
                logger.info(
                    f"Opened {record.type} connection for data source {data_source_id}",
                    extra={"data_source_id": data_source_id},
                )
        return connector

    async def search_client(self, data_source_id: int) -> ElasticsearchClient:
        client = self._search_clients.get(data_source_id)
        if client is not None and client.is_connected:
            return client
        async with self._locks[data_source_id]:
            client = self._search_clients.get(data_source_id)
            if client is None or not client.is_connected:
                record = await self.store.get(data_source_id)
                client = self._search_client_factory(record)
                await client.connect()
                self._search_clients[data_source_id] = client
        return client

    async def run_read_only_query(self, data_source_id: int, sql: str) -> QueryResult:
        """Run an already validated statement on the data source's SQL connection."""
        connector = await self.sql_connector(data_source_id)
        return await connector.execute(sql, read_only=True)

    async def close(self) -> None:
        for connector in list(self._connectors.values()):
            await connector.close()
        for client in list(self._search_clients.values()):
            await client.close()
        self._connectors.clear()
        self._search_clients.clear()
