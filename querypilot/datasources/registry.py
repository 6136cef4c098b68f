"""
Data Source Registry

Read access to data-source connection metadata. Only ``get(id)`` is needed
by the engine; records are maintained elsewhere (admin UI, config file).

YAML format::

    datasources:
      - id: 1
        name: shop
        type: postgresql
        url: postgresql://reader:secret@db:5432/shop
      - id: 2
        name: logs
        type: elasticsearch
        url: https://elastic:secret@es:9200
        options:
          verify_tls: false
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import yaml

from querypilot.datasources.models import DataSourceRecord
from querypilot.discovery.errors import DataSourceNotFoundError

logger = logging.getLogger(__name__)


class DataSourceStore(ABC):
    @abstractmethod
    async def get(self, data_source_id: int) -> DataSourceRecord:
        """Return the record or raise DataSourceNotFoundError."""

    @abstractmethod
    async def list(self) -> list[DataSourceRecord]:
        """All configured data sources."""


class InMemoryDataSourceStore(DataSourceStore):
    def __init__(self, records: list[DataSourceRecord] | None = None) -> None:
        self._records = {record.id: record for record in records or []}

    def add(self, record: DataSourceRecord) -> None:
        self._records[record.id] = record

    async def get(self, data_source_id: int) -> DataSourceRecord:
        try:
            return self._records[data_source_id]
        except KeyError:
            raise DataSourceNotFoundError(data_source_id) from None

    async def list(self) -> list[DataSourceRecord]:
        return sorted(self._records.values(), key=lambda record: record.id)


class YamlDataSourceStore(InMemoryDataSourceStore):
    """Records loaded once from a YAML file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> list[DataSourceRecord]:
        if not self.path.exists():
            logger.warning(f"Data source registry not found: {self.path}")
            return []
        data = yaml.safe_load(self.path.read_text()) or {}
        records = [DataSourceRecord.model_validate(item) for item in data.get("datasources", [])]
        logger.info(f"Loaded {len(records)} data sources from {self.path}")
        return records

    def reload(self) -> None:
        self._records = {record.id: record for record in self._load()}
