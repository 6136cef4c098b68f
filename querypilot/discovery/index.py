"""
Table Index

Chroma collection of table descriptions used to narrow large schemas to
the tables most relevant to a question. One document per table, tagged
with its data source so several sources share one collection.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction

from querypilot.connectors.base import TableInfo

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """Raised when a Chroma-backed store fails."""


def table_document(table: TableInfo) -> str:
    """Text embedded for a table: name, comment and column summary."""
    lines = [f"Table: {table.table_name}"]
    if table.comment:
        lines.append(f"Description: {table.comment}")
    columns = []
    for column in table.columns:
        entry = f"{column.name} ({column.data_type})"
        if column.comment:
            entry += f": {column.comment}"
        columns.append(entry)
    if columns:
        lines.append("Columns: " + "; ".join(columns))
    return "\n".join(lines)


class ChromaCollection:
    """Persistent Chroma collection with an OpenAI embedding function."""

    def __init__(
        self,
        persist_directory: str | Path,
        collection_name: str,
        embedding_model: str = "text-embedding-3-small",
        openai_api_key: str | None = None,
        embedding_function: Any | None = None,
    ):
        self.persist_directory = Path(persist_directory)
        self.collection_name = collection_name
        self.embedding_model = embedding_model
        self.openai_api_key = openai_api_key
        self.embedding_function = embedding_function
        self.client: chromadb.ClientAPI | None = None
        self.collection: chromadb.Collection | None = None

    async def initialize(self) -> None:
        try:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._init_client)
        except Exception as e:
            logger.error(f"Failed to initialize {type(self).__name__}: {e}")
            raise VectorStoreError(f"Initialization failed: {e}") from e
        logger.info(
            f"{type(self).__name__} ready: collection={self.collection_name}, "
            f"persist_dir={self.persist_directory}"
        )

    def _init_client(self) -> None:
        self.client = chromadb.PersistentClient(
            path=str(self.persist_directory),
            settings=Settings(anonymized_telemetry=False, allow_reset=True),
        )
        if self.embedding_function is None:
            self.embedding_function = OpenAIEmbeddingFunction(
                api_key=self.openai_api_key,
                model_name=self.embedding_model,
            )
        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=self.embedding_function,
        )

    def _require_collection(self) -> chromadb.Collection:
        if self.collection is None:
            raise VectorStoreError(
                f"{type(self).__name__} not initialized. Call initialize() first."
            )
        return self.collection


class TableIndex(ChromaCollection):
    """
    Semantic lookup of tables.

    Usage:
        index = TableIndex(persist_directory="./chroma_data", openai_api_key="sk-...")
        await index.initialize()
        await index.index_tables(1, tables)
        await index.nearest(1, "monthly revenue by region", k=5)
    """

    def __init__(
        self,
        persist_directory: str | Path,
        collection_name: str = "querypilot_tables",
        **kwargs: Any,
    ):
        super().__init__(persist_directory, collection_name, **kwargs)

    async def index_tables(self, data_source_id: int, tables: list[TableInfo]) -> int:
        """Replace the data source's documents with one per table."""
        collection = self._require_collection()
        await asyncio.to_thread(collection.delete, where={"data_source_id": data_source_id})
        if not tables:
            return 0
        await asyncio.to_thread(
            collection.upsert,
            ids=[f"{data_source_id}:{table.table_name}" for table in tables],
            documents=[table_document(table) for table in tables],
            metadatas=[
                {"data_source_id": data_source_id, "table_name": table.table_name}
                for table in tables
            ],
        )
        logger.info(f"Indexed {len(tables)} tables for data source {data_source_id}")
        return len(tables)

    async def nearest(self, data_source_id: int, text: str, k: int = 5) -> list[str]:
        collection = self._require_collection()
        results = await asyncio.to_thread(
            collection.query,
            query_texts=[text],
            n_results=k,
            where={"data_source_id": data_source_id},
        )
        metadatas = (results.get("metadatas") or [[]])[0]
        return [metadata["table_name"] for metadata in metadatas]
