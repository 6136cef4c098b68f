"""
Knowledge Base

Business term definitions and reference queries kept in a Chroma
collection. An item with an example query is a few-shot reference for
"how was this asked and answered before"; an item without one defines a
domain term ("GMV", "active customer"). Items are tagged with the query
language they apply to so SQL and search-engine sources do not mix.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from querypilot.discovery.index import ChromaCollection, VectorStoreError

logger = logging.getLogger(__name__)


class KnowledgeItem(BaseModel):
    keyword: str = Field(..., min_length=1, description="Term or example question")
    description: str = ""
    example_query: str | None = Field(None, description="Query that answers the keyword")
    source_type: str = Field("sql", description="Query language the item applies to")

    @property
    def is_example(self) -> bool:
        return bool(self.example_query and self.example_query.strip())

    @property
    def item_id(self) -> str:
        digest = hashlib.sha1(self.keyword.encode("utf-8")).hexdigest()[:16]
        return f"{self.source_type}:{digest}"

    def document(self) -> str:
        return f"{self.keyword}\n{self.description}".strip()

    def metadata(self) -> dict[str, str]:
        # Chroma metadata values cannot be None.
        return {
            "keyword": self.keyword,
            "description": self.description,
            "example_query": self.example_query or "",
            "source_type": self.source_type,
        }


def load_knowledge_file(path: str | Path) -> list[KnowledgeItem]:
    """Read items from a YAML file with a top-level ``knowledge`` list."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Knowledge file not found: {path}")
    payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    try:
        return [KnowledgeItem.model_validate(entry) for entry in payload.get("knowledge", [])]
    except ValidationError as e:
        raise VectorStoreError(f"Invalid knowledge file {path}: {e}") from e


def render_knowledge(items: list[KnowledgeItem], language: str = "sql") -> str:
    """Markdown with a definitions section and a reference-queries section."""
    definitions = [
        f"- **{item.keyword}**: {item.description}" for item in items if not item.is_example
    ]
    examples = [
        f'- **User question**: "{item.keyword}"\n  **Query**: `{item.example_query.strip()}`'
        for item in items
        if item.is_example
    ]
    sections = []
    if definitions:
        sections.append("**Business definitions**:\n" + "\n".join(definitions))
    if examples:
        sections.append(f"**Reference {language} queries**:\n" + "\n".join(examples))
    return "\n\n".join(sections)


class KnowledgeBase(ChromaCollection):
    """
    Semantic lookup of business knowledge.

    Usage:
        kb = KnowledgeBase(persist_directory="./chroma_data", openai_api_key="sk-...")
        await kb.initialize()
        await kb.load_file("config/knowledge.yaml")
        await kb.search("monthly GMV", k=3, source_type="sql")
    """

    def __init__(
        self,
        persist_directory: str | Path,
        collection_name: str = "querypilot_knowledge",
        **kwargs: Any,
    ):
        super().__init__(persist_directory, collection_name, **kwargs)

    async def upsert(self, items: list[KnowledgeItem]) -> int:
        if not items:
            return 0
        collection = self._require_collection()
        await asyncio.to_thread(
            collection.upsert,
            ids=[item.item_id for item in items],
            documents=[item.document() for item in items],
            metadatas=[item.metadata() for item in items],
        )
        logger.info(f"Upserted {len(items)} knowledge items")
        return len(items)

    async def load_file(self, path: str | Path) -> int:
        items = await asyncio.to_thread(load_knowledge_file, path)
        return await self.upsert(items)

    async def delete(self, keyword: str, source_type: str = "sql") -> None:
        collection = self._require_collection()
        item = KnowledgeItem(keyword=keyword, source_type=source_type)
        await asyncio.to_thread(collection.delete, ids=[item.item_id])

    async def search(
        self,
        text: str,
        k: int = 3,
        source_type: str | None = None,
    ) -> list[KnowledgeItem]:
        collection = self._require_collection()
        query: dict[str, Any] = {"query_texts": [text], "n_results": k}
        if source_type is not None:
            query["where"] = {"source_type": source_type}
        results = await asyncio.to_thread(collection.query, **query)
        metadatas = (results.get("metadatas") or [[]])[0]
        return [
            KnowledgeItem(
                keyword=metadata["keyword"],
                description=metadata.get("description", ""),
                example_query=metadata.get("example_query") or None,
                source_type=metadata.get("source_type", "sql"),
            )
            for metadata in metadatas
        ]
