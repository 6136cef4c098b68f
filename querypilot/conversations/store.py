"""Conversation history and pending-role storage."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import UTC, datetime

import asyncpg

from querypilot.models.state import ChatMessage

MAX_CONVERSATION_MESSAGES = 200

_CREATE_MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS querypilot_messages (
    id BIGSERIAL PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    message JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_MESSAGES_INDEX = """
CREATE INDEX IF NOT EXISTS querypilot_messages_conversation_idx
ON querypilot_messages (conversation_id, id);
"""

_CREATE_CONVERSATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS querypilot_conversations (
    conversation_id TEXT PRIMARY KEY,
    pending_role TEXT,
    updated_at TIMESTAMPTZ NOT NULL
);
"""


class ConversationStore(ABC):
    """Append-only message log per conversation plus the role awaiting a reply."""

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def append(self, conversation_id: str, message: ChatMessage) -> None:
        ...

    @abstractmethod
    async def history(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Messages in chronological order; the most recent ``limit`` when given."""

    @abstractmethod
    async def get_pending_role(self, conversation_id: str) -> str | None:
        ...

    @abstractmethod
    async def set_pending_role(self, conversation_id: str, role: str | None) -> None:
        ...


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self._messages: defaultdict[str, list[ChatMessage]] = defaultdict(list)
        self._pending: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def append(self, conversation_id: str, message: ChatMessage) -> None:
        async with self._lock:
            messages = self._messages[conversation_id]
            messages.append(message.model_copy(deep=True))
            del messages[:-MAX_CONVERSATION_MESSAGES]

    async def history(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        messages = list(self._messages.get(conversation_id, []))
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return [message.model_copy(deep=True) for message in messages]

    async def get_pending_role(self, conversation_id: str) -> str | None:
        return self._pending.get(conversation_id)

    async def set_pending_role(self, conversation_id: str, role: str | None) -> None:
        if role is None:
            self._pending.pop(conversation_id, None)
        else:
            self._pending[conversation_id] = role


class PostgresConversationStore(ConversationStore):
    """Persist conversations in PostgreSQL."""

    def __init__(self, database_url: str, pool: asyncpg.Pool | None = None) -> None:
        self._database_url = database_url
        self._pool = pool

    async def initialize(self) -> None:
        if self._pool is None:
            dsn = self._normalize_postgres_url(self._database_url)
            self._pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=5)
        await self._pool.execute(_CREATE_MESSAGES_TABLE)
        await self._pool.execute(_CREATE_MESSAGES_INDEX)
        await self._pool.execute(_CREATE_CONVERSATIONS_TABLE)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def append(self, conversation_id: str, message: ChatMessage) -> None:
        self._ensure_pool()
        await self._pool.execute(
            """
            INSERT INTO querypilot_messages (conversation_id, message, created_at)
            VALUES ($1, $2::jsonb, $3)
            """,
            conversation_id,
            message.model_dump_json(),
            message.created_at,
        )

    async def history(self, conversation_id: str, limit: int | None = None) -> list[ChatMessage]:
        self._ensure_pool()
        requested = MAX_CONVERSATION_MESSAGES if limit is None else limit
        bounded_limit = max(0, min(requested, MAX_CONVERSATION_MESSAGES))
        rows = await self._pool.fetch(
            """
            SELECT message FROM (
                SELECT id, message
                FROM querypilot_messages
                WHERE conversation_id = $1
                ORDER BY id DESC
                LIMIT $2
            ) AS recent
            ORDER BY id ASC
            """,
            conversation_id,
            bounded_limit,
        )
        return [ChatMessage.model_validate(self._decode_json_field(row["message"])) for row in rows]

    async def get_pending_role(self, conversation_id: str) -> str | None:
        self._ensure_pool()
        return await self._pool.fetchval(
            "SELECT pending_role FROM querypilot_conversations WHERE conversation_id = $1",
            conversation_id,
        )

    async def set_pending_role(self, conversation_id: str, role: str | None) -> None:
        self._ensure_pool()
        await self._pool.execute(
            """
            INSERT INTO querypilot_conversations (conversation_id, pending_role, updated_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (conversation_id) DO UPDATE SET
                pending_role = EXCLUDED.pending_role,
                updated_at = EXCLUDED.updated_at
            """,
            conversation_id,
            role,
            datetime.now(UTC),
        )

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("PostgresConversationStore not initialized")

    @staticmethod
    def _normalize_postgres_url(url: str) -> str:
        if url.startswith("postgresql+asyncpg://"):
            return "postgresql://" + url[len("postgresql+asyncpg://") :]
        return url

    @staticmethod
    def _decode_json_field(value):
        if isinstance(value, str):
            return json.loads(value)
        return value
