"""
Unit tests for conversation stores

Tests:
- In-memory append, bounded history and pending roles
- PostgreSQL store statements against a mocked asyncpg pool
"""

from unittest.mock import AsyncMock

import pytest

from querypilot.conversations.store import (
    MAX_CONVERSATION_MESSAGES,
    InMemoryConversationStore,
    PostgresConversationStore,
)
from querypilot.models.state import ChatMessage


class TestInMemoryConversationStore:
    @pytest.mark.asyncio
    async def test_history_is_chronological_and_isolated(self):
        store = InMemoryConversationStore()
        await store.append("a", ChatMessage(role="user", content="one"))
        await store.append("a", ChatMessage(role="assistant", content="two"))
        await store.append("b", ChatMessage(role="user", content="other"))

        history = await store.history("a")

        assert [m.content for m in history] == ["one", "two"]
        assert await store.history("missing") == []

    @pytest.mark.asyncio
    async def test_history_limit(self):
        store = InMemoryConversationStore()
        for position in range(5):
            await store.append("a", ChatMessage(role="user", content=str(position)))

        assert [m.content for m in await store.history("a", limit=2)] == ["3", "4"]
        assert await store.history("a", limit=0) == []

    @pytest.mark.asyncio
    async def test_history_returns_copies(self):
        store = InMemoryConversationStore()
        await store.append("a", ChatMessage(role="user", content="original"))

        (message,) = await store.history("a")
        message.content = "changed"

        assert (await store.history("a"))[0].content == "original"

    @pytest.mark.asyncio
    async def test_message_cap(self):
        store = InMemoryConversationStore()
        for position in range(MAX_CONVERSATION_MESSAGES + 5):
            await store.append("a", ChatMessage(role="user", content=str(position)))

        history = await store.history("a")
        assert len(history) == MAX_CONVERSATION_MESSAGES
        assert history[0].content == "5"

    @pytest.mark.asyncio
    async def test_pending_role(self):
        store = InMemoryConversationStore()
        await store.set_pending_role("a", "sql_agent")
        assert await store.get_pending_role("a") == "sql_agent"

        await store.set_pending_role("a", None)
        assert await store.get_pending_role("a") is None


class TestPostgresConversationStore:
    """Test the PostgreSQL store with a mocked pool."""

    @pytest.fixture
    def pool(self):
        pool = AsyncMock()
        pool.fetch.return_value = []
        return pool

    @pytest.mark.asyncio
    async def test_initialize_creates_tables(self, pool):
        store = PostgresConversationStore("postgresql://localhost/db", pool=pool)
        await store.initialize()

        statements = " ".join(call.args[0] for call in pool.execute.await_args_list)
        assert "querypilot_messages" in statements
        assert "querypilot_conversations" in statements

    @pytest.mark.asyncio
    async def test_append_serializes_message(self, pool):
        store = PostgresConversationStore("postgresql://localhost/db", pool=pool)
        message = ChatMessage(role="user", content="每个地区的订单总额")

        await store.append("conv-1", message)

        args = pool.execute.await_args.args
        assert args[1] == "conv-1"
        assert "每个地区的订单总额" in args[2]

    @pytest.mark.asyncio
    async def test_history_decodes_rows(self, pool):
        pool.fetch.return_value = [
            {"message": ChatMessage(role="user", content="hi").model_dump_json()},
            {"message": {"role": "assistant", "content": "hello"}},
        ]
        store = PostgresConversationStore("postgresql://localhost/db", pool=pool)

        history = await store.history("conv-1", limit=1000)

        assert [m.role for m in history] == ["user", "assistant"]
        assert pool.fetch.await_args.args[2] == MAX_CONVERSATION_MESSAGES

    @pytest.mark.asyncio
    async def test_requires_initialization(self):
        store = PostgresConversationStore("postgresql://localhost/db")
        with pytest.raises(RuntimeError):
            await store.get_pending_role("conv-1")

    def test_asyncpg_url_normalization(self):
        url = PostgresConversationStore._normalize_postgres_url(
            "postgresql+asyncpg://u:p@localhost/db"
        )
        assert url == "postgresql://u:p@localhost/db"
