"""Conversation persistence."""

from .store import (
    MAX_CONVERSATION_MESSAGES,
    ConversationStore,
    InMemoryConversationStore,
    PostgresConversationStore,
)

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "MAX_CONVERSATION_MESSAGES",
    "PostgresConversationStore",
]
