"""Storage boundary for conversations and links."""

from chatgraph.store.base import ConversationStore, LinkStore
from chatgraph.store.memory import MemoryConversationStore, MemoryLinkStore
from chatgraph.store.sqlite import SQLiteStore

__all__ = [
    "ConversationStore",
    "LinkStore",
    "MemoryConversationStore",
    "MemoryLinkStore",
    "SQLiteStore",
]
