"""Dict-backed stores, used for tests and for embedding the core in-process."""

from __future__ import annotations

from typing import Any

from chatgraph.exceptions import NotFoundError
from chatgraph.models import Conversation, Link
from chatgraph.store.base import ConversationStore, LinkStore


class MemoryConversationStore(ConversationStore):
    """Keeps conversations in insertion order."""

    def __init__(self, conversations: list[Conversation] | None = None) -> None:
        self._items: dict[str, Conversation] = {}
        for conv in conversations or []:
            self._items[conv.id] = conv

    async def get(self, conversation_id: str) -> Conversation | None:
        return self._items.get(conversation_id)

    async def save(self, conversation: Conversation) -> None:
        self._items[conversation.id] = conversation

    async def update(self, conversation_id: str, changes: dict[str, Any]) -> None:
        current = self._items.get(conversation_id)
        if current is None:
            raise NotFoundError("conversation", conversation_id)
        data = current.model_dump()
        data.update(changes)
        self._items[conversation_id] = Conversation.model_validate(data)

    async def list(self) -> list[Conversation]:
        return list(self._items.values())

    async def delete(self, conversation_id: str) -> None:
        self._items.pop(conversation_id, None)


class MemoryLinkStore(LinkStore):
    """Keeps links in insertion order."""

    def __init__(self, links: list[Link] | None = None) -> None:
        self._items: dict[str, Link] = {}
        for link in links or []:
            self._items[link.id] = link

    async def get(self, link_id: str) -> Link | None:
        return self._items.get(link_id)

    async def save(self, link: Link) -> None:
        self._items[link.id] = link

    async def delete(self, link_id: str) -> None:
        self._items.pop(link_id, None)

    async def by_conversation(self, conversation_id: str) -> list[Link]:
        return [
            link for link in self._items.values()
            if conversation_id in (link.source_id, link.target_id)
        ]

    async def by_source(self, conversation_id: str) -> list[Link]:
        return [l for l in self._items.values() if l.source_id == conversation_id]

    async def by_target(self, conversation_id: str) -> list[Link]:
        return [l for l in self._items.values() if l.target_id == conversation_id]
