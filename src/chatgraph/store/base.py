"""Abstract store interfaces consumed by the graph and context services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from chatgraph.models import Conversation, Link


class ConversationStore(ABC):
    """Persistence for conversations.

    Implementations raise ``StorageError`` for backend failures and return
    ``None`` (never raise) for missing ids on reads.
    """

    @abstractmethod
    async def get(self, conversation_id: str) -> Conversation | None:
        ...

    @abstractmethod
    async def save(self, conversation: Conversation) -> None:
        ...

    @abstractmethod
    async def update(self, conversation_id: str, changes: dict[str, Any]) -> None:
        """Apply a partial update. Unknown ids are a ``NotFoundError``."""
        ...

    @abstractmethod
    async def list(self) -> list[Conversation]:
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> None:
        """Remove a conversation. Links that reference it are left alone."""
        ...


class LinkStore(ABC):
    """Persistence for conversation links."""

    @abstractmethod
    async def get(self, link_id: str) -> Link | None:
        ...

    @abstractmethod
    async def save(self, link: Link) -> None:
        ...

    @abstractmethod
    async def delete(self, link_id: str) -> None:
        ...

    @abstractmethod
    async def by_conversation(self, conversation_id: str) -> list[Link]:
        """Links touching the conversation in either direction."""
        ...

    @abstractmethod
    async def by_source(self, conversation_id: str) -> list[Link]:
        ...

    @abstractmethod
    async def by_target(self, conversation_id: str) -> list[Link]:
        ...
