"""Shared test fixtures for chatgraph."""

from __future__ import annotations

import pytest
import pytest_asyncio

from chatgraph.context.engine import ContextAssembler
from chatgraph.graph.links import LinkGraphService
from chatgraph.models import Conversation, Message, Role
from chatgraph.store.memory import MemoryConversationStore, MemoryLinkStore

BASE_TS = 1_700_000_000_000.0  # epoch ms
MINUTE = 60_000.0


def make_messages(
    prefix: str,
    count: int,
    start: float = BASE_TS,
    words: int = 20,
) -> list[Message]:
    """``count`` alternating user/assistant messages, one minute apart."""
    messages = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        content = " ".join(f"{prefix}{i}w{w}" for w in range(words))
        messages.append(Message(
            id=f"{prefix}_m{i}",
            role=role,
            content=content,
            timestamp=start + i * MINUTE,
        ))
    return messages


def make_conversation(
    conversation_id: str,
    count: int = 4,
    start: float = BASE_TS,
    words: int = 20,
    **kwargs,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        title=kwargs.pop("title", f"Conversation {conversation_id}"),
        messages=make_messages(conversation_id, count, start, words),
        **kwargs,
    )


@pytest.fixture
def conversation_store() -> MemoryConversationStore:
    return MemoryConversationStore()


@pytest.fixture
def link_store() -> MemoryLinkStore:
    return MemoryLinkStore()


@pytest.fixture
def service(conversation_store, link_store) -> LinkGraphService:
    return LinkGraphService(conversation_store, link_store)


@pytest.fixture
def assembler(conversation_store, service) -> ContextAssembler:
    return ContextAssembler(conversation_store, service)


@pytest_asyncio.fixture
async def seeded(conversation_store) -> MemoryConversationStore:
    """Store with three unlinked conversations: a (6 msgs), b (4), c (2)."""
    await conversation_store.save(make_conversation("a", 6))
    await conversation_store.save(make_conversation("b", 4, start=BASE_TS + 60 * MINUTE))
    await conversation_store.save(make_conversation("c", 2, start=BASE_TS + 120 * MINUTE))
    return conversation_store
