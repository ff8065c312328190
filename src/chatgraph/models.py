"""Data models for conversations, messages and the links between them."""

from __future__ import annotations

import random
import string
import time
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def now_ms() -> float:
    """Current time as epoch milliseconds."""
    return time.time() * 1000


def new_id(prefix: str) -> str:
    """Generate an id like ``conv_fork_1700000000000_k3j9a0xq2``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(now_ms())}_{suffix}"


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TruncationStrategy(str, Enum):
    """How to cut a candidate message pool down to a token budget."""

    RECENT = "recent"  # Newest messages first
    RELEVANT = "relevant"  # Heuristic relevance score
    BALANCED = "balanced"  # Head + tail + sampled middle (default)


class Attachment(BaseModel):
    """A file, image or code snippet attached to a message."""

    id: str
    kind: Literal["image", "file", "code"] = "file"
    name: str = ""
    content: str | None = None
    mime_type: str | None = None
    url: str | None = None


class Message(BaseModel):
    """A single message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    content: str = ""
    timestamp: float = Field(default_factory=now_ms)  # epoch ms
    attachments: list[Attachment] = Field(default_factory=list)


class ContextConfig(BaseModel):
    """Per-conversation settings for context assembly."""

    conversation_id: str
    included_links: list[str] = Field(default_factory=list)
    auto_load_parent: bool = True
    auto_load_links: bool = False
    truncation_strategy: TruncationStrategy = TruncationStrategy.BALANCED
    max_tokens: int | None = None


class Conversation(BaseModel):
    """A saved chat thread."""

    id: str
    title: str = "Untitled"
    model: str = "gpt-3.5-turbo"
    messages: list[Message] = Field(default_factory=list)
    created_at: float = Field(default_factory=now_ms)
    updated_at: float = Field(default_factory=now_ms)
    parent_id: str | None = None
    folder_id: str | None = None
    is_archived: bool = False
    is_favorite: bool = False
    tags: list[str] = Field(default_factory=list)
    context: ContextConfig | None = None

    def message_index(self, message_id: str) -> int:
        """Position of a message, or -1 if absent."""
        for i, msg in enumerate(self.messages):
            if msg.id == message_id:
                return i
        return -1


class LinkType(str, Enum):
    """Kind of relationship between two conversations."""

    FORK = "fork"
    CONTINUATION = "continuation"
    REFERENCE = "reference"

    @property
    def is_parent_edge(self) -> bool:
        """Fork and continuation edges form the parent hierarchy."""
        return self is not LinkType.REFERENCE


class ForkMetadata(BaseModel):
    type: Literal["fork"] = "fork"
    fork_message_preview: str = ""


class ContinuationMetadata(BaseModel):
    type: Literal["continuation"] = "continuation"
    reason: str | None = None


class ReferenceMetadata(BaseModel):
    type: Literal["reference"] = "reference"
    reason: str | None = None


LinkMetadata = Annotated[
    Union[ForkMetadata, ContinuationMetadata, ReferenceMetadata],
    Field(discriminator="type"),
]


class Link(BaseModel):
    """A directed edge between two conversations."""

    id: str
    source_id: str
    target_id: str
    type: LinkType
    fork_message_id: str | None = None
    created_at: float = Field(default_factory=now_ms)
    metadata: LinkMetadata | None = None

    @model_validator(mode="after")
    def _check_endpoints(self) -> Link:
        if self.source_id == self.target_id:
            raise ValueError("a link cannot point a conversation at itself")
        if self.fork_message_id is not None and self.type is not LinkType.FORK:
            raise ValueError("fork_message_id is only valid on fork links")
        if self.metadata is not None and self.metadata.type != self.type.value:
            raise ValueError(
                f"{self.metadata.type} metadata on a {self.type.value} link"
            )
        return self

    def other_end(self, conversation_id: str) -> str:
        """The endpoint opposite ``conversation_id``."""
        return self.target_id if self.source_id == conversation_id else self.source_id
