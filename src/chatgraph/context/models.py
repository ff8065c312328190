"""Data models for budgeted context assembly."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from chatgraph.models import Conversation, Message, TruncationStrategy


@dataclass
class Candidate:
    """A message in the candidate pool, tagged with where it came from."""

    message: Message
    source: Conversation
    tokens: int
    position: int = 0  # Index in the chronologically ordered pool

    @property
    def order_key(self) -> tuple[float, int]:
        return (self.message.timestamp, self.position)


class SourceStats(BaseModel):
    """How much of the final context came from one conversation."""

    conversation_id: str
    title: str
    message_count: int = 0
    tokens: int = 0


class ContextResult(BaseModel):
    """Messages selected for re-submission to a model."""

    conversation_id: str
    strategy: TruncationStrategy
    messages: list[Message] = Field(default_factory=list)
    total_tokens: int = 0
    token_budget: int = 0
    sources: list[SourceStats] = Field(default_factory=list)
    truncated: bool = False
    truncation_reason: str | None = None
    candidates_available: int = 0

    @property
    def budget_used_pct(self) -> float:
        return round(self.total_tokens / max(self.token_budget, 1) * 100, 1)

    def render(self) -> str:
        """Plain-text transcript of the selected messages."""
        sections = [f"[{m.role.value}] {m.content}" for m in self.messages]
        return "\n\n".join(sections)

    def summary(self) -> str:
        lines = [
            f"Context for: {self.conversation_id}",
            f"Strategy: {self.strategy.value}",
            f"Tokens: {self.total_tokens:,} / {self.token_budget:,} ({self.budget_used_pct:.0f}%)",
            f"Messages: {len(self.messages)} selected, {self.candidates_available} candidates",
        ]
        if self.truncation_reason:
            lines.append(f"Truncation: {self.truncation_reason}")
        lines.append("")
        lines.append("Sources:")
        for src in self.sources:
            lines.append(
                f"  {src.title} [{src.conversation_id}] "
                f"{src.message_count} msgs ~{src.tokens}tok"
            )
        return "\n".join(lines)
