"""Approximate token accounting for messages and model context limits."""

from __future__ import annotations

import math
from typing import Iterable, Protocol

from chatgraph.models import Message

# Per-structure overheads added on top of text cost
MESSAGE_OVERHEAD = 4  # role + message framing
ATTACHMENT_OVERHEAD = 10
WRAPPER_OVERHEAD = 3  # conversation framing

DEFAULT_TOKEN_LIMIT = 4096

MODEL_TOKEN_LIMITS: dict[str, int] = {
    "gpt-3.5-turbo": 4096,
    "gpt-3.5-turbo-16k": 16384,
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4-turbo": 128000,
    "gpt-4o": 128000,
}


class Tokenizer(Protocol):
    """Anything that can count tokens in a string."""

    def count(self, text: str) -> int:
        ...


class HeuristicTokenizer:
    """Average of a character-based and a word-based estimate.

    Roughly 1 token per 4 characters and 0.75 words per token for English
    text. Not a real tokenizer.
    """

    CHARS_PER_TOKEN = 4.0
    WORDS_PER_TOKEN = 0.75

    def count(self, text: str) -> int:
        if not text:
            return 0
        by_chars = math.ceil(len(text) / self.CHARS_PER_TOKEN)
        by_words = math.ceil(len(text.split()) / self.WORDS_PER_TOKEN)
        return math.ceil((by_chars + by_words) / 2)


class TokenEstimator:
    """Token costs for text, messages and message lists.

    Usage:
        estimator = TokenEstimator()
        estimator.estimate_messages(conversation.messages)
        estimator.get_limit("gpt-4o-mini")  # 128000
    """

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        model_limits: dict[str, int] | None = None,
        default_limit: int = DEFAULT_TOKEN_LIMIT,
    ) -> None:
        self.tokenizer = tokenizer or HeuristicTokenizer()
        self.model_limits = dict(MODEL_TOKEN_LIMITS)
        if model_limits:
            self.model_limits.update({k.lower(): v for k, v in model_limits.items()})
        self.default_limit = default_limit

    def estimate(self, text: str | None) -> int:
        if not text:
            return 0
        return self.tokenizer.count(text)

    def estimate_message(self, message: Message) -> int:
        total = self.estimate(message.content) + MESSAGE_OVERHEAD
        for attachment in message.attachments:
            total += self.estimate(attachment.content) + ATTACHMENT_OVERHEAD
        return total

    def estimate_messages(self, messages: Iterable[Message]) -> int:
        return sum(self.estimate_message(m) for m in messages) + WRAPPER_OVERHEAD

    def get_limit(self, model: str | None) -> int:
        """Context window size for a model name.

        Exact match first, then the longest known name contained in ``model``
        (so "gpt-4-turbo-preview" resolves to gpt-4-turbo, not gpt-4).
        """
        name = (model or "").strip().lower()
        if not name:
            return self.default_limit
        if name in self.model_limits:
            return self.model_limits[name]

        matches = [key for key in self.model_limits if key in name]
        if matches:
            return self.model_limits[max(matches, key=len)]
        if "16k" in name:
            return self.model_limits.get("gpt-3.5-turbo-16k", self.default_limit)
        return self.default_limit

    def usage_pct(self, tokens: int, model: str | None) -> float:
        return tokens / self.get_limit(model) * 100

    def exceeds_limit(self, tokens: int, model: str | None) -> bool:
        return tokens > self.get_limit(model)


def format_tokens(tokens: int) -> str:
    """Compact display form: 950 -> "950", 1530 -> "1.5K"."""
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K"
    return str(tokens)
