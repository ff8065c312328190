"""Budgeted context assembly across linked conversations.

Pipeline (one call, no state kept between calls):
  1. Load the conversation and its context settings (defaults if unset)
  2. Resolve the token budget: explicit > saved setting > share of model limit
  3. Gather candidates: own messages, parent messages, linked messages
  4. If everything fits, return it all in chronological order
  5. Otherwise select a subset with the chosen truncation strategy
  6. Aggregate per-source statistics over the selection

Budget floor: when candidates exist but the strategy selects nothing (budget
<= 0, or smaller than every message), the single most recent message is
returned anyway so a caller never gets an empty context while material
exists.
"""

from __future__ import annotations

import logging
import time

from chatgraph.config import ContextDefaults
from chatgraph.context.models import Candidate, ContextResult, SourceStats
from chatgraph.context.strategies import STRATEGIES
from chatgraph.context.tokens import TokenEstimator
from chatgraph.exceptions import NotFoundError
from chatgraph.graph.links import LinkGraphService
from chatgraph.models import ContextConfig, Conversation, TruncationStrategy
from chatgraph.store.base import ConversationStore

logger = logging.getLogger(__name__)


class ContextAssembler:
    """Selects a token-bounded message history for a conversation.

    Usage:
        assembler = ContextAssembler(conversation_store, link_service)
        result = await assembler.assemble("conv_1", max_tokens=2000)
        prompt_history = result.messages
    """

    def __init__(
        self,
        conversations: ConversationStore,
        links: LinkGraphService,
        estimator: TokenEstimator | None = None,
        defaults: ContextDefaults | None = None,
    ) -> None:
        self.conversations = conversations
        self.links = links
        self.estimator = estimator or TokenEstimator()
        self.defaults = defaults or ContextDefaults()

    # -------------------------------------------------------------------
    # Context settings
    # -------------------------------------------------------------------

    def default_config(self, conversation_id: str) -> ContextConfig:
        return ContextConfig(
            conversation_id=conversation_id,
            auto_load_parent=self.defaults.auto_load_parent,
            auto_load_links=self.defaults.auto_load_links,
            truncation_strategy=self.defaults.truncation_strategy,
        )

    async def get_config(self, conversation_id: str) -> ContextConfig:
        """Saved settings for a conversation, or the defaults."""
        conv = await self.conversations.get(conversation_id)
        if conv is None:
            raise NotFoundError("conversation", conversation_id)
        return conv.context or self.default_config(conversation_id)

    async def save_config(self, config: ContextConfig) -> None:
        await self.conversations.update(
            config.conversation_id, {"context": config.model_dump()}
        )

    def resolve_budget(
        self, conversation: Conversation, config: ContextConfig, override: int | None
    ) -> int:
        if override is not None:
            budget = override
        elif config.max_tokens is not None:
            budget = config.max_tokens
        else:
            limit = self.estimator.get_limit(conversation.model)
            budget = int(limit * self.defaults.budget_ratio)
        return max(0, int(budget))

    # -------------------------------------------------------------------
    # Main entry point
    # -------------------------------------------------------------------

    async def assemble(
        self,
        conversation_id: str,
        *,
        max_tokens: int | None = None,
        strategy: TruncationStrategy | str | None = None,
        include_links: list[str] | None = None,
    ) -> ContextResult:
        """Assemble the context for ``conversation_id``.

        Args:
            conversation_id: Conversation to assemble context for.
            max_tokens: Budget override; falls back to the saved setting, then
                to a share of the model's context limit.
            strategy: Truncation strategy override.
            include_links: Link ids whose far end should be loaded even when
                auto-loading of links is off. Replaces the saved list.

        Returns:
            A ContextResult with messages in chronological order.
        """
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("conversation", conversation_id)

        config = conversation.context or self.default_config(conversation_id)
        budget = self.resolve_budget(conversation, config, max_tokens)
        chosen = TruncationStrategy(strategy or config.truncation_strategy)
        wanted_links = include_links if include_links is not None else config.included_links

        candidates = await self._collect(conversation, config, set(wanted_links))
        result = ContextResult(
            conversation_id=conversation_id,
            strategy=chosen,
            token_budget=budget,
            candidates_available=len(candidates),
        )
        if not candidates:
            return result

        if self.estimator.estimate_messages(c.message for c in candidates) <= budget:
            selected = candidates
        else:
            selector = STRATEGIES[chosen]
            selected = selector(candidates, budget, time.time() * 1000)
            if not selected:
                logger.debug(
                    "Budget %d fits no message; keeping the most recent one", budget
                )
                selected = [max(candidates, key=lambda c: c.order_key)]
            # A full selection means only the wrapper overhead overflowed
            if len(selected) < len(candidates):
                result.truncated = True
                result.truncation_reason = (
                    f"Truncated using {chosen.value} strategy from "
                    f"{len(candidates)} to {len(selected)} messages"
                )
                logger.debug(result.truncation_reason)

        result.messages = [c.message for c in selected]
        result.total_tokens = sum(c.tokens for c in selected)
        result.sources = _source_stats(selected)
        return result

    async def _collect(
        self,
        conversation: Conversation,
        config: ContextConfig,
        wanted_links: set[str],
    ) -> list[Candidate]:
        """Candidate pool in chronological order.

        Each conversation contributes its messages once and each message id
        appears once. Missing parents and dangling link endpoints are skipped.
        """
        sources: list[Conversation] = []
        seen = {conversation.id}

        if config.auto_load_parent:
            parent = await self._parent_of(conversation)
            if parent is not None and parent.id not in seen:
                sources.append(parent)
                seen.add(parent.id)

        if config.auto_load_links or wanted_links:
            links = await self.links.get_links(conversation.id)
            for link in links.all:
                if not (config.auto_load_links or link.id in wanted_links):
                    continue
                other_id = link.other_end(conversation.id)
                if other_id in seen:
                    continue
                other = await self.conversations.get(other_id)
                if other is None:
                    logger.warning("Skipping link %s to missing conversation", link.id)
                    continue
                sources.append(other)
                seen.add(other_id)

        # Forks and full continuations share message ids with their parent;
        # the conversation's own copy wins.
        pool: list[Candidate] = []
        seen_messages: set[str] = set()
        for src in [conversation, *sources]:
            for msg in src.messages:
                if msg.id in seen_messages:
                    continue
                seen_messages.add(msg.id)
                pool.append(Candidate(
                    message=msg, source=src, tokens=self.estimator.estimate_message(msg)
                ))
        # Stable: equal timestamps keep insertion order
        pool.sort(key=lambda c: c.message.timestamp)
        for i, cand in enumerate(pool):
            cand.position = i
        return pool

    async def _parent_of(self, conversation: Conversation) -> Conversation | None:
        parent_id = conversation.parent_id
        if parent_id is None:
            parent_link = await self.links.find_parent_link(conversation.id)
            if parent_link is None:
                return None
            parent_id = parent_link.source_id
        return await self.conversations.get(parent_id)


def _source_stats(selected: list[Candidate]) -> list[SourceStats]:
    stats: dict[str, SourceStats] = {}
    for cand in selected:
        entry = stats.get(cand.source.id)
        if entry is None:
            entry = stats[cand.source.id] = SourceStats(
                conversation_id=cand.source.id, title=cand.source.title
            )
        entry.message_count += 1
        entry.tokens += cand.tokens
    return list(stats.values())
