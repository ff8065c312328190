"""Tests for the truncation strategies."""

from __future__ import annotations

from chatgraph.context.models import Candidate
from chatgraph.context.strategies import (
    MS_PER_DAY,
    STRATEGIES,
    relevance_score,
    select_balanced,
    select_recent,
    select_relevant,
)
from chatgraph.models import Conversation, Message, Role, TruncationStrategy

from conftest import BASE_TS, MINUTE

SOURCE = Conversation(id="s")
NOW = BASE_TS + 365 * MS_PER_DAY


def _pool(costs: list[int], roles: dict[int, Role] | None = None) -> list[Candidate]:
    roles = roles or {}
    return [
        Candidate(
            message=Message(
                id=f"m{i}",
                role=roles.get(i, Role.USER),
                content="x",
                timestamp=BASE_TS + i * MINUTE,
            ),
            source=SOURCE,
            tokens=cost,
            position=i,
        )
        for i, cost in enumerate(costs)
    ]


def _ids(selected: list[Candidate]) -> list[str]:
    return [c.message.id for c in selected]


class TestRecent:
    def test_keeps_newest(self):
        assert _ids(select_recent(_pool([10] * 10), 35, NOW)) == ["m7", "m8", "m9"]

    def test_stops_at_first_overflow(self):
        assert _ids(select_recent(_pool([10, 10, 50, 10]), 25, NOW)) == ["m3"]

    def test_zero_budget(self):
        assert select_recent(_pool([10, 10]), 0, NOW) == []

    def test_equal_timestamps_prefer_later_position(self):
        pool = _pool([10, 10, 10])
        same_ts = [
            Candidate(
                message=c.message.model_copy(update={"timestamp": BASE_TS}),
                source=SOURCE, tokens=c.tokens, position=c.position,
            )
            for c in pool
        ]
        assert _ids(select_recent(same_ts, 10, NOW)) == ["m2"]


class TestRelevant:
    def test_score_components(self):
        fresh = Candidate(
            message=Message(id="f", role=Role.USER, content="", timestamp=NOW),
            source=SOURCE, tokens=1,
        )
        old = Candidate(
            message=Message(id="o", role=Role.USER, content="", timestamp=NOW - 30 * MS_PER_DAY),
            source=SOURCE, tokens=1,
        )
        system = Candidate(
            message=Message(id="s", role=Role.SYSTEM, content="y" * 5000, timestamp=NOW - 30 * MS_PER_DAY),
            source=SOURCE, tokens=1,
        )
        assert relevance_score(fresh, False, NOW) == 20.0
        assert relevance_score(old, False, NOW) == 0.0
        assert relevance_score(old, True, NOW) == 50.0
        assert relevance_score(system, False, NOW) == 130.0

    def test_prefers_system_and_endpoints(self):
        pool = _pool([10] * 10, roles={5: Role.SYSTEM})
        assert _ids(select_relevant(pool, 30, NOW)) == ["m0", "m5", "m9"]

    def test_output_is_chronological(self):
        pool = _pool([10] * 10, roles={7: Role.SYSTEM, 2: Role.SYSTEM})
        selected = select_relevant(pool, 40, NOW)
        keys = [c.order_key for c in selected]
        assert keys == sorted(keys)


class TestBalanced:
    def test_head_tail_and_middle_sample(self):
        # head budget 20 -> m0,m1; tail budget 20 -> m8,m9; m2..m7 sampled every 2nd
        selected = select_balanced(_pool([10] * 10), 50, NOW)
        assert _ids(selected) == ["m0", "m1", "m2", "m8", "m9"]

    def test_middle_uses_leftover_budget(self):
        selected = select_balanced(_pool([10] * 10), 100, NOW)
        # head 4, tail 4, middle m4,m5 with stride 1
        assert _ids(selected) == ["m0", "m1", "m2", "m3", "m4", "m5", "m6", "m7", "m8", "m9"]

    def test_small_pool_falls_back_to_recent(self):
        pool = _pool([10, 10, 10, 10])
        assert select_balanced(pool, 20, NOW) == select_recent(pool, 20, NOW)
        assert _ids(select_balanced(pool, 20, NOW)) == ["m2", "m3"]

    def test_within_budget(self):
        costs = [7, 30, 12, 5, 44, 9, 18, 3, 25, 11, 16, 8]
        for budget in (10, 40, 77, 120):
            selected = select_balanced(_pool(costs), budget, NOW)
            assert sum(c.tokens for c in selected) <= budget

    def test_twenty_messages_keep_both_ends(self):
        selected = select_balanced(_pool([10] * 20), 60, NOW)
        ids = _ids(selected)
        assert ids[0] == "m0"
        assert ids[-1] == "m19"
        assert len(set(ids)) == len(ids)

    def test_expensive_last_message_kept(self):
        # every message is over the 40% tail share, so the tail pass takes nothing
        selected = select_balanced(_pool([50] * 20), 110, NOW)
        assert _ids(selected) == ["m0", "m19"]

    def test_middle_samples_yield_to_last_message(self):
        # head m0..m3, middle samples m4,m6,m8; m6 and m8 give way to m9
        selected = select_balanced(_pool([10] * 9 + [45]), 100, NOW)
        assert _ids(selected) == ["m0", "m1", "m2", "m3", "m4", "m9"]


class TestRegistry:
    def test_every_strategy_registered(self):
        assert set(STRATEGIES) == set(TruncationStrategy)
