"""Greedy selection of a token-bounded subset of candidate messages.

Each function takes the candidate pool in chronological order and returns the
selected candidates in chronological order. None of them enforce a minimum;
the single-message floor is applied by the assembler.
"""

from __future__ import annotations

import math
from typing import Callable

from chatgraph.context.models import Candidate
from chatgraph.models import Role, TruncationStrategy

MS_PER_DAY = 1000 * 60 * 60 * 24

# Relevance score components
_SYSTEM_BONUS = 100.0
_ENDPOINT_BONUS = 50.0  # first or last message of the pool
_LENGTH_DIVISOR = 100.0
_LENGTH_CAP = 30.0
_RECENCY_DAYS = 20.0

# Balanced split of the budget
_HEAD_SHARE = 0.4
_TAIL_SHARE = 0.4
_BALANCED_MIN_MESSAGES = 4
_MIDDLE_SAMPLES = 3


def _chronological(selected: list[Candidate]) -> list[Candidate]:
    return sorted(selected, key=lambda c: c.order_key)


def _take_greedy(ordered: list[Candidate], budget: float) -> list[Candidate]:
    """Accept in order until the next candidate would overflow the budget."""
    taken: list[Candidate] = []
    used = 0
    for cand in ordered:
        if used + cand.tokens > budget:
            break
        taken.append(cand)
        used += cand.tokens
    return taken


def select_recent(candidates: list[Candidate], budget: int, now: float) -> list[Candidate]:
    newest_first = sorted(candidates, key=lambda c: c.order_key, reverse=True)
    return _chronological(_take_greedy(newest_first, budget))


def relevance_score(cand: Candidate, is_endpoint: bool, now: float) -> float:
    """Heuristic importance of a message.

    System messages dominate, pool endpoints come next, then longer and
    fresher messages.
    """
    score = 0.0
    if cand.message.role == Role.SYSTEM:
        score += _SYSTEM_BONUS
    if is_endpoint:
        score += _ENDPOINT_BONUS
    score += min(len(cand.message.content) / _LENGTH_DIVISOR, _LENGTH_CAP)
    age_days = (now - cand.message.timestamp) / MS_PER_DAY
    score += max(0.0, _RECENCY_DAYS - age_days)
    return score


def select_relevant(candidates: list[Candidate], budget: int, now: float) -> list[Candidate]:
    last = len(candidates) - 1
    scored = [
        (relevance_score(c, i in (0, last), now), c)
        for i, c in enumerate(candidates)
    ]
    # Stable sort keeps chronological order among equal scores
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return _chronological(_take_greedy([c for _, c in scored], budget))


def select_balanced(candidates: list[Candidate], budget: int, now: float) -> list[Candidate]:
    """Keep the opening and closing of the pool plus a sample of the middle.

    40% of the budget goes to the earliest messages, 40% to the latest, and
    whatever is left is spent on every Nth message in between.
    """
    if len(candidates) <= _BALANCED_MIN_MESSAGES:
        return select_recent(candidates, budget, now)

    head_budget = budget * _HEAD_SHARE
    tail_budget = budget * _TAIL_SHARE

    head: list[Candidate] = []
    head_tokens = 0
    i = 0
    while i < len(candidates):
        cost = candidates[i].tokens
        if head_tokens + cost > head_budget:
            break
        head.append(candidates[i])
        head_tokens += cost
        i += 1

    tail: list[Candidate] = []
    tail_tokens = 0
    j = len(candidates) - 1
    while j >= i:
        cost = candidates[j].tokens
        if tail_tokens + cost > tail_budget:
            break
        tail.append(candidates[j])
        tail_tokens += cost
        j -= 1

    middle_picks: list[Candidate] = []
    used = head_tokens + tail_tokens
    middle = candidates[i : j + 1]
    if middle and used < budget:
        stride = max(1, math.ceil(len(middle) / _MIDDLE_SAMPLES))
        for cand in middle[::stride]:
            if used + cand.tokens <= budget:
                middle_picks.append(cand)
                used += cand.tokens

    # The newest message must survive even when it alone overflows the tail
    # share; give back middle samples, newest first, until it fits.
    last = candidates[-1]
    if not tail and last not in head and last not in middle_picks:
        while middle_picks and used + last.tokens > budget:
            if middle_picks[-1] is candidates[0]:
                break
            used -= middle_picks.pop().tokens
        if used + last.tokens <= budget:
            middle_picks.append(last)

    return _chronological(head + middle_picks + tail)


Selector = Callable[[list[Candidate], int, float], list[Candidate]]

STRATEGIES: dict[TruncationStrategy, Selector] = {
    TruncationStrategy.RECENT: select_recent,
    TruncationStrategy.RELEVANT: select_relevant,
    TruncationStrategy.BALANCED: select_balanced,
}
