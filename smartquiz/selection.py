"""Ranked selection with a weighted random tail."""
from __future__ import annotations

import math
import random
from typing import List, Optional, Sequence

from .domain import ScoredQuestion
from .models import Question


DETERMINISTIC_SHARE = 0.7
POOL_FACTOR = 3


def rank_candidates(candidates: Sequence[ScoredQuestion]) -> List[ScoredQuestion]:
    """Sort by score descending; ties keep catalog order, then uuid."""

    unique: List[ScoredQuestion] = []
    seen = set()
    for candidate in candidates:
        if candidate.uuid in seen:
            continue
        seen.add(candidate.uuid)
        unique.append(candidate)
    return sorted(unique, key=lambda item: (-item.score, item.rank_hint, item.uuid))


def _weighted_draw(
    pool: List[ScoredQuestion], picks: int, rng: random.Random
) -> List[ScoredQuestion]:
    """Draw ``picks`` items without replacement, weighted by score."""

    pool = pool[:]
    chosen: List[ScoredQuestion] = []
    while pool and len(chosen) < picks:
        weights = [max(item.score, 0.0) for item in pool]
        total = sum(weights)
        choice_index = 0
        if total > 0:
            pick = rng.uniform(0, total)
            cumulative = 0.0
            for idx, weight in enumerate(weights):
                cumulative += weight
                if pick <= cumulative and weight > 0:
                    choice_index = idx
                    break
            else:
                # Float rounding can leave ``pick`` a hair above the sum.
                choice_index = max(idx for idx, weight in enumerate(weights) if weight > 0)
        chosen.append(pool.pop(choice_index))
    return chosen


def select_questions(
    candidates: Sequence[ScoredQuestion],
    count: int,
    rng: Optional[random.Random] = None,
) -> List[ScoredQuestion]:
    """Pick up to ``count`` distinct candidates.

    The top ``ceil(count * 0.7)`` by score are taken as is. The remaining
    slots are drawn from the next ``remaining * 3`` ranked candidates with
    probability proportional to score.
    """

    if count <= 0:
        return []
    rng = rng or random.Random()
    ranked = rank_candidates(candidates)
    if len(ranked) <= count:
        return ranked

    deterministic_count = math.ceil(count * DETERMINISTIC_SHARE)
    remaining = count - deterministic_count
    deterministic = ranked[:deterministic_count]
    pool = ranked[deterministic_count : deterministic_count + remaining * POOL_FACTOR]
    return deterministic + _weighted_draw(pool, remaining, rng)


def random_fallback(
    questions: Sequence[Question], count: int, rng: Optional[random.Random] = None
) -> List[Question]:
    """Uniform sample without replacement, used when scoring is unavailable."""

    rng = rng or random.Random()
    unique = list({question.uuid: question for question in questions}.values())
    return rng.sample(unique, min(max(count, 0), len(unique)))


__all__ = ["random_fallback", "rank_candidates", "select_questions"]
