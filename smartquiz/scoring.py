"""Priority scoring and cooldown filtering for candidate questions.

Every catalog question gets a composite score in [0, 1] built from five
subscores (recency, difficulty fit, performance, mastery, variety) weighted
by the caller's ``SessionConfig``. Higher means "show this sooner".
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .domain import QuestionHistory, ScoredQuestion, SessionConfig, UserStats
from .models import Question


RECENCY_HORIZON_HOURS = 168.0
DIFFICULTY_SPREAD = 3.0
DIFFICULTY_STEP = 0.5
HIGH_ACCURACY = 0.7
LOW_ACCURACY = 0.5
UNSEEN_PERFORMANCE = 0.7
UNSEEN_MASTERY = 0.8
VARIETY_WINDOW_HOURS = 24.0
VARIETY_WINDOW_SIZE = 10
VARIETY_NORMALISER = 20.0


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ScoreBreakdown:
    recency: float
    difficulty: float
    performance: float
    mastery: float
    variety: float

    def weighted_total(self, config: SessionConfig) -> float:
        weights = config.weights
        total = (
            self.recency * weights.recency
            + self.difficulty * weights.difficulty
            + self.performance * weights.performance
            + self.mastery * weights.mastery
            + self.variety * weights.variety
        )
        return _clamp(total)


def recency_score(history: Optional[QuestionHistory], now: datetime) -> float:
    if history is None:
        return 1.0
    return _clamp(history.hours_since_seen(now) / RECENCY_HORIZON_HOURS)


def target_difficulty(stats: UserStats) -> float:
    if stats.avg_accuracy > HIGH_ACCURACY:
        return stats.avg_difficulty + DIFFICULTY_STEP
    if stats.avg_accuracy < LOW_ACCURACY:
        return stats.avg_difficulty - DIFFICULTY_STEP
    return stats.avg_difficulty


def difficulty_score(question: Question, stats: UserStats) -> float:
    gap = abs(question.difficulty_level - target_difficulty(stats))
    return max(0.0, 1 - gap / DIFFICULTY_SPREAD)


def performance_score(history: Optional[QuestionHistory]) -> float:
    if history is None or history.times_seen == 0:
        return UNSEEN_PERFORMANCE
    return 1 - history.accuracy


def mastery_score(history: Optional[QuestionHistory]) -> float:
    if history is None:
        return UNSEEN_MASTERY
    return max(0.0, 1 - history.mastery_level)


def recent_window(history: Iterable[QuestionHistory], now: datetime) -> List[QuestionHistory]:
    """Return the learner's last presentations inside the variety window."""

    recent = [row for row in history if row.hours_since_seen(now) < VARIETY_WINDOW_HOURS]
    recent.sort(key=lambda row: row.last_seen)
    return recent[-VARIETY_WINDOW_SIZE:]


def variety_score(question: Question, recent: Sequence[QuestionHistory]) -> float:
    # Category and type overlaps are summed separately, so a question matching
    # both on a recent row is penalised twice.
    category_overlap = sum(1 for row in recent if row.category == question.category)
    type_overlap = sum(1 for row in recent if row.question_type == question.type)
    return max(0.0, 1 - (category_overlap + type_overlap) / VARIETY_NORMALISER)


def score_breakdown(
    question: Question,
    history: Optional[QuestionHistory],
    stats: UserStats,
    recent: Sequence[QuestionHistory],
    now: datetime,
) -> ScoreBreakdown:
    return ScoreBreakdown(
        recency=recency_score(history, now),
        difficulty=difficulty_score(question, stats),
        performance=performance_score(history),
        mastery=mastery_score(history),
        variety=variety_score(question, recent),
    )


def score_question(
    question: Question,
    history: Optional[QuestionHistory],
    stats: UserStats,
    recent: Sequence[QuestionHistory],
    config: SessionConfig,
    now: datetime,
) -> float:
    """Composite priority of one question, clamped to [0, 1]. Pure."""

    return score_breakdown(question, history, stats, recent, now).weighted_total(config)


def score_candidates(
    questions: Sequence[Question],
    history: Sequence[QuestionHistory],
    stats: UserStats,
    config: SessionConfig,
    now: datetime,
) -> List[ScoredQuestion]:
    by_key: Dict[str, QuestionHistory] = {row.question_uuid: row for row in history}
    recent = recent_window(history, now)
    return [
        ScoredQuestion(
            question=question,
            score=score_question(question, by_key.get(question.uuid), stats, recent, config, now),
            rank_hint=index,
        )
        for index, question in enumerate(questions)
    ]


def filter_recent(
    candidates: Iterable[ScoredQuestion],
    history: Mapping[str, QuestionHistory],
    cooldown_hours: float,
    now: datetime,
) -> List[ScoredQuestion]:
    """Drop candidates last seen within ``cooldown_hours`` of ``now``.

    An empty result is returned as is; the caller decides how to report it.
    """

    cooling = {
        key for key, row in history.items() if row.hours_since_seen(now) < cooldown_hours
    }
    return [candidate for candidate in candidates if candidate.uuid not in cooling]


__all__ = [
    "ScoreBreakdown",
    "difficulty_score",
    "filter_recent",
    "mastery_score",
    "performance_score",
    "recency_score",
    "recent_window",
    "score_breakdown",
    "score_candidates",
    "score_question",
    "target_difficulty",
    "variety_score",
]
