"""Read-only learning summaries built from a learner's history rows."""
from __future__ import annotations

import math
from collections import defaultdict
from typing import DefaultDict, Iterable, List

from .domain import QuestionHistory, SessionConfig
from .models import AnalyticsOverview, CategoryBreakdown, PerformanceMetrics, UserAnalytics
from .repositories import HistoryStore


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _percentage(value: float) -> int:
    # Halves round up, never to even.
    return int(math.floor(value * 100 + 0.5))


def summarize_history(rows: Iterable[QuestionHistory], config: SessionConfig) -> UserAnalytics:
    rows = list(rows)
    if not rows:
        return UserAnalytics()

    total_correct = sum(row.times_correct for row in rows)
    total_attempts = sum(row.times_seen for row in rows)
    accuracy = total_correct / total_attempts if total_attempts else 0.0
    avg_mastery = _mean([row.mastery_level for row in rows])
    mastered = sum(1 for row in rows if row.mastery_level >= config.mastery_threshold)
    response_times = [row.response_time_ms for row in rows if row.response_time_ms is not None]

    by_category: DefaultDict[str, List[QuestionHistory]] = defaultdict(list)
    for row in rows:
        by_category[row.category or "general"].append(row)
    breakdown = [
        CategoryBreakdown(
            category=category,
            questions_attempted=len(members),
            avg_mastery=_mean([row.mastery_level for row in members]),
            total_correct=sum(row.times_correct for row in members),
            total_attempts=sum(row.times_seen for row in members),
        )
        for category, members in sorted(by_category.items())
    ]

    return UserAnalytics(
        overview=AnalyticsOverview(
            total_questions_attempted=len(rows),
            total_correct=total_correct,
            total_attempts=total_attempts,
            accuracy=accuracy,
            avg_mastery=avg_mastery,
            avg_response_time=_mean(response_times),
            mastered_questions=mastered,
        ),
        category_breakdown=breakdown,
        performance_metrics=PerformanceMetrics(
            accuracy_percentage=_percentage(accuracy),
            mastery_percentage=_percentage(avg_mastery),
            questions_mastered_percentage=_percentage(mastered / len(rows)),
        ),
    )


class AnalyticsAggregator:
    def __init__(self, history: HistoryStore) -> None:
        self._history = history

    def get_user_analytics(self, user_id: str, config: SessionConfig) -> UserAnalytics:
        return summarize_history(self._history.get_history_for_user(user_id), config)


__all__ = ["AnalyticsAggregator", "summarize_history"]
