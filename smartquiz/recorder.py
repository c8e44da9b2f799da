"""Updates history rows on presentation and answer events."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from .domain import QuestionHistory, utcnow
from .errors import QuestionNotFound
from .metrics import METRICS
from .repositories import CatalogProvider, HistoryStore


logger = logging.getLogger(__name__)

PRIORITY_STEP = 0.1
CONFIDENCE_CAP = 0.2
CONFIDENCE_ATTEMPTS = 10


def compute_mastery_level(times_correct: int, times_seen: int) -> float:
    """Accuracy plus a small confidence bonus that grows with attempts."""

    if times_seen == 0:
        return 0.0
    accuracy = times_correct / times_seen
    confidence_bonus = min(CONFIDENCE_CAP, times_seen / CONFIDENCE_ATTEMPTS)
    return min(1.0, accuracy + confidence_bonus)


def adjust_priority(current: float, is_correct: bool) -> float:
    adjustment = -PRIORITY_STEP if is_correct else PRIORITY_STEP
    return max(0.0, min(1.0, current + adjustment))


class HistoryRecorder:
    """Writes presentation and answer outcomes through the history store."""

    def __init__(
        self,
        catalog: CatalogProvider,
        history: HistoryStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self._history = history
        self._clock = clock

    def record_presentation(self, user_id: str, question_keys: Iterable[str]) -> int:
        """Mark questions as shown. Returns how many rows were touched.

        Existing rows only get ``last_seen`` refreshed; counters and mastery
        are left alone. Unknown keys are skipped.
        """

        now = self._clock()
        touched = 0
        for key in dict.fromkeys(question_keys):
            question = self._catalog.get_question_by_key(key)
            if question is None:
                logger.warning("Skipping presentation of unknown question %s for user %s", key, user_id)
                continue

            def touch(row: QuestionHistory) -> None:
                row.last_seen = now

            self._history.apply_update(
                user_id,
                key,
                create=lambda: QuestionHistory.first_presentation(user_id, question, now),
                mutate=touch,
            )
            touched += 1
        METRICS.record_presentations(touched)
        return touched

    def record_answer(
        self,
        user_id: str,
        question_key: str,
        user_answer: str,
        correct_answer: str,
        is_correct: bool,
        response_time_ms: Optional[int] = None,
    ) -> QuestionHistory:
        question = self._catalog.get_question_by_key(question_key)
        if question is None:
            raise QuestionNotFound(question_key)

        now = self._clock()

        def apply_answer(row: QuestionHistory) -> None:
            row.times_seen += 1
            if is_correct:
                row.times_correct += 1
            else:
                row.times_incorrect += 1
            row.mastery_level = compute_mastery_level(row.times_correct, row.times_seen)
            row.priority_score = adjust_priority(row.priority_score, is_correct)
            row.is_correct = is_correct
            row.user_answer = user_answer
            row.correct_answer = correct_answer
            row.response_time_ms = response_time_ms
            row.last_seen = now

        updated = self._history.apply_update(
            user_id,
            question_key,
            create=lambda: QuestionHistory.first_presentation(user_id, question, now),
            mutate=apply_answer,
        )
        METRICS.record_answer(is_correct)
        logger.debug(
            "Recorded %s answer for user %s on %s (mastery %.2f)",
            "correct" if is_correct else "incorrect",
            user_id,
            question_key,
            updated.mastery_level,
        )
        return updated


__all__ = ["HistoryRecorder", "adjust_priority", "compute_mastery_level"]
