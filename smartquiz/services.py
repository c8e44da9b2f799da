"""Core service implementing adaptive question selection and recording."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from .analytics import AnalyticsAggregator
from .domain import QuestionHistory, SessionConfig, utcnow
from .errors import (
    CatalogUnavailable,
    HistoryStoreUnavailable,
    InvalidWeightConfig,
    SmartQuizError,
)
from .metrics import METRICS
from .models import Question, QuestionView, SelectionMethod, UserAnalytics
from .recorder import HistoryRecorder
from .repositories import CatalogProvider, ConfigStore, HistoryStore
from .scoring import filter_recent, score_candidates
from .selection import random_fallback, select_questions
from .validators import validate_session_config


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SelectionResult:
    """Questions picked for a learner and how they were picked."""

    questions: List[Question]
    selection_method: SelectionMethod

    @property
    def views(self) -> List[QuestionView]:
        return [question.to_view() for question in self.questions]

    @property
    def question_uuids(self) -> List[str]:
        return [question.uuid for question in self.questions]


@dataclass
class RecordResult:
    """Acknowledgement for a recording call. Failures are soft."""

    success: bool
    touched: int = 0
    history: Optional[QuestionHistory] = None
    error: Optional[str] = None


def _apply_filters(
    questions: Sequence[Question], difficulty: Optional[int], category: Optional[str]
) -> List[Question]:
    return [
        question
        for question in questions
        if (difficulty is None or question.difficulty_level == difficulty)
        and (category is None or question.category == category)
    ]


class SmartQuestionService:
    """Facade over scoring, selection, recording and analytics."""

    def __init__(
        self,
        catalog: CatalogProvider,
        history: HistoryStore,
        config_store: ConfigStore,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._catalog = catalog
        self._history = history
        self._config_store = config_store
        self._clock = clock
        self._rng = rng or random.Random()
        self._recorder = HistoryRecorder(catalog, history, clock=clock)
        self._analytics = AnalyticsAggregator(history)

    # region Configuration
    def get_config(self, user_id: str) -> SessionConfig:
        try:
            config = self._config_store.get_config(user_id)
            validate_session_config(config)
        except (HistoryStoreUnavailable, InvalidWeightConfig) as exc:
            logger.warning("Using default session config for user %s: %s", user_id, exc)
            return SessionConfig()
        return config

    def update_config(self, user_id: str, **overrides: Any) -> SessionConfig:
        """Validate and persist overrides; the stored config is untouched on error."""

        current = self.get_config(user_id)
        changes = {key: value for key, value in overrides.items() if value is not None}
        try:
            updated = current.with_overrides(**changes)
        except InvalidWeightConfig as exc:
            METRICS.record_rejected_config()
            logger.warning("Rejected session config for user %s: %s", user_id, exc)
            raise
        self._config_store.save_config(user_id, updated)
        return updated

    # endregion

    # region Selection
    def get_smart_questions(
        self,
        user_id: str,
        count: int = 5,
        difficulty: Optional[int] = None,
        category: Optional[str] = None,
    ) -> SelectionResult:
        """Pick the next questions for a learner.

        Falls back to a uniform random sample when the catalog or history
        cannot be read or scoring fails. Raises ``CatalogUnavailable`` only
        when no questions can be obtained at all.
        """

        config = self.get_config(user_id)
        limit = min(count, config.max_questions_per_session)
        if limit <= 0:
            return SelectionResult(questions=[], selection_method="smart_algorithm")

        try:
            catalog = self._catalog.get_all_questions()
        except CatalogUnavailable as exc:
            return self._fallback(None, limit, difficulty, category, reason="catalog_unavailable", exc=exc)
        if not catalog:
            return self._fallback(None, limit, difficulty, category, reason="catalog_empty")

        candidates = _apply_filters(catalog, difficulty, category)
        try:
            chosen = self._select(user_id, candidates, config, limit)
        except HistoryStoreUnavailable as exc:
            return self._fallback(catalog, limit, difficulty, category, reason="history_unavailable", exc=exc)
        except (ArithmeticError, TypeError, ValueError) as exc:
            return self._fallback(catalog, limit, difficulty, category, reason="scoring_failed", exc=exc)

        METRICS.record_selection(len(chosen))
        logger.debug("Selected %d of %d candidates for user %s", len(chosen), len(candidates), user_id)
        return SelectionResult(questions=chosen, selection_method="smart_algorithm")

    def _select(
        self, user_id: str, candidates: List[Question], config: SessionConfig, limit: int
    ) -> List[Question]:
        history = self._retry_once(lambda: self._history.get_history_for_user(user_id))
        stats = self._retry_once(lambda: self._history.get_aggregate_for_user(user_id))
        now = self._clock()

        scored = score_candidates(candidates, history, stats, config, now)
        eligible = filter_recent(
            scored,
            {row.question_uuid: row for row in history},
            config.min_time_between_repeats,
            now,
        )
        if scored and not eligible:
            logger.info(
                "All %d candidates for user %s are inside the %.1fh cooldown",
                len(scored),
                user_id,
                config.min_time_between_repeats,
            )
        return [item.question for item in select_questions(eligible, limit, self._rng)]

    def _retry_once(self, operation: Callable[[], T]) -> T:
        try:
            return operation()
        except HistoryStoreUnavailable as exc:
            logger.warning("History store read failed, retrying once: %s", exc)
        return operation()

    def _fallback(
        self,
        catalog: Optional[List[Question]],
        limit: int,
        difficulty: Optional[int],
        category: Optional[str],
        reason: str,
        exc: Optional[Exception] = None,
    ) -> SelectionResult:
        logger.warning("Degrading to random selection (%s): %s", reason, exc or "no detail")
        METRICS.record_degraded_selection(reason)
        if catalog is None:
            catalog = self._catalog.get_all_questions()
        if not catalog:
            raise CatalogUnavailable("No questions available in the catalog")
        pool = _apply_filters(catalog, difficulty, category)
        chosen = random_fallback(pool, limit, self._rng)
        METRICS.record_selection(len(chosen))
        return SelectionResult(questions=chosen, selection_method="random_fallback")

    # endregion

    # region Recording
    def record_presentation(self, user_id: str, question_keys: Sequence[str]) -> RecordResult:
        try:
            touched = self._recorder.record_presentation(user_id, question_keys)
        except (CatalogUnavailable, HistoryStoreUnavailable) as exc:
            return self._soft_failure("presentation", user_id, exc)
        return RecordResult(success=True, touched=touched)

    def record_answer(
        self,
        user_id: str,
        question_key: str,
        user_answer: str,
        correct_answer: str,
        is_correct: bool,
        response_time_ms: Optional[int] = None,
    ) -> RecordResult:
        """Record an answer. ``QuestionNotFound`` propagates; store errors do not."""

        try:
            row = self._recorder.record_answer(
                user_id,
                question_key,
                user_answer,
                correct_answer,
                is_correct,
                response_time_ms=response_time_ms,
            )
        except (CatalogUnavailable, HistoryStoreUnavailable) as exc:
            return self._soft_failure("answer", user_id, exc)
        return RecordResult(success=True, touched=1, history=row)

    def _soft_failure(self, operation: str, user_id: str, exc: SmartQuizError) -> RecordResult:
        # Failed writes are dropped, not queued; the counter makes the loss visible.
        logger.warning("Dropping %s record for user %s: %s", operation, user_id, exc)
        METRICS.record_recording_failure(operation)
        return RecordResult(success=False, error=str(exc))

    # endregion

    def get_user_analytics(self, user_id: str) -> UserAnalytics:
        return self._analytics.get_user_analytics(user_id, self.get_config(user_id))


__all__ = ["RecordResult", "SelectionResult", "SmartQuestionService"]
