"""Repository interfaces for SmartQuiz persistent state."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .domain import QuestionHistory, SessionConfig, UserStats
from .models import Question


class CatalogProvider(ABC):
    """Read-only access to the question pool."""

    @abstractmethod
    def get_all_questions(self) -> List[Question]:
        """Return every question available for selection."""

    @abstractmethod
    def get_question_by_key(self, question_uuid: str) -> Optional[Question]:
        """Return the question with the given external key, if present."""


class HistoryStore(ABC):
    """Persist per-learner, per-question interaction counters."""

    @abstractmethod
    def get_history_for_user(self, user_id: str) -> List[QuestionHistory]:
        """Return every history row for the learner."""

    @abstractmethod
    def get_history(self, user_id: str, question_uuid: str) -> Optional[QuestionHistory]:
        """Return a single history row, if present."""

    @abstractmethod
    def upsert_history(self, row: QuestionHistory) -> None:
        """Insert or replace the row keyed by (user_id, question_uuid)."""

    @abstractmethod
    def apply_update(
        self,
        user_id: str,
        question_uuid: str,
        create: Callable[[], QuestionHistory],
        mutate: Callable[[QuestionHistory], None],
    ) -> QuestionHistory:
        """Atomically read, mutate and write back one row.

        ``create`` builds the row when none exists yet. ``mutate`` runs on the
        current row while the key is held, so concurrent updates to the same
        pair never interleave. Returns the stored row.
        """

    @abstractmethod
    def get_aggregate_for_user(self, user_id: str) -> UserStats:
        """Return accuracy and difficulty averages over the learner's history."""


class ConfigStore(ABC):
    """Own defaults and per-learner overrides of the session configuration."""

    @abstractmethod
    def get_config(self, user_id: str) -> SessionConfig:
        """Return the learner's configuration, falling back to defaults."""

    @abstractmethod
    def save_config(self, user_id: str, config: SessionConfig) -> None:
        """Persist an already validated configuration for the learner."""


__all__ = ["CatalogProvider", "ConfigStore", "HistoryStore"]
