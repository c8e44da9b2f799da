"""Adaptive question selection for quiz sessions."""

from .domain import PriorityWeights, QuestionHistory, SessionConfig, UserStats
from .errors import (
    CatalogUnavailable,
    HistoryStoreUnavailable,
    InvalidWeightConfig,
    QuestionNotFound,
)
from .models import Question, QuestionView
from .services import RecordResult, SelectionResult, SmartQuestionService

__all__ = [
    "CatalogUnavailable",
    "HistoryStoreUnavailable",
    "InvalidWeightConfig",
    "PriorityWeights",
    "Question",
    "QuestionHistory",
    "QuestionNotFound",
    "QuestionView",
    "RecordResult",
    "SelectionResult",
    "SessionConfig",
    "SmartQuestionService",
    "UserStats",
]
