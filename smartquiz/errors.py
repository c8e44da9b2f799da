"""Error kinds raised by the selection engine and its collaborators."""
from __future__ import annotations


class SmartQuizError(Exception):
    """Base class for engine errors."""


class CatalogUnavailable(SmartQuizError):
    """The question catalog could not be read, or holds no questions."""


class HistoryStoreUnavailable(SmartQuizError):
    """The history store failed to read or write."""


class QuestionNotFound(SmartQuizError, LookupError):
    """An answer referenced a question key unknown to the catalog."""

    def __init__(self, question_uuid: str) -> None:
        super().__init__(f"Question not found: {question_uuid}")
        self.question_uuid = question_uuid


class InvalidWeightConfig(SmartQuizError, ValueError):
    """A session configuration failed validation before scoring."""


__all__ = [
    "CatalogUnavailable",
    "HistoryStoreUnavailable",
    "InvalidWeightConfig",
    "QuestionNotFound",
    "SmartQuizError",
]
