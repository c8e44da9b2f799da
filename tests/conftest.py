from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from smartquiz.metrics import METRICS
from smartquiz.models import Question
from smartquiz.services import SmartQuestionService
from smartquiz.storage import InMemoryCatalog, InMemoryConfigStore, InMemoryHistoryStore


CATEGORIES = ("grammar", "vocabulary", "reading")
TYPES = ("multiple_choice", "fill_blank")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def make_question(
    index: int,
    category: str = "grammar",
    difficulty: int = 2,
    question_type: str = "multiple_choice",
) -> Question:
    return Question(
        id=index,
        uuid=f"q-{index:03d}",
        question_text=f"Question number {index}?",
        options=[f"answer {index}a", f"answer {index}b", f"answer {index}c", f"answer {index}d"],
        correct_option=index % 4,
        type=question_type,
        difficulty_level=difficulty,
        category=category,
    )


def make_catalog(size: int) -> List[Question]:
    return [
        make_question(
            index,
            category=CATEGORIES[index % len(CATEGORIES)],
            difficulty=1 + index % 4,
            question_type=TYPES[index % len(TYPES)],
        )
        for index in range(1, size + 1)
    ]


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def questions() -> List[Question]:
    return make_catalog(20)


@pytest.fixture
def catalog(questions) -> InMemoryCatalog:
    return InMemoryCatalog(questions)


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def service(catalog, history_store, config_store, clock) -> SmartQuestionService:
    return SmartQuestionService(
        catalog, history_store, config_store, clock=clock, rng=random.Random(1234)
    )
