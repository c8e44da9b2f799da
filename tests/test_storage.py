from __future__ import annotations

import random
import sqlite3
import threading

import pytest

from smartquiz.domain import PriorityWeights, QuestionHistory, SessionConfig
from smartquiz.errors import HistoryStoreUnavailable, InvalidWeightConfig
from smartquiz.recorder import HistoryRecorder
from smartquiz.services import SmartQuestionService
from smartquiz.storage import InMemoryHistoryStore, SqliteSmartQuizRepository

from .conftest import make_catalog


@pytest.fixture
def repository(tmp_path):
    repo = SqliteSmartQuizRepository(tmp_path / "smartquiz.db")
    repo.add_questions(make_catalog(6))
    yield repo
    repo.close()


def test_catalog_round_trip(repository):
    questions = repository.get_all_questions()

    assert [q.uuid for q in questions] == [f"q-{i:03d}" for i in range(1, 7)]
    fetched = repository.get_question_by_key("q-004")
    assert fetched == questions[3]
    assert fetched.options == ["answer 4a", "answer 4b", "answer 4c", "answer 4d"]
    assert repository.get_question_by_key("nope") is None


def test_history_round_trip_preserves_timestamps(repository, clock):
    question = repository.get_question_by_key("q-001")
    row = QuestionHistory.first_presentation("learner", question, clock())
    row.times_seen = 2
    row.times_correct = 1
    row.is_correct = True
    row.response_time_ms = 1500

    repository.upsert_history(row)
    stored = repository.get_history("learner", "q-001")

    assert stored == row
    assert stored.last_seen.tzinfo is not None
    assert repository.get_history_for_user("someone-else") == []


def test_apply_update_creates_then_mutates(repository, clock):
    question = repository.get_question_by_key("q-002")

    def bump(row):
        row.times_seen += 1

    def create():
        return QuestionHistory.first_presentation("learner", question, clock())

    repository.apply_update("learner", "q-002", create, bump)
    updated = repository.apply_update("learner", "q-002", create, bump)

    assert updated.times_seen == 2
    assert repository.get_history("learner", "q-002").times_seen == 2


def test_failed_mutation_rolls_back(repository, clock):
    question = repository.get_question_by_key("q-002")

    def explode(row):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        repository.apply_update(
            "learner",
            "q-002",
            lambda: QuestionHistory.first_presentation("learner", question, clock()),
            explode,
        )

    assert repository.get_history("learner", "q-002") is None


@pytest.mark.parametrize("store_kind", ["memory", "sqlite"])
def test_aggregate_matches_between_backends(store_kind, repository, clock):
    store = InMemoryHistoryStore() if store_kind == "memory" else repository
    recorder = HistoryRecorder(repository, store, clock=clock)
    recorder.record_answer("learner", "q-001", "a", "a", True)  # difficulty 2
    recorder.record_answer("learner", "q-002", "a", "b", False)  # difficulty 3
    recorder.record_answer("learner", "q-002", "a", "a", True)

    stats = store.get_aggregate_for_user("learner")

    assert stats.avg_accuracy == pytest.approx(2 / 3)
    assert stats.avg_difficulty == pytest.approx(2.5)
    assert stats.total_attempts == 3


def test_aggregate_defaults_without_history(repository):
    stats = repository.get_aggregate_for_user("nobody")

    assert (stats.avg_accuracy, stats.avg_difficulty, stats.total_attempts) == (0.5, 2.0, 0)


def test_concurrent_updates_are_serialised(repository, clock):
    recorder = HistoryRecorder(repository, repository, clock=clock)

    def answer_many():
        for _ in range(20):
            recorder.record_answer("learner", "q-003", "a", "b", False)

    threads = [threading.Thread(target=answer_many) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    row = repository.get_history("learner", "q-003")
    assert row.times_seen == 100
    assert row.times_incorrect == 100


def test_config_overrides_persist(repository):
    assert repository.get_config("learner") == SessionConfig()

    custom = SessionConfig(
        max_questions_per_session=10,
        weights=PriorityWeights(recency=0.5, difficulty=0.1, performance=0.2, mastery=0.1, variety=0.1),
        mastery_threshold=0.9,
        min_time_between_repeats=4.0,
    )
    repository.save_config("learner", custom)

    assert repository.get_config("learner") == custom


def test_closed_database_reports_store_unavailable(tmp_path):
    repository = SqliteSmartQuizRepository(tmp_path / "closed.db")
    repository.close()

    with pytest.raises(HistoryStoreUnavailable):
        repository.get_history_for_user("learner")


def _store_raw_config(db_path, user_id, payload):
    conn = sqlite3.connect(db_path)
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO session_config (user_id, config_json) VALUES (?, ?)",
            (user_id, payload),
        )
    conn.close()


@pytest.mark.parametrize(
    "payload",
    ["not json", "[]", '{"max_questions_per_session": 5}', '{"weights": {"tempo": 1.0}}'],
)
def test_unreadable_stored_config_is_reported_as_invalid(repository, tmp_path, payload):
    _store_raw_config(tmp_path / "smartquiz.db", "learner", payload)

    with pytest.raises(InvalidWeightConfig):
        repository.get_config("learner")


def test_selection_survives_unreadable_stored_config(repository, tmp_path, clock):
    _store_raw_config(tmp_path / "smartquiz.db", "learner", '{"weights": 3}')
    service = SmartQuestionService(
        repository, repository, repository, clock=clock, rng=random.Random(7)
    )

    assert service.get_config("learner") == SessionConfig()
    result = service.get_smart_questions("learner", count=3)
    assert result.selection_method == "smart_algorithm"
    assert len(result.questions) == 3
