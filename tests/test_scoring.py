from __future__ import annotations

import random
from datetime import timedelta

import pytest

from smartquiz.domain import PriorityWeights, QuestionHistory, ScoredQuestion, SessionConfig, UserStats
from smartquiz.scoring import (
    difficulty_score,
    filter_recent,
    mastery_score,
    performance_score,
    recency_score,
    recent_window,
    score_breakdown,
    score_candidates,
    score_question,
    target_difficulty,
    variety_score,
)

from .conftest import make_question


def _history(question, now, hours_ago=0.0, **counters) -> QuestionHistory:
    row = QuestionHistory.first_presentation("learner", question, now - timedelta(hours=hours_ago))
    for name, value in counters.items():
        setattr(row, name, value)
    return row


def test_unseen_question_gets_neutral_subscores(clock):
    question = make_question(1)

    breakdown = score_breakdown(question, None, UserStats(), [], clock())

    assert breakdown.recency == 1.0
    assert breakdown.performance == 0.7
    assert breakdown.mastery == 0.8
    assert breakdown.variety == 1.0


def test_recency_normalises_over_one_week(clock):
    question = make_question(1)
    now = clock()

    assert recency_score(_history(question, now, hours_ago=84), now) == pytest.approx(0.5)
    assert recency_score(_history(question, now, hours_ago=400), now) == 1.0
    assert recency_score(_history(question, now, hours_ago=0), now) == 0.0


@pytest.mark.parametrize(
    "accuracy, expected_target",
    [(0.9, 2.5), (0.3, 1.5), (0.6, 2.0), (0.7, 2.0), (0.5, 2.0)],
)
def test_target_difficulty_shifts_with_accuracy(accuracy, expected_target):
    stats = UserStats(avg_accuracy=accuracy, avg_difficulty=2.0)

    assert target_difficulty(stats) == pytest.approx(expected_target)


def test_difficulty_fit_decays_linearly_and_floors_at_zero():
    stats = UserStats(avg_accuracy=0.6, avg_difficulty=2.0)

    assert difficulty_score(make_question(1, difficulty=2), stats) == 1.0
    assert difficulty_score(make_question(2, difficulty=3), stats) == pytest.approx(2 / 3)
    assert difficulty_score(make_question(3, difficulty=9), stats) == 0.0


def test_performance_is_maximal_after_three_misses(clock):
    question = make_question(1)
    row = _history(question, clock(), hours_ago=48, times_seen=3, times_correct=0, times_incorrect=3)

    assert performance_score(row) == 1.0


def test_performance_treats_presented_only_row_as_unseen(clock):
    row = _history(make_question(1), clock())

    assert performance_score(row) == 0.7


def test_mastery_score_inverts_mastery_level(clock):
    row = _history(make_question(1), clock(), mastery_level=0.75)

    assert mastery_score(row) == pytest.approx(0.25)
    assert mastery_score(None) == 0.8


def test_variety_counts_category_and_type_overlap(clock):
    now = clock()
    recent = [
        _history(make_question(2, category="grammar"), now, hours_ago=1),
        _history(make_question(3, category="grammar"), now, hours_ago=2),
        _history(make_question(4, category="reading", question_type="fill_blank"), now, hours_ago=3),
    ]
    candidate = make_question(1, category="grammar")

    # Two category matches plus two type matches.
    assert variety_score(candidate, recent) == pytest.approx(1 - 4 / 20)


def test_recent_window_keeps_last_ten_within_a_day(clock):
    now = clock()
    rows = [_history(make_question(i), now, hours_ago=i) for i in range(1, 15)]
    rows.append(_history(make_question(99), now, hours_ago=30))

    window = recent_window(rows, now)

    assert len(window) == 10
    assert all(row.hours_since_seen(now) < 24 for row in window)
    assert window[-1].question_uuid == "q-001"


def test_score_is_weighted_sum(clock):
    question = make_question(1, difficulty=2)
    config = SessionConfig(weights=PriorityWeights(1.0, 0.0, 0.0, 0.0, 0.0))

    assert score_question(question, None, UserStats(), [], config, clock()) == 1.0

    config = SessionConfig(weights=PriorityWeights(0.0, 0.0, 0.5, 0.5, 0.0))
    assert score_question(question, None, UserStats(), [], config, clock()) == pytest.approx(0.75)


@pytest.mark.parametrize("seed", range(40))
def test_score_stays_within_unit_interval_for_any_valid_weights(seed, clock):
    rng = random.Random(seed)
    now = clock()
    weights = PriorityWeights(*[rng.choice([0.0, rng.uniform(0, 5)]) for _ in range(5)])
    config = SessionConfig(weights=weights)
    stats = UserStats(avg_accuracy=rng.random(), avg_difficulty=rng.uniform(0, 10))
    questions = [
        make_question(i, category=rng.choice(["a", "b"]), difficulty=rng.randint(1, 10))
        for i in range(1, 16)
    ]
    history = []
    for question in questions[:10]:
        seen = rng.randint(0, 20)
        correct = rng.randint(0, seen)
        history.append(
            _history(
                question,
                now,
                hours_ago=rng.uniform(-2, 400),
                times_seen=seen,
                times_correct=correct,
                times_incorrect=seen - correct,
                mastery_level=rng.random(),
            )
        )

    for scored in score_candidates(questions, history, stats, config, now):
        assert 0.0 <= scored.score <= 1.0


def test_filter_recent_drops_items_inside_cooldown(clock):
    now = clock()
    questions = [make_question(i) for i in range(1, 4)]
    history = {
        "q-001": _history(questions[0], now, hours_ago=0.5),
        "q-002": _history(questions[1], now, hours_ago=2),
    }
    scored = [ScoredQuestion(question=q, score=0.5) for q in questions]

    kept = filter_recent(scored, history, cooldown_hours=1, now=now)

    assert [item.uuid for item in kept] == ["q-002", "q-003"]


def test_filter_recent_returns_empty_when_everything_is_cooling(clock):
    now = clock()
    question = make_question(1)
    scored = [ScoredQuestion(question=question, score=0.9)]

    assert filter_recent(scored, {"q-001": _history(question, now)}, 1, now) == []
