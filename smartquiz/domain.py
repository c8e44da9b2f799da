"""Domain models shared across services and repositories."""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from .errors import InvalidWeightConfig
from .models import Question


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class QuestionHistory:
    """Interaction counters for one learner and one question."""

    user_id: str
    question_uuid: str
    presented_at: datetime
    last_seen: datetime
    question_text: str = ""
    difficulty_level: Optional[int] = None
    category: str = "general"
    question_type: Optional[str] = None
    times_seen: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    priority_score: float = 1.0
    mastery_level: float = 0.0
    is_correct: bool = False
    user_answer: Optional[str] = None
    correct_answer: Optional[str] = None
    response_time_ms: Optional[int] = None

    @classmethod
    def first_presentation(
        cls, user_id: str, question: Question, now: datetime
    ) -> "QuestionHistory":
        return cls(
            user_id=user_id,
            question_uuid=question.uuid,
            presented_at=now,
            last_seen=now,
            question_text=question.question_text,
            difficulty_level=question.difficulty_level,
            category=question.category or "general",
            question_type=question.type,
        )

    @property
    def accuracy(self) -> float:
        if not self.times_seen:
            return 0.0
        return self.times_correct / self.times_seen

    def hours_since_seen(self, now: datetime) -> float:
        return (now - self.last_seen).total_seconds() / 3600

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "question_uuid": self.question_uuid,
            "presented_at": self.presented_at.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "question_text": self.question_text,
            "difficulty_level": self.difficulty_level,
            "category": self.category,
            "question_type": self.question_type,
            "times_seen": self.times_seen,
            "times_correct": self.times_correct,
            "times_incorrect": self.times_incorrect,
            "priority_score": self.priority_score,
            "mastery_level": self.mastery_level,
            "is_correct": self.is_correct,
            "user_answer": self.user_answer,
            "correct_answer": self.correct_answer,
            "response_time_ms": self.response_time_ms,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "QuestionHistory":
        values = dict(payload)
        values["presented_at"] = _parse_timestamp(values["presented_at"])
        values["last_seen"] = _parse_timestamp(values["last_seen"])
        values["is_correct"] = bool(values.get("is_correct", False))
        return cls(**values)


@dataclass(frozen=True)
class UserStats:
    """Aggregate performance used as scoring input, never persisted."""

    avg_accuracy: float = 0.5
    avg_difficulty: float = 2.0
    total_attempts: int = 0


def compute_user_stats(rows: Iterable[QuestionHistory]) -> UserStats:
    """Derive accuracy and difficulty averages from history rows."""

    rows = list(rows)
    seen = sum(row.times_seen for row in rows)
    correct = sum(row.times_correct for row in rows)
    levels = [row.difficulty_level for row in rows if row.difficulty_level is not None]
    defaults = UserStats()
    return UserStats(
        avg_accuracy=correct / seen if seen else defaults.avg_accuracy,
        avg_difficulty=sum(levels) / len(levels) if levels else defaults.avg_difficulty,
        total_attempts=seen,
    )


@dataclass(frozen=True)
class PriorityWeights:
    recency: float = 0.3
    difficulty: float = 0.25
    performance: float = 0.25
    mastery: float = 0.15
    variety: float = 0.05

    def as_dict(self) -> Dict[str, float]:
        return {
            "recency": self.recency,
            "difficulty": self.difficulty,
            "performance": self.performance,
            "mastery": self.mastery,
            "variety": self.variety,
        }


@dataclass(frozen=True)
class SessionConfig:
    """Tunable selection settings, passed explicitly into every call."""

    max_questions_per_session: int = 5
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    mastery_threshold: float = 0.8
    min_time_between_repeats: float = 1.0

    def with_overrides(self, **changes: Any) -> "SessionConfig":
        # Imported lazily: validators depends on this module.
        from .validators import validate_session_config, validate_weights

        unknown = sorted(set(changes) - {item.name for item in fields(self)})
        if unknown:
            raise InvalidWeightConfig(f"Unknown setting(s): {', '.join(unknown)}")
        weights = changes.pop("weights", None)
        if isinstance(weights, dict):
            merged = {**self.weights.as_dict(), **weights}
            validate_weights(merged)
            changes["weights"] = PriorityWeights(**merged)
        elif weights is not None:
            changes["weights"] = weights
        config = replace(self, **changes)
        validate_session_config(config)
        return config


@dataclass(frozen=True)
class ScoredQuestion:
    """A catalog question paired with its composite priority score."""

    question: Question
    score: float
    rank_hint: int = 0

    @property
    def uuid(self) -> str:
        return self.question.uuid


__all__ = [
    "PriorityWeights",
    "QuestionHistory",
    "ScoredQuestion",
    "SessionConfig",
    "UserStats",
    "compute_user_stats",
    "utcnow",
]
