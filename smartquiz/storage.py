"""Concrete repository implementations backed by memory and SQLite."""
from __future__ import annotations

import json
import sqlite3
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Callable, DefaultDict, Dict, Iterable, Iterator, List, Optional, Tuple, Type

from .domain import (
    PriorityWeights,
    QuestionHistory,
    SessionConfig,
    UserStats,
    compute_user_stats,
)
from .errors import (
    CatalogUnavailable,
    HistoryStoreUnavailable,
    InvalidWeightConfig,
    SmartQuizError,
)
from .models import Question
from .repositories import CatalogProvider, ConfigStore, HistoryStore


HistoryKey = Tuple[str, str]


class InMemoryCatalog(CatalogProvider):
    """Question pool held in a dict keyed by uuid, in insertion order."""

    def __init__(self, questions: Iterable[Question] = ()) -> None:
        self._questions: Dict[str, Question] = {}
        self.add_questions(questions)

    def add_questions(self, questions: Iterable[Question]) -> None:
        for question in questions:
            self._questions[question.uuid] = question

    def get_all_questions(self) -> List[Question]:
        return list(self._questions.values())

    def get_question_by_key(self, question_uuid: str) -> Optional[Question]:
        return self._questions.get(question_uuid)


class InMemoryHistoryStore(HistoryStore):
    """History rows in memory, with one lock per (user, question) pair."""

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, QuestionHistory]] = {}
        self._guard = threading.Lock()
        self._key_locks: DefaultDict[HistoryKey, threading.Lock] = defaultdict(threading.Lock)

    def _lock_for(self, user_id: str, question_uuid: str) -> threading.Lock:
        with self._guard:
            return self._key_locks[(user_id, question_uuid)]

    def get_history_for_user(self, user_id: str) -> List[QuestionHistory]:
        with self._guard:
            rows = list(self._rows.get(user_id, {}).values())
        return [replace(row) for row in rows]

    def get_history(self, user_id: str, question_uuid: str) -> Optional[QuestionHistory]:
        with self._guard:
            row = self._rows.get(user_id, {}).get(question_uuid)
        return replace(row) if row else None

    def upsert_history(self, row: QuestionHistory) -> None:
        with self._guard:
            self._rows.setdefault(row.user_id, {})[row.question_uuid] = replace(row)

    def apply_update(
        self,
        user_id: str,
        question_uuid: str,
        create: Callable[[], QuestionHistory],
        mutate: Callable[[QuestionHistory], None],
    ) -> QuestionHistory:
        with self._lock_for(user_id, question_uuid):
            row = self.get_history(user_id, question_uuid) or create()
            mutate(row)
            self.upsert_history(row)
            return replace(row)

    def get_aggregate_for_user(self, user_id: str) -> UserStats:
        return compute_user_stats(self.get_history_for_user(user_id))


class InMemoryConfigStore(ConfigStore):
    """Per-learner overrides on top of a shared default configuration."""

    def __init__(self, default: Optional[SessionConfig] = None) -> None:
        self._default = default or SessionConfig()
        self._overrides: Dict[str, SessionConfig] = {}

    def get_config(self, user_id: str) -> SessionConfig:
        return self._overrides.get(user_id, self._default)

    def save_config(self, user_id: str, config: SessionConfig) -> None:
        self._overrides[user_id] = config


def _config_to_json(config: SessionConfig) -> str:
    return json.dumps(
        {
            "max_questions_per_session": config.max_questions_per_session,
            "weights": config.weights.as_dict(),
            "mastery_threshold": config.mastery_threshold,
            "min_time_between_repeats": config.min_time_between_repeats,
        }
    )


def _config_from_json(payload: str) -> SessionConfig:
    try:
        values = json.loads(payload)
        values["weights"] = PriorityWeights(**values["weights"])
        return SessionConfig(**values)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidWeightConfig(f"Stored session config is unreadable: {exc}") from exc


def load_questions(path: Path) -> List[Question]:
    """Read a JSON array of catalog questions from ``path``."""

    with Path(path).open(encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON array of questions")
    return [Question.model_validate(item) for item in payload]


HISTORY_COLUMNS = (
    "user_id",
    "question_uuid",
    "question_text",
    "user_answer",
    "correct_answer",
    "is_correct",
    "response_time_ms",
    "difficulty_level",
    "category",
    "question_type",
    "presented_at",
    "last_seen",
    "times_seen",
    "times_correct",
    "times_incorrect",
    "priority_score",
    "mastery_level",
)


class SqliteSmartQuizRepository(CatalogProvider, HistoryStore, ConfigStore):
    """Stores the catalog, history rows and config overrides in SQLite."""

    def __init__(
        self,
        db_path: Path,
        default_config: Optional[SessionConfig] = None,
        timeout: float = 5.0,
    ) -> None:
        self._db_path = db_path
        self._default_config = default_config or SessionConfig()
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _guarded(self, error: Type[SmartQuizError], action: str) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                yield self._conn.cursor()
            except sqlite3.Error as exc:
                raise error(f"SQLite failure while {action}: {exc}") from exc

    def _initialise_schema(self) -> None:
        with self._guarded(HistoryStoreUnavailable, "creating schema") as cursor:
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY,
                    uuid TEXT NOT NULL UNIQUE,
                    question_text TEXT NOT NULL,
                    option_1 TEXT NOT NULL,
                    option_2 TEXT NOT NULL,
                    option_3 TEXT NOT NULL,
                    option_4 TEXT NOT NULL,
                    correct_option INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    difficulty_level INTEGER NOT NULL,
                    category TEXT
                );

                CREATE TABLE IF NOT EXISTS user_question_history (
                    user_id TEXT NOT NULL,
                    question_uuid TEXT NOT NULL,
                    question_text TEXT NOT NULL DEFAULT '',
                    user_answer TEXT,
                    correct_answer TEXT,
                    is_correct INTEGER NOT NULL DEFAULT 0,
                    response_time_ms INTEGER,
                    difficulty_level INTEGER,
                    category TEXT NOT NULL DEFAULT 'general',
                    question_type TEXT,
                    presented_at TEXT NOT NULL,
                    last_seen TEXT NOT NULL,
                    times_seen INTEGER NOT NULL DEFAULT 0,
                    times_correct INTEGER NOT NULL DEFAULT 0,
                    times_incorrect INTEGER NOT NULL DEFAULT 0,
                    priority_score REAL NOT NULL DEFAULT 1.0,
                    mastery_level REAL NOT NULL DEFAULT 0.0,
                    PRIMARY KEY (user_id, question_uuid)
                );

                CREATE INDEX IF NOT EXISTS idx_user_question_history_last_seen
                    ON user_question_history (user_id, last_seen);

                CREATE TABLE IF NOT EXISTS session_config (
                    user_id TEXT PRIMARY KEY,
                    config_json TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    # CatalogProvider ----------------------------------------------------
    def add_questions(self, questions: Iterable[Question]) -> None:
        payloads = [
            (
                question.id,
                question.uuid,
                question.question_text,
                *question.options,
                question.correct_option,
                question.type,
                question.difficulty_level,
                question.category,
            )
            for question in questions
        ]
        if not payloads:
            return
        with self._guarded(CatalogUnavailable, "saving questions") as cursor:
            cursor.executemany(
                """
                INSERT OR REPLACE INTO questions (
                    id, uuid, question_text, option_1, option_2, option_3, option_4,
                    correct_option, type, difficulty_level, category
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                payloads,
            )
            self._conn.commit()

    @staticmethod
    def _question_from_row(row: sqlite3.Row) -> Question:
        return Question(
            id=row["id"],
            uuid=row["uuid"],
            question_text=row["question_text"],
            options=[row["option_1"], row["option_2"], row["option_3"], row["option_4"]],
            correct_option=row["correct_option"],
            type=row["type"],
            difficulty_level=row["difficulty_level"],
            category=row["category"],
        )

    def get_all_questions(self) -> List[Question]:
        with self._guarded(CatalogUnavailable, "reading questions") as cursor:
            rows = cursor.execute("SELECT * FROM questions ORDER BY id").fetchall()
        return [self._question_from_row(row) for row in rows]

    def get_question_by_key(self, question_uuid: str) -> Optional[Question]:
        with self._guarded(CatalogUnavailable, "reading a question") as cursor:
            row = cursor.execute(
                "SELECT * FROM questions WHERE uuid = ?", (question_uuid,)
            ).fetchone()
        return self._question_from_row(row) if row else None

    # HistoryStore -------------------------------------------------------
    @staticmethod
    def _history_from_row(row: sqlite3.Row) -> QuestionHistory:
        return QuestionHistory.from_dict({column: row[column] for column in HISTORY_COLUMNS})

    @staticmethod
    def _history_params(history: QuestionHistory) -> tuple:
        payload = history.to_dict()
        payload["is_correct"] = int(history.is_correct)
        return tuple(payload[column] for column in HISTORY_COLUMNS)

    def _write_history(self, cursor: sqlite3.Cursor, row: QuestionHistory) -> None:
        placeholders = ", ".join("?" for _ in HISTORY_COLUMNS)
        cursor.execute(
            f"""
            INSERT OR REPLACE INTO user_question_history ({", ".join(HISTORY_COLUMNS)})
            VALUES ({placeholders})
            """,
            self._history_params(row),
        )

    def get_history_for_user(self, user_id: str) -> List[QuestionHistory]:
        with self._guarded(HistoryStoreUnavailable, "reading history") as cursor:
            rows = cursor.execute(
                "SELECT * FROM user_question_history WHERE user_id = ? ORDER BY last_seen",
                (user_id,),
            ).fetchall()
        return [self._history_from_row(row) for row in rows]

    def get_history(self, user_id: str, question_uuid: str) -> Optional[QuestionHistory]:
        with self._guarded(HistoryStoreUnavailable, "reading history") as cursor:
            row = cursor.execute(
                "SELECT * FROM user_question_history WHERE user_id = ? AND question_uuid = ?",
                (user_id, question_uuid),
            ).fetchone()
        return self._history_from_row(row) if row else None

    def upsert_history(self, row: QuestionHistory) -> None:
        with self._guarded(HistoryStoreUnavailable, "writing history") as cursor:
            self._write_history(cursor, row)
            self._conn.commit()

    def apply_update(
        self,
        user_id: str,
        question_uuid: str,
        create: Callable[[], QuestionHistory],
        mutate: Callable[[QuestionHistory], None],
    ) -> QuestionHistory:
        with self._guarded(HistoryStoreUnavailable, "updating history") as cursor:
            # IMMEDIATE takes the write lock up front so other connections
            # cannot interleave between the read and the write.
            cursor.execute("BEGIN IMMEDIATE")
            try:
                found = cursor.execute(
                    "SELECT * FROM user_question_history WHERE user_id = ? AND question_uuid = ?",
                    (user_id, question_uuid),
                ).fetchone()
                row = self._history_from_row(found) if found else create()
                mutate(row)
                self._write_history(cursor, row)
            except Exception:
                if self._conn.in_transaction:
                    self._conn.rollback()
                raise
            self._conn.commit()
        return row

    def get_aggregate_for_user(self, user_id: str) -> UserStats:
        with self._guarded(HistoryStoreUnavailable, "aggregating history") as cursor:
            row = cursor.execute(
                """
                SELECT SUM(times_seen) AS seen,
                       SUM(times_correct) AS correct,
                       AVG(difficulty_level) AS avg_difficulty
                  FROM user_question_history
                 WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        defaults = UserStats()
        seen = row["seen"] or 0
        return UserStats(
            avg_accuracy=(row["correct"] or 0) / seen if seen else defaults.avg_accuracy,
            avg_difficulty=row["avg_difficulty"]
            if row["avg_difficulty"] is not None
            else defaults.avg_difficulty,
            total_attempts=seen,
        )

    # ConfigStore --------------------------------------------------------
    def get_config(self, user_id: str) -> SessionConfig:
        with self._guarded(HistoryStoreUnavailable, "reading config") as cursor:
            row = cursor.execute(
                "SELECT config_json FROM session_config WHERE user_id = ?", (user_id,)
            ).fetchone()
        if not row:
            return self._default_config
        return _config_from_json(row["config_json"])

    def save_config(self, user_id: str, config: SessionConfig) -> None:
        with self._guarded(HistoryStoreUnavailable, "saving config") as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO session_config (user_id, config_json)
                VALUES (?, ?)
                """,
                (user_id, _config_to_json(config)),
            )
            self._conn.commit()


__all__ = [
    "InMemoryCatalog",
    "InMemoryConfigStore",
    "InMemoryHistoryStore",
    "SqliteSmartQuizRepository",
    "load_questions",
]
