"""Pydantic models for the SmartQuiz selection service."""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


SelectionMethod = Literal["smart_algorithm", "random_fallback"]


class Question(BaseModel):
    """Catalog entry. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: int
    uuid: str
    question_text: str
    options: List[str]
    correct_option: int
    type: str = "multiple_choice"
    difficulty_level: int = 2
    category: str = "general"

    @field_validator("options")
    @classmethod
    def validate_options(cls, value: List[str]) -> List[str]:
        if len(value) != 4:
            raise ValueError("Questions carry exactly four answer options")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, value: Optional[str]) -> str:
        return value or "general"

    def to_view(self) -> "QuestionView":
        return QuestionView(
            id=self.id,
            uuid=self.uuid,
            question_text=self.question_text,
            options=[option for option in self.options if option and option.strip()],
            type=self.type,
            difficulty_level=self.difficulty_level,
            category=self.category,
        )


class QuestionView(BaseModel):
    """Learner-facing projection of a question, without the correct option."""

    id: int
    uuid: str
    question_text: str
    options: List[str]
    type: str
    difficulty_level: int
    category: str


class SelectionMetadata(BaseModel):
    total_selected: int
    user_id: str
    selection_method: SelectionMethod


class SmartQuestionsResponse(BaseModel):
    success: bool = True
    questions: List[QuestionView]
    metadata: SelectionMetadata


class RecordAnswerRequest(BaseModel):
    """Input body for POST /v1/smart-questions."""

    user_id: str
    question_uuid: str
    user_answer: str
    correct_answer: str
    is_correct: bool
    response_time_ms: Optional[int] = Field(default=None, ge=0)


class RecordPresentationRequest(BaseModel):
    user_id: str
    question_uuids: List[str] = Field(default_factory=list)


class AckResponse(BaseModel):
    success: bool
    message: str


class CategoryBreakdown(BaseModel):
    category: str
    questions_attempted: int = 0
    avg_mastery: float = 0.0
    total_correct: int = 0
    total_attempts: int = 0


class AnalyticsOverview(BaseModel):
    total_questions_attempted: int = 0
    total_correct: int = 0
    total_attempts: int = 0
    accuracy: float = 0.0
    avg_mastery: float = 0.0
    avg_response_time: float = 0.0
    mastered_questions: int = 0


class PerformanceMetrics(BaseModel):
    accuracy_percentage: int = 0
    mastery_percentage: int = 0
    questions_mastered_percentage: int = 0


class UserAnalytics(BaseModel):
    """Learning state summary for one learner."""

    overview: AnalyticsOverview = Field(default_factory=AnalyticsOverview)
    category_breakdown: List[CategoryBreakdown] = Field(default_factory=list)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


class UserAnalyticsResponse(BaseModel):
    success: bool = True
    analytics: UserAnalytics


class ConfigUpdateRequest(BaseModel):
    """Partial override of a learner's selection settings."""

    max_questions_per_session: Optional[int] = None
    weights: Optional[Dict[str, float]] = None
    mastery_threshold: Optional[float] = None
    min_time_between_repeats: Optional[float] = None


class ConfigResponse(BaseModel):
    user_id: str
    max_questions_per_session: int
    weights: Dict[str, float]
    mastery_threshold: float
    min_time_between_repeats: float


__all__ = [
    "AckResponse",
    "AnalyticsOverview",
    "CategoryBreakdown",
    "ConfigResponse",
    "ConfigUpdateRequest",
    "PerformanceMetrics",
    "Question",
    "QuestionView",
    "RecordAnswerRequest",
    "RecordPresentationRequest",
    "SelectionMetadata",
    "SmartQuestionsResponse",
    "UserAnalytics",
    "UserAnalyticsResponse",
]
