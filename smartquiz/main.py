"""FastAPI application wiring for the SmartQuiz selection service."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from .domain import PriorityWeights, SessionConfig
from .errors import CatalogUnavailable, HistoryStoreUnavailable, InvalidWeightConfig, QuestionNotFound
from .models import (
    AckResponse,
    ConfigResponse,
    ConfigUpdateRequest,
    RecordAnswerRequest,
    RecordPresentationRequest,
    SelectionMetadata,
    SmartQuestionsResponse,
    UserAnalyticsResponse,
)
from .services import SmartQuestionService
from .storage import (
    InMemoryCatalog,
    InMemoryConfigStore,
    InMemoryHistoryStore,
    SqliteSmartQuizRepository,
    load_questions,
)


logger = logging.getLogger(__name__)

app = FastAPI(title="SmartQuiz", version="0.1.0")


def get_service() -> SmartQuestionService:
    return app.state.service


def default_config_from_env() -> SessionConfig:
    config = SessionConfig(
        max_questions_per_session=int(os.getenv("SMARTQUIZ_MAX_QUESTIONS", "5")),
        weights=PriorityWeights(),
        mastery_threshold=float(os.getenv("SMARTQUIZ_MASTERY_THRESHOLD", "0.8")),
        min_time_between_repeats=float(os.getenv("SMARTQUIZ_MIN_HOURS_BETWEEN_REPEATS", "1")),
    )
    return config.with_overrides()


def build_service(
    db_path: Optional[str],
    default_config: SessionConfig,
    catalog_path: Optional[str] = None,
) -> SmartQuestionService:
    questions = load_questions(Path(catalog_path)) if catalog_path else []
    if db_path:
        repository = SqliteSmartQuizRepository(Path(db_path), default_config=default_config)
        repository.add_questions(questions)
        app.state.repository = repository
        return SmartQuestionService(repository, repository, repository)
    app.state.repository = None
    return SmartQuestionService(
        InMemoryCatalog(questions), InMemoryHistoryStore(), InMemoryConfigStore(default_config)
    )


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(
        level=os.getenv("SMARTQUIZ_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    default_config = default_config_from_env()
    db_path = os.getenv("SMARTQUIZ_DB_PATH")
    catalog_path = os.getenv("SMARTQUIZ_CATALOG_PATH")
    app.state.default_config = default_config
    app.state.service = build_service(db_path, default_config, catalog_path)
    logger.info("SmartQuiz started with %s storage", "SQLite" if db_path else "in-memory")
    if catalog_path:
        logger.info("Seeded catalog from %s", catalog_path)


@app.on_event("shutdown")
def shutdown() -> None:
    repository = getattr(app.state, "repository", None)
    if repository is not None:
        repository.close()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/v1/smart-questions", response_model=SmartQuestionsResponse)
def smart_questions(
    user_id: str,
    count: int = Query(5, ge=1),
    difficulty: Optional[int] = None,
    category: Optional[str] = None,
    service: SmartQuestionService = Depends(get_service),
) -> SmartQuestionsResponse:
    try:
        result = service.get_smart_questions(
            user_id, count=count, difficulty=difficulty, category=category
        )
    except CatalogUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    # Presenting is recorded here so the next call honours the cooldown.
    if result.questions:
        service.record_presentation(user_id, result.question_uuids)

    return SmartQuestionsResponse(
        questions=result.views,
        metadata=SelectionMetadata(
            total_selected=len(result.questions),
            user_id=user_id,
            selection_method=result.selection_method,
        ),
    )


@app.post("/v1/smart-questions", response_model=AckResponse)
def record_answer(
    request: RecordAnswerRequest, service: SmartQuestionService = Depends(get_service)
) -> AckResponse:
    try:
        result = service.record_answer(
            request.user_id,
            request.question_uuid,
            request.user_answer,
            request.correct_answer,
            request.is_correct,
            response_time_ms=request.response_time_ms,
        )
    except QuestionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if not result.success:
        return AckResponse(success=False, message="Answer could not be recorded")
    return AckResponse(success=True, message="Answer recorded successfully")


@app.post("/v1/smart-questions/presentations", response_model=AckResponse)
def record_presentation(
    request: RecordPresentationRequest, service: SmartQuestionService = Depends(get_service)
) -> AckResponse:
    result = service.record_presentation(request.user_id, request.question_uuids)
    if not result.success:
        return AckResponse(success=False, message="Presentation could not be recorded")
    return AckResponse(success=True, message=f"Recorded {result.touched} presentation(s)")


@app.get("/v1/user-analytics", response_model=UserAnalyticsResponse)
def user_analytics(
    user_id: str, service: SmartQuestionService = Depends(get_service)
) -> UserAnalyticsResponse:
    try:
        analytics = service.get_user_analytics(user_id)
    except HistoryStoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return UserAnalyticsResponse(analytics=analytics)


def _config_response(user_id: str, config: SessionConfig) -> ConfigResponse:
    return ConfigResponse(
        user_id=user_id,
        max_questions_per_session=config.max_questions_per_session,
        weights=config.weights.as_dict(),
        mastery_threshold=config.mastery_threshold,
        min_time_between_repeats=config.min_time_between_repeats,
    )


@app.get("/v1/config/{user_id}", response_model=ConfigResponse)
def read_config(user_id: str, service: SmartQuestionService = Depends(get_service)) -> ConfigResponse:
    return _config_response(user_id, service.get_config(user_id))


@app.put("/v1/config/{user_id}", response_model=ConfigResponse)
def update_config(
    user_id: str,
    request: ConfigUpdateRequest,
    service: SmartQuestionService = Depends(get_service),
) -> ConfigResponse:
    try:
        config = service.update_config(user_id, **request.model_dump(exclude_none=True))
    except InvalidWeightConfig as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _config_response(user_id, config)


__all__ = ["app", "build_service", "default_config_from_env"]
