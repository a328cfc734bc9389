"""Student-facing evaluator schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from skill_evaluator.db.models import DifficultyEnum, PerformanceEnum


class ConceptRead(BaseModel):
    key: str
    description: str
    question_count: int


# ── Start / current ──────────────────────────────────────────────────────────


class QuestionRead(BaseModel):
    """A question as shown while the attempt is ACTIVE: no answer, no explanation."""

    id: uuid.UUID
    position: int
    question_text: str
    options: list[str]
    difficulty: DifficultyEnum
    concept: str


class AttemptStarted(BaseModel):
    attempt_id: uuid.UUID
    concept: str
    description: str
    total_questions: int
    questions: list[QuestionRead]
    time_limit_minutes: int
    created_at: datetime | None = None


# ── Submit ───────────────────────────────────────────────────────────────────


class AnswerSubmit(BaseModel):
    question_id: str = Field(min_length=1)
    user_answer: str
    time_spent: float | None = Field(default=None, ge=0)


class AttemptSubmit(BaseModel):
    """POST /api/evaluator/submit/{attempt_id}"""

    answers: list[AnswerSubmit]


class ScoreBreakdown(BaseModel):
    easy: int
    medium: int
    hard: int
    total: int


class SubmitResult(BaseModel):
    attempt_id: uuid.UUID
    concept: str
    scores: ScoreBreakdown
    percentage: int
    performance: PerformanceEnum
    message: str
    weak_areas: list[str]
    recommendations: dict[str, Any]
    completed_at: datetime


# ── Results ──────────────────────────────────────────────────────────────────


class ResultSummary(BaseModel):
    attempt_id: uuid.UUID
    user_id: uuid.UUID
    concept: str
    easy_score: int
    medium_score: int
    hard_score: int
    total_score: int
    percentage: int
    performance: PerformanceEnum | None = None
    weak_areas: list[str] = []
    created_at: datetime | None = None
    completed_at: datetime | None = None


class QuestionReview(BaseModel):
    question_id: uuid.UUID
    question_text: str
    options: list[str]
    user_answer: str | None = None
    is_correct: bool
    correct_answer: str
    explanation: str = ""
    difficulty: DifficultyEnum
    concept: str
    time_spent: float | None = None


class ResultAnalysis(ResultSummary):
    review: list[QuestionReview]
    study_recommendations: dict[str, Any] | None = None
    personalized_resources: dict[str, Any]


# ── Curated resources ────────────────────────────────────────────────────────


class LearningResourceCreate(BaseModel):
    concept: str = Field(min_length=1)
    sub_concept: str | None = None
    title: str = Field(min_length=1)
    description: str = ""
    resource_type: str = Field(min_length=1)
    url: str = Field(min_length=1)
    difficulty: str = Field(min_length=1)


class LearningResourceRead(BaseModel):
    id: uuid.UUID
    concept: str
    sub_concept: str | None = None
    title: str
    description: str
    resource_type: str
    url: str
    difficulty: str
    created_at: datetime

    model_config = {"from_attributes": True}


class StoredResult(ResultSummary):
    review: list[QuestionReview]
    recommended_resources: list[LearningResourceRead] = []
