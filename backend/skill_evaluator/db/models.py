"""SQLAlchemy ORM models for the skill evaluator.

Tables
------
- concepts             assessable subjects (idempotent upsert, never deleted)
- evaluator_attempts   one user's assessment instance for one concept
- evaluator_questions  the 30 generated questions owned by an attempt
- evaluator_answers    per-question answers written once at submit
- learning_resources   admin-curated resource library per concept
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skill_evaluator.db.session import Base


# ── helpers ───────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


# ── Enums (stored as VARCHAR via SQLAlchemy Enum) ─────────────────────────────


class DifficultyEnum(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class PerformanceEnum(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    NEEDS_IMPROVEMENT = "NEEDS_IMPROVEMENT"


# Marks the single live attempt per (user, concept); NULL once completed.
ACTIVE_SLOT = 1


# ── Concepts ──────────────────────────────────────────────────────────────────


class Concept(Base):
    __tablename__ = "concepts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    key: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    attempts: Mapped[list["EvaluatorAttempt"]] = relationship(back_populates="concept")


# ── Attempts ──────────────────────────────────────────────────────────────────


class EvaluatorAttempt(Base):
    __tablename__ = "evaluator_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True)
    concept_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("concepts.id")
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    active_slot: Mapped[int | None] = mapped_column(
        Integer, nullable=True, default=ACTIVE_SLOT
    )
    easy_score: Mapped[int] = mapped_column(Integer, default=0)
    medium_score: Mapped[int] = mapped_column(Integer, default=0)
    hard_score: Mapped[int] = mapped_column(Integer, default=0)
    total_score: Mapped[int] = mapped_column(Integer, default=0)
    percentage: Mapped[int] = mapped_column(Integer, default=0)
    performance: Mapped[PerformanceEnum | None] = mapped_column(
        Enum(PerformanceEnum, name="performance_enum"), nullable=True
    )
    weak_areas: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    concept: Mapped["Concept"] = relationship(back_populates="attempts")
    questions: Mapped[list["EvaluatorQuestion"]] = relationship(
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="EvaluatorQuestion.position",
    )
    answers: Mapped[list["EvaluatorAnswer"]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "concept_id", "active_slot", name="uq_attempt_active_slot"
        ),
    )


class EvaluatorQuestion(Base):
    """Generated question, exclusively owned by one attempt."""

    __tablename__ = "evaluator_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluator_attempts.id", ondelete="CASCADE")
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    text: Mapped[str] = mapped_column(Text)
    options: Mapped[list[str]] = mapped_column(JSON)
    correct_answer: Mapped[str] = mapped_column(Text)
    difficulty: Mapped[DifficultyEnum] = mapped_column(
        Enum(DifficultyEnum, name="difficulty_enum")
    )
    concept: Mapped[str] = mapped_column(String(200))
    explanation: Mapped[str] = mapped_column(Text, default="")

    attempt: Mapped["EvaluatorAttempt"] = relationship(back_populates="questions")


class EvaluatorAnswer(Base):
    """Individual answer within an attempt."""

    __tablename__ = "evaluator_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluator_attempts.id", ondelete="CASCADE")
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluator_questions.id", ondelete="CASCADE")
    )
    user_answer: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    # denormalised from the question for reporting
    difficulty: Mapped[DifficultyEnum] = mapped_column(
        Enum(DifficultyEnum, name="difficulty_enum", create_constraint=False)
    )
    concept: Mapped[str] = mapped_column(String(200))
    time_spent: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    attempt: Mapped["EvaluatorAttempt"] = relationship(back_populates="answers")
    question: Mapped["EvaluatorQuestion"] = relationship("EvaluatorQuestion")


# ── Learning resources (curated library) ──────────────────────────────────────


class LearningResource(Base):
    __tablename__ = "learning_resources"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    concept: Mapped[str] = mapped_column(String(100), index=True)
    sub_concept: Mapped[str | None] = mapped_column(String(200), nullable=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    resource_type: Mapped[str] = mapped_column(String(50))
    url: Mapped[str] = mapped_column(String(1000))
    difficulty: Mapped[str] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
