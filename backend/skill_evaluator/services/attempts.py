"""Attempt lifecycle: NONE -> ACTIVE -> COMPLETED.

A user holds at most one ACTIVE attempt per concept. Starting again
replaces it, but only once a full question set has been generated, so a
failed start leaves the previous attempt playable. Submitting completes an
attempt exactly once.

The ``Session`` is synchronous: every DB step runs in the threadpool and
ends its transaction before the next generation await.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from skill_evaluator.core.exceptions import AlreadyCompleted, AttemptConflict, NotFound
from skill_evaluator.db.models import (
    ACTIVE_SLOT,
    EvaluatorAnswer,
    EvaluatorAttempt,
    EvaluatorQuestion,
)
from skill_evaluator.services.concept_catalog import resolve_for_attempt
from skill_evaluator.services.grading import (
    GradeResult,
    SubmittedAnswer,
    grade,
    performance_message,
)
from skill_evaluator.services.question_generation import (
    TierQuestion,
    generate_question_set,
)
from skill_evaluator.services.recommendations import RecommendationEngine
from skill_evaluator.services.structured_generation import StructuredGenerationGateway

logger = logging.getLogger(__name__)

# one retry when a concurrent start takes the active slot first
_REPLACE_ATTEMPTS = 2


@dataclass
class ConceptRef:
    id: uuid.UUID
    key: str
    description: str


@dataclass
class SubmitOutcome:
    attempt: EvaluatorAttempt
    grade: GradeResult
    message: str
    recommendations: dict[str, Any]


def load_attempt(db: Session, attempt_id: uuid.UUID) -> EvaluatorAttempt:
    """Attempt with its concept and questions loaded, safe to read off-thread."""
    return (
        db.query(EvaluatorAttempt)
        .options(
            joinedload(EvaluatorAttempt.concept),
            selectinload(EvaluatorAttempt.questions),
        )
        .filter(EvaluatorAttempt.id == attempt_id)
        .populate_existing()
        .one()
    )


# ── Start ─────────────────────────────────────────────────────────────────────


def _resolve_concept(db: Session, concept_key: str) -> ConceptRef:
    concept = resolve_for_attempt(db, concept_key)
    ref = ConceptRef(id=concept.id, key=concept.key, description=concept.description)
    db.rollback()
    return ref


def _replace_active(
    db: Session,
    user_id: uuid.UUID,
    concept: ConceptRef,
    questions: Sequence[TierQuestion],
) -> uuid.UUID:
    """Swap the caller's ACTIVE attempt for a new one in a single commit."""
    stale = (
        db.query(EvaluatorAttempt)
        .filter(
            EvaluatorAttempt.user_id == user_id,
            EvaluatorAttempt.concept_id == concept.id,
            EvaluatorAttempt.completed.is_(False),
        )
        .all()
    )
    for old in stale:
        db.delete(old)
    # the slot must be free before the new row claims it
    db.flush()

    attempt = EvaluatorAttempt(
        user_id=user_id,
        concept_id=concept.id,
        completed=False,
        active_slot=ACTIVE_SLOT,
        weak_areas=[],
    )
    attempt.questions = [
        EvaluatorQuestion(
            position=pos,
            text=q.text,
            options=list(q.options),
            correct_answer=q.correct_answer,
            difficulty=q.difficulty,
            concept=q.concept,
            explanation=q.explanation,
        )
        for pos, q in enumerate(questions)
    ]
    db.add(attempt)
    db.commit()
    if stale:
        logger.info(
            "Replaced %d active attempt(s) for user %s on %s", len(stale), user_id, concept.key
        )
    return attempt.id


def _persist_attempt(
    db: Session,
    user_id: uuid.UUID,
    concept: ConceptRef,
    questions: Sequence[TierQuestion],
) -> EvaluatorAttempt:
    for _ in range(_REPLACE_ATTEMPTS):
        try:
            attempt_id = _replace_active(db, user_id, concept, questions)
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Active slot taken concurrently for user %s on %s, retrying",
                user_id,
                concept.key,
            )
            continue
        return load_attempt(db, attempt_id)
    raise AttemptConflict("Another attempt for this concept was started concurrently")


async def start_attempt(
    db: Session,
    gateway: StructuredGenerationGateway,
    user_id: uuid.UUID,
    concept_key: str,
) -> EvaluatorAttempt:
    """Generate a fresh question set and make it the user's ACTIVE attempt.

    Raises ``UnknownConcept`` before any work, ``TestGenerationFailed``
    when the set cannot be generated (nothing persisted, prior attempt
    untouched) and ``AttemptConflict`` when the active slot keeps being
    taken by concurrent starts.
    """
    concept = await run_in_threadpool(_resolve_concept, db, concept_key)
    questions = await generate_question_set(gateway, concept.key, concept.description)
    return await run_in_threadpool(_persist_attempt, db, user_id, concept, questions)


# ── Submit ────────────────────────────────────────────────────────────────────


def _owned_attempt(db: Session, attempt_id: uuid.UUID, user_id: uuid.UUID) -> EvaluatorAttempt:
    attempt = db.get(EvaluatorAttempt, attempt_id)
    if attempt is None or attempt.user_id != user_id:
        raise NotFound("Test attempt not found")
    return attempt


def _grade_active(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    answers: Sequence[SubmittedAnswer],
) -> tuple[str, GradeResult]:
    try:
        attempt = _owned_attempt(db, attempt_id, user_id)
        if attempt.completed:
            raise AlreadyCompleted("Test already completed")
        return attempt.concept.key, grade(attempt.questions, answers)
    finally:
        db.rollback()


def _complete(
    db: Session, attempt_id: uuid.UUID, result: GradeResult
) -> EvaluatorAttempt:
    """Mark the attempt COMPLETED and write its answers, or raise ``AlreadyCompleted``."""
    outcome = db.execute(
        update(EvaluatorAttempt)
        .where(EvaluatorAttempt.id == attempt_id, EvaluatorAttempt.completed.is_(False))
        .values(
            completed=True,
            active_slot=None,
            easy_score=result.easy,
            medium_score=result.medium,
            hard_score=result.hard,
            total_score=result.total,
            percentage=result.percentage,
            performance=result.performance,
            weak_areas=result.weak_areas,
            completed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        # a concurrent submit got there first
        db.rollback()
        raise AlreadyCompleted("Test already completed")

    db.add_all(
        EvaluatorAnswer(
            attempt_id=attempt_id,
            question_id=rec.question_id,
            user_answer=rec.user_answer,
            is_correct=rec.is_correct,
            difficulty=rec.difficulty,
            concept=rec.concept,
            time_spent=rec.time_spent,
        )
        for rec in result.records
    )
    db.commit()
    return load_attempt(db, attempt_id)


async def submit_attempt(
    db: Session,
    engine: RecommendationEngine,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    answers: Sequence[SubmittedAnswer],
) -> SubmitOutcome:
    concept_key, result = await run_in_threadpool(
        _grade_active, db, attempt_id, user_id, answers
    )
    recommendations = await engine.personalized_resources(
        concept_key, result.weak_areas, result.performance, result.incorrect
    )
    attempt = await run_in_threadpool(_complete, db, attempt_id, result)

    logger.info(
        "Attempt %s completed: %d/%d (%s)",
        attempt.id,
        result.total,
        len(attempt.questions),
        result.performance.value,
    )
    return SubmitOutcome(
        attempt=attempt,
        grade=result,
        message=performance_message(result.performance, result.percentage, concept_key),
        recommendations=recommendations,
    )


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_active_attempt(db: Session, user_id: uuid.UUID) -> EvaluatorAttempt:
    """Newest ACTIVE attempt across all of the user's concepts."""
    attempt = (
        db.query(EvaluatorAttempt)
        .filter(
            EvaluatorAttempt.user_id == user_id,
            EvaluatorAttempt.completed.is_(False),
        )
        .order_by(EvaluatorAttempt.created_at.desc())
        .first()
    )
    if attempt is None:
        raise NotFound("No active test found")
    return attempt


def get_completed_attempt(
    db: Session, attempt_id: uuid.UUID, user_id: uuid.UUID
) -> EvaluatorAttempt:
    attempt = _owned_attempt(db, attempt_id, user_id)
    if not attempt.completed:
        raise NotFound("Test result not found")
    return attempt


def list_completed_for_user(db: Session, user_id: uuid.UUID) -> list[EvaluatorAttempt]:
    return (
        db.query(EvaluatorAttempt)
        .filter(
            EvaluatorAttempt.user_id == user_id,
            EvaluatorAttempt.completed.is_(True),
        )
        .order_by(EvaluatorAttempt.completed_at.desc())
        .all()
    )
