"""Reporting and analytics over completed attempts.

Everything here reads persisted questions and answers; grading is never
re-run. ``build_analysis`` is the only function that talks to the
generative backend, through the recommendation engine; its DB reads run
in the threadpool and finish before the first generation await.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from collections import OrderedDict
from typing import Any

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func
from sqlalchemy.orm import Session

from skill_evaluator.core.exceptions import NotFound
from skill_evaluator.db.models import (
    Concept,
    DifficultyEnum,
    EvaluatorAttempt,
    LearningResource,
    PerformanceEnum,
)
from skill_evaluator.services.attempts import get_completed_attempt
from skill_evaluator.services.grading import IncorrectItem, score_percentage
from skill_evaluator.services.learning_resources import list_resources
from skill_evaluator.services.recommendations import RecommendationEngine

logger = logging.getLogger(__name__)

CHALLENGING_CONCEPTS = 5
MAX_RECOMMENDED_RESOURCES = 8


def attempt_summary(attempt: EvaluatorAttempt) -> dict[str, Any]:
    return {
        "attempt_id": attempt.id,
        "user_id": attempt.user_id,
        "concept": attempt.concept.key,
        "easy_score": attempt.easy_score,
        "medium_score": attempt.medium_score,
        "hard_score": attempt.hard_score,
        "total_score": attempt.total_score,
        "percentage": attempt.percentage,
        "performance": attempt.performance,
        "weak_areas": list(attempt.weak_areas or []),
        "created_at": attempt.created_at,
        "completed_at": attempt.completed_at,
    }


def build_review(attempt: EvaluatorAttempt) -> list[dict[str, Any]]:
    """One entry per question in position order, joined to its answer.

    Unanswered questions appear with ``user_answer=None`` and
    ``is_correct=False``.
    """
    answers = {a.question_id: a for a in attempt.answers}
    review = []
    for q in attempt.questions:
        answer = answers.get(q.id)
        review.append(
            {
                "question_id": q.id,
                "question_text": q.text,
                "options": list(q.options),
                "user_answer": answer.user_answer if answer else None,
                "is_correct": bool(answer and answer.is_correct),
                "correct_answer": q.correct_answer,
                "explanation": q.explanation or "",
                "difficulty": q.difficulty,
                "concept": q.concept,
                "time_spent": answer.time_spent if answer else None,
            }
        )
    return review


def _incorrect_items(review: list[dict[str, Any]]) -> list[IncorrectItem]:
    return [
        IncorrectItem(
            question_text=item["question_text"],
            user_answer=item["user_answer"],
            correct_answer=item["correct_answer"],
            difficulty=item["difficulty"],
            concept=item["concept"],
            explanation=item["explanation"],
        )
        for item in review
        if item["user_answer"] is not None and not item["is_correct"]
    ]


def recommended_resources(
    db: Session, concept: str, weak_areas: list[str]
) -> list[LearningResource]:
    """Curated resources for each weak area, else the concept's own, capped."""
    picked: dict[uuid.UUID, LearningResource] = {}
    for area in weak_areas:
        matches = list_resources(db, concept, sub_concept=area) or list_resources(db, concept)
        for resource in matches:
            picked.setdefault(resource.id, resource)
    return list(picked.values())[:MAX_RECOMMENDED_RESOURCES]


def build_stored_result(db: Session, attempt: EvaluatorAttempt) -> dict[str, Any]:
    """Completed result from stored data only; no generative calls."""
    weak_areas = list(attempt.weak_areas or [])
    return {
        **attempt_summary(attempt),
        "review": build_review(attempt),
        "recommended_resources": recommended_resources(db, attempt.concept.key, weak_areas),
    }


def _analysis_snapshot(
    db: Session, attempt_id: uuid.UUID, user_id: uuid.UUID
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    try:
        attempt = get_completed_attempt(db, attempt_id, user_id)
        return attempt_summary(attempt), build_review(attempt)
    finally:
        db.rollback()


async def build_analysis(
    db: Session,
    attempt_id: uuid.UUID,
    user_id: uuid.UUID,
    engine: RecommendationEngine,
) -> dict[str, Any]:
    """Scores, review and freshly generated study advice and resources."""
    summary, review = await run_in_threadpool(_analysis_snapshot, db, attempt_id, user_id)
    incorrect = _incorrect_items(review)
    concept_key = summary["concept"]
    weak_areas = summary["weak_areas"]
    performance = summary["performance"]

    study, resources = await asyncio.gather(
        engine.study_recommendations(concept_key, weak_areas, performance, incorrect),
        engine.personalized_resources(concept_key, weak_areas, performance, incorrect),
    )
    return {
        **summary,
        "review": review,
        "study_recommendations": study,
        "personalized_resources": resources,
    }


# ── Admin analytics ───────────────────────────────────────────────────────────


def _completed(db: Session):
    return db.query(EvaluatorAttempt).filter(EvaluatorAttempt.completed.is_(True))


def aggregate_stats(db: Session, top_n: int = 10) -> dict[str, Any]:
    total = db.query(func.count(EvaluatorAttempt.id)).scalar() or 0
    completed = (
        db.query(func.count(EvaluatorAttempt.id))
        .filter(EvaluatorAttempt.completed.is_(True))
        .scalar()
        or 0
    )

    histogram = {band.value: 0 for band in PerformanceEnum}
    for band, count in (
        db.query(EvaluatorAttempt.performance, func.count(EvaluatorAttempt.id))
        .filter(EvaluatorAttempt.completed.is_(True))
        .group_by(EvaluatorAttempt.performance)
        .all()
    ):
        if band is not None:
            histogram[PerformanceEnum(band).value] = count

    concept_rows = (
        db.query(
            Concept.key,
            func.count(EvaluatorAttempt.id),
            func.avg(EvaluatorAttempt.percentage),
        )
        .join(EvaluatorAttempt, EvaluatorAttempt.concept_id == Concept.id)
        .filter(EvaluatorAttempt.completed.is_(True))
        .group_by(Concept.key)
        .all()
    )
    concept_stats = [
        {
            "concept": key,
            "attempts": count,
            "average_percentage": int(float(avg or 0) + 0.5),
        }
        for key, count, avg in concept_rows
    ]
    concept_stats.sort(key=lambda s: s["concept"])
    challenging = sorted(
        concept_stats, key=lambda s: (s["average_percentage"], s["concept"])
    )[:CHALLENGING_CONCEPTS]

    top = (
        _completed(db)
        .order_by(EvaluatorAttempt.percentage.desc(), EvaluatorAttempt.completed_at.desc())
        .limit(top_n)
        .all()
    )
    recent = _completed(db).order_by(EvaluatorAttempt.completed_at.desc()).limit(top_n).all()

    return {
        "overview": {
            "total_attempts": total,
            "completed_attempts": completed,
            "completion_rate": score_percentage(completed, total),
        },
        "performance_distribution": histogram,
        "concept_stats": concept_stats,
        "challenging_concepts": challenging,
        "top_attempts": [attempt_summary(a) for a in top],
        "recent_attempts": [attempt_summary(a) for a in recent],
    }


def list_completed_results(
    db: Session,
    concept: str | None = None,
    performance: PerformanceEnum | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    query = _completed(db)
    if concept:
        query = query.join(Concept, EvaluatorAttempt.concept_id == Concept.id).filter(
            Concept.key == concept.strip().lower()
        )
    if performance is not None:
        query = query.filter(EvaluatorAttempt.performance == performance)

    total = query.count()
    rows = (
        query.order_by(EvaluatorAttempt.completed_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "results": [attempt_summary(a) for a in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


def admin_attempt_detail(db: Session, attempt_id: uuid.UUID) -> dict[str, Any]:
    attempt = db.get(EvaluatorAttempt, attempt_id)
    if attempt is None or not attempt.completed:
        raise NotFound("Test result not found")

    by_concept: OrderedDict[str, dict[str, int]] = OrderedDict()
    by_difficulty = {d.value: {"correct": 0, "total": 0} for d in DifficultyEnum}
    for answer in attempt.answers:
        bucket = by_concept.setdefault(answer.concept, {"correct": 0, "total": 0})
        bucket["total"] += 1
        by_difficulty[answer.difficulty.value]["total"] += 1
        if answer.is_correct:
            bucket["correct"] += 1
            by_difficulty[answer.difficulty.value]["correct"] += 1

    return {
        **attempt_summary(attempt),
        "review": build_review(attempt),
        "concept_breakdown": dict(by_concept),
        "difficulty_breakdown": by_difficulty,
    }
