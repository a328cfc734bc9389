"""Adaptive skill evaluator routes: start, submit, stored results and analysis."""

import logging
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from skill_evaluator.api.deps import (
    CurrentUser,
    get_current_user,
    get_generation_gateway,
    get_recommendation_engine,
    rate_limited,
)
from skill_evaluator.config import settings
from skill_evaluator.db.models import EvaluatorAttempt
from skill_evaluator.db.session import get_db
from skill_evaluator.schemas.common import ErrorResponse
from skill_evaluator.schemas.evaluator import (
    AttemptStarted,
    AttemptSubmit,
    ConceptRead,
    LearningResourceRead,
    QuestionRead,
    ResultAnalysis,
    ResultSummary,
    ScoreBreakdown,
    StoredResult,
    SubmitResult,
)
from skill_evaluator.services import attempts as attempt_service
from skill_evaluator.services import concept_catalog, learning_resources, reporting
from skill_evaluator.services.grading import SubmittedAnswer
from skill_evaluator.services.question_generation import TOTAL_QUESTIONS
from skill_evaluator.services.recommendations import RecommendationEngine
from skill_evaluator.services.structured_generation import StructuredGenerationGateway

logger = logging.getLogger(__name__)
router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def _started(attempt: EvaluatorAttempt) -> AttemptStarted:
    """Playable view of an ACTIVE attempt; answers stay server-side."""
    return AttemptStarted(
        attempt_id=attempt.id,
        concept=attempt.concept.key,
        description=attempt.concept.description,
        total_questions=len(attempt.questions),
        questions=[
            QuestionRead(
                id=q.id,
                position=q.position,
                question_text=q.text,
                options=list(q.options),
                difficulty=q.difficulty,
                concept=q.concept,
            )
            for q in attempt.questions
        ],
        time_limit_minutes=settings.SUGGESTED_TIME_LIMIT_MINUTES,
        created_at=attempt.created_at,
    )


@router.get("/concepts", response_model=list[ConceptRead])
def list_concepts(db: Session = Depends(get_db)):
    """Assessable concepts; public."""
    return [
        ConceptRead(key=c.key, description=c.description, question_count=TOTAL_QUESTIONS)
        for c in concept_catalog.list_active(db)
    ]


@router.post(
    "/start/{concept}",
    response_model=AttemptStarted,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
)
async def start_test(
    concept: str,
    current_user: CurrentUser = Depends(rate_limited("start")),
    gateway: StructuredGenerationGateway = Depends(get_generation_gateway),
    db: Session = Depends(get_db),
):
    """Generate a fresh 30-question test, replacing any active one for *concept*."""
    attempt = await attempt_service.start_attempt(db, gateway, current_user.id, concept)
    logger.info("User %s started %s attempt %s", current_user.id, attempt.concept.key, attempt.id)
    return _started(attempt)


@router.post("/submit/{attempt_id}", response_model=SubmitResult, responses=_ERRORS)
async def submit_test(
    attempt_id: uuid.UUID,
    body: AttemptSubmit,
    current_user: CurrentUser = Depends(get_current_user),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
    db: Session = Depends(get_db),
):
    answers = [
        SubmittedAnswer(
            question_id=a.question_id, user_answer=a.user_answer, time_spent=a.time_spent
        )
        for a in body.answers
    ]
    outcome = await attempt_service.submit_attempt(
        db, engine, attempt_id, current_user.id, answers
    )
    graded = outcome.grade
    return SubmitResult(
        attempt_id=outcome.attempt.id,
        concept=outcome.attempt.concept.key,
        scores=ScoreBreakdown(
            easy=graded.easy, medium=graded.medium, hard=graded.hard, total=graded.total
        ),
        percentage=graded.percentage,
        performance=graded.performance,
        message=outcome.message,
        weak_areas=graded.weak_areas,
        recommendations=outcome.recommendations,
        completed_at=outcome.attempt.completed_at,
    )


@router.get("/current", response_model=AttemptStarted, responses={404: {"model": ErrorResponse}})
def current_test(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's newest active attempt, to resume it."""
    return _started(attempt_service.get_active_attempt(db, current_user.id))


@router.get("/results", response_model=list[ResultSummary])
def list_results(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = attempt_service.list_completed_for_user(db, current_user.id)
    return [reporting.attempt_summary(a) for a in rows]


@router.get(
    "/results/{attempt_id}",
    response_model=StoredResult,
    responses={404: {"model": ErrorResponse}},
)
def get_result(
    attempt_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Completed result with per-question review and curated resources for its weak areas."""
    attempt = attempt_service.get_completed_attempt(db, attempt_id, current_user.id)
    return reporting.build_stored_result(db, attempt)


@router.get(
    "/analysis/{attempt_id}",
    response_model=ResultAnalysis,
    responses={404: {"model": ErrorResponse}, 429: {"description": "Too many requests"}},
)
async def get_analysis(
    attempt_id: uuid.UUID,
    current_user: CurrentUser = Depends(rate_limited("analysis")),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
    db: Session = Depends(get_db),
):
    """Completed result plus freshly generated study advice and resources."""
    return await reporting.build_analysis(db, attempt_id, current_user.id, engine)


@router.get("/resources/{concept}", response_model=list[LearningResourceRead])
def list_learning_resources(
    concept: str,
    difficulty: str | None = None,
    resource_type: str | None = None,
    sub_concept: str | None = None,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return learning_resources.list_resources(
        db,
        concept,
        difficulty=difficulty,
        resource_type=resource_type,
        sub_concept=sub_concept,
    )
