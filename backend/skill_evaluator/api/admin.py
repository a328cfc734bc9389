"""Admin-only evaluator routes: catalog init, analytics, curated resources."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from skill_evaluator.api.deps import CurrentUser, require_admin
from skill_evaluator.config import settings
from skill_evaluator.db.models import PerformanceEnum
from skill_evaluator.db.session import get_db
from skill_evaluator.schemas.admin import AnalyticsRead, AttemptDetail, InitResult, ResultsPage
from skill_evaluator.schemas.evaluator import LearningResourceCreate, LearningResourceRead
from skill_evaluator.services import concept_catalog, learning_resources, reporting

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/init", response_model=InitResult)
def init_concepts(
    admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Register the built-in concept catalog. Idempotent."""
    created = concept_catalog.ensure_default_concepts(db)
    logger.info("Admin %s initialised concepts (%d new)", admin.id, created)
    return InitResult(
        created=created, concepts=[c.key for c in concept_catalog.list_active(db)]
    )


@router.get("/analytics", response_model=AnalyticsRead)
def analytics(
    _admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return reporting.aggregate_stats(db, top_n=settings.ADMIN_TOP_N)


@router.get("/results", response_model=ResultsPage)
def list_results(
    concept: str | None = None,
    performance: PerformanceEnum | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return reporting.list_completed_results(
        db, concept=concept, performance=performance, page=page, limit=limit
    )


@router.get("/results/{attempt_id}", response_model=AttemptDetail)
def result_detail(
    attempt_id: uuid.UUID,
    _admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return reporting.admin_attempt_detail(db, attempt_id)


@router.post(
    "/resources",
    response_model=LearningResourceRead,
    status_code=status.HTTP_201_CREATED,
)
def add_learning_resource(
    body: LearningResourceCreate,
    _admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return learning_resources.add_resource(db, **body.model_dump())
