"""Admin-curated learning-resource library, looked up per concept."""

import logging

from sqlalchemy.orm import Session

from skill_evaluator.db.models import LearningResource

logger = logging.getLogger(__name__)


def add_resource(
    db: Session,
    *,
    concept: str,
    title: str,
    resource_type: str,
    url: str,
    difficulty: str,
    description: str = "",
    sub_concept: str | None = None,
) -> LearningResource:
    resource = LearningResource(
        concept=concept.strip().lower(),
        sub_concept=sub_concept.strip().lower() if sub_concept else None,
        title=title,
        description=description,
        resource_type=resource_type,
        url=url,
        difficulty=difficulty,
        is_active=True,
    )
    db.add(resource)
    db.commit()
    db.refresh(resource)
    logger.info("Added %s resource for %s: %s", resource_type, resource.concept, title)
    return resource


def list_resources(
    db: Session,
    concept: str,
    difficulty: str | None = None,
    resource_type: str | None = None,
    sub_concept: str | None = None,
) -> list[LearningResource]:
    """Active resources for *concept*, by difficulty then newest first."""
    query = db.query(LearningResource).filter(
        LearningResource.concept == concept.strip().lower(),
        LearningResource.is_active.is_(True),
    )
    if difficulty:
        query = query.filter(LearningResource.difficulty == difficulty)
    if resource_type:
        query = query.filter(LearningResource.resource_type == resource_type)
    if sub_concept:
        query = query.filter(LearningResource.sub_concept == sub_concept.strip().lower())
    return query.order_by(
        LearningResource.difficulty, LearningResource.created_at.desc()
    ).all()
