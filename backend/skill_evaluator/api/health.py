"""Health check endpoint."""

from fastapi import APIRouter

from skill_evaluator.schemas.common import HealthRead

router = APIRouter()


@router.get("/health", response_model=HealthRead)
async def health():
    return {"status": "healthy", "service": "skill-evaluator-backend"}
