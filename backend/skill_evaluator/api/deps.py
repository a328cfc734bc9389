"""FastAPI dependencies shared across routes."""

import uuid
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from skill_evaluator.core.security import decode_access_token
from skill_evaluator.services import rate_limiter
from skill_evaluator.services.llm_client import get_groq_backend
from skill_evaluator.services.recommendations import RecommendationEngine
from skill_evaluator.services.structured_generation import StructuredGenerationGateway

# tokens are issued by the platform's identity service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@dataclass(frozen=True)
class CurrentUser:
    id: uuid.UUID
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Decode JWT and return the authenticated caller, or 401."""
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    return CurrentUser(id=user_id, role=str(payload.get("role") or "student"))


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Raise 403 unless the caller is an admin."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


def rate_limited(operation: str):
    """Dependency factory: the caller, after taking a token from their *operation* bucket."""

    def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not rate_limiter.allow(current_user.id, operation):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many test generations, please slow down.",
            )
        return current_user

    return dependency


def get_generation_gateway() -> StructuredGenerationGateway:
    return StructuredGenerationGateway(get_groq_backend())


def get_recommendation_engine(
    gateway: StructuredGenerationGateway = Depends(get_generation_gateway),
) -> RecommendationEngine:
    return RecommendationEngine(gateway)
