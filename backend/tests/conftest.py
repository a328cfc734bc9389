"""Shared pytest fixtures for backend tests."""

import json
import re
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from skill_evaluator.config import settings
from skill_evaluator.db import session as db_session
from skill_evaluator.db.session import Base, get_db

# The app engine, used by the startup bootstrap too, points at in-memory SQLite
engine = db_session.configure_engine("sqlite:///:memory:", echo=False)
TestSession = db_session.get_session_factory()
# No Redis in unit tests; the limiter has its own tests
settings.RATE_LIMIT_GENERATION_RPM = 0

from skill_evaluator.api.deps import get_generation_gateway  # noqa: E402
from skill_evaluator.core.security import create_access_token  # noqa: E402
from skill_evaluator.main import app  # noqa: E402
from skill_evaluator.services.structured_generation import (  # noqa: E402
    StructuredGenerationGateway,
)

_TIER_PROMPT = re.compile(r"Generate (\d+) (\w+) level multiple choice questions")

TOPICS = ("loops", "functions")


# ── Scripted generative backend ───────────────────────────────────────────────


def make_batch(tier: str, count: int = 10) -> list[dict]:
    """A valid question batch. The correct answer is always the first option."""
    tier = tier.upper()
    return [
        {
            "questionText": f"{tier} question {i}?",
            "options": [f"{tier}-{i}-right", f"{tier}-{i}-b", f"{tier}-{i}-c", f"{tier}-{i}-d"],
            "correctAnswer": f"{tier}-{i}-right",
            "concept": TOPICS[i % 2],
            "explanation": f"Because {tier} {i}.",
        }
        for i in range(count)
    ]


RESOURCES_PAYLOAD = {
    "resources": [
        {
            "title": "Python Loops Deep Dive",
            "description": "Targets loop mistakes",
            "type": "VIDEO",
            "url": "https://example.com/loops",
            "priority": "HIGH",
            "estimatedTime": "45 minutes",
            "difficulty": "BEGINNER",
            "targetWeakness": "loops",
        }
    ],
    "studyPlan": {"immediate": "Loops", "shortTerm": "Functions", "longTerm": "Projects"},
    "practiceAreas": ["loops"],
}

STUDY_PAYLOAD = {
    "priorityAreas": [{"area": "loops", "reason": "most misses", "urgency": "HIGH"}],
    "studyStrategy": {
        "approach": "spaced practice",
        "timeAllocation": "30 minutes a day",
        "sequence": "loops then functions",
    },
    "practiceRecommendations": [
        {"type": "CODING_PRACTICE", "description": "write loops", "frequency": "daily"}
    ],
    "weaknessAnalysis": {"conceptual": ["iteration"], "practical": [], "foundational": []},
}


class ScriptedBackend:
    """Stands in for the Groq backend; replies are chosen by prompt kind.

    Override ``question_reply`` (tier -> str), ``resources_reply`` or
    ``study_reply`` to script failures.
    """

    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.question_reply = lambda tier, count: json.dumps(make_batch(tier, count))
        self.resources_reply = json.dumps(RESOURCES_PAYLOAD)
        self.study_reply = json.dumps(STUDY_PAYLOAD)

    async def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 2000) -> str:
        self.prompts.append(prompt)
        match = _TIER_PROMPT.search(prompt)
        if match:
            return self.question_reply(match.group(2), int(match.group(1)))
        if "learning resource recommendations" in prompt:
            return self.resources_reply
        return self.study_reply


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture(scope="function")
def db():
    """Fresh schema and DB session for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def gateway(backend: ScriptedBackend) -> StructuredGenerationGateway:
    return StructuredGenerationGateway(backend, timeout_seconds=5)


@pytest.fixture(scope="function")
def client(db: Session, gateway: StructuredGenerationGateway):
    """FastAPI test client with overridden DB and generation dependencies."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_gateway] = lambda: gateway

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ── Identity helpers ──────────────────────────────────────────────────────────


def make_token(user_id: uuid.UUID | None = None, role: str = "student") -> str:
    return create_access_token({"sub": str(user_id or uuid.uuid4()), "role": role})


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers() -> dict:
    return auth(make_token())


@pytest.fixture
def admin_headers() -> dict:
    return auth(make_token(role="admin"))
