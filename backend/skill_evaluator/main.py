"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from skill_evaluator.api import admin_router, evaluator_router, health_router
from skill_evaluator.config import settings
from skill_evaluator.core.exceptions import EvaluatorError
from skill_evaluator.db.session import get_session_factory, init_db
from skill_evaluator.schemas.common import ErrorResponse
from skill_evaluator.services.concept_catalog import ensure_default_concepts
from skill_evaluator.services.llm_client import get_groq_backend

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


def _bootstrap_catalog() -> None:
    """Create tables and register built-in concepts; the API still starts if the DB is down."""
    try:
        init_db()
        db = get_session_factory()()
        try:
            ensure_default_concepts(db)
        finally:
            db.close()
    except SQLAlchemyError as e:
        logger.warning("Concept bootstrap skipped: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Skill evaluator backend starting…")
    _bootstrap_catalog()
    yield
    await get_groq_backend().aclose()
    logger.info("✅ Skill evaluator backend shut down")


app = FastAPI(
    title="Skill Evaluator API",
    description="Adaptive 30-question skill assessments with personalised remediation",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Errors ────────────────────────────────────────────────────────────────────


@app.exception_handler(EvaluatorError)
async def evaluator_error_handler(request: Request, exc: EvaluatorError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error_code=exc.error_code, message=exc.message).model_dump(),
    )


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(evaluator_router, prefix="/api/evaluator", tags=["Evaluator"])
app.include_router(admin_router, prefix="/api/evaluator/admin", tags=["Evaluator Admin"])


@app.get("/")
async def root():
    return {
        "name": "Skill Evaluator API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
