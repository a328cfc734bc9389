"""Database wiring: one engine and session factory per process.

Routes work with a synchronous ``Session``. Async routes hand each DB step
to the threadpool, so a session may touch its connection from more than
one worker thread; SQLite engines are configured for that.
"""

import logging
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from skill_evaluator.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None  # type: ignore[type-arg]


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def _engine_options(url: str) -> dict[str, Any]:
    parsed = make_url(url)
    options: dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            # every session must see the same in-memory database
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
    return options


def configure_engine(url: Optional[str] = None, **overrides: Any) -> Engine:
    """Bind the process-wide engine and session factory to *url*.

    Defaults to ``settings.DATABASE_URL``. Any previous engine is disposed.
    """
    global _engine, _SessionLocal
    url = url or settings.DATABASE_URL
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, **{**_engine_options(url), **overrides})
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False)
    logger.info("Database engine bound to %s", make_url(url).render_as_string(hide_password=True))
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else configure_engine()


def get_session_factory() -> sessionmaker:  # type: ignore[type-arg]
    if _SessionLocal is None:
        configure_engine()
    return _SessionLocal  # type: ignore[return-value]


def init_db() -> None:
    """Create any missing tables on the configured engine."""
    # registers the ORM tables on Base.metadata
    from skill_evaluator.db import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, closed afterwards."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
