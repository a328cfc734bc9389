"""Concept catalog: the set of assessable subjects."""

import logging

from sqlalchemy.orm import Session

from skill_evaluator.core.exceptions import UnknownConcept
from skill_evaluator.db.models import Concept

logger = logging.getLogger(__name__)

# ── Built-in catalog ─────────────────────────────────────────────────────────

DEFAULT_CONCEPTS: dict[str, str] = {
    "java": "Core Java programming concepts, syntax, and object-oriented principles",
    "python": "Python programming fundamentals, syntax, and popular libraries",
    "sql": "Database queries, joins, aggregations, and database design",
    "oops": "Object-Oriented Programming principles and design patterns",
    "c": "C programming language fundamentals and memory management",
    "cpp": "C++ programming including STL, templates, and advanced features",
    "dsa": "Data Structures and Algorithms implementation and analysis",
    "html": "HTML structure, semantics, and modern web standards",
    "css": "CSS styling, layouts, responsive design, and modern features",
    "javascript": "JavaScript fundamentals, ES6+, and DOM manipulation",
    "typescript": "TypeScript features, type system, and advanced concepts",
    "web-development": "Full-stack web development concepts and best practices",
    "machine-learning": "ML algorithms, concepts, and practical applications",
    "react": "React.js library, hooks, state management, and ecosystem",
    "nodejs": "Node.js runtime, APIs, and server-side development",
    "mongodb": "MongoDB database operations, aggregation, and design",
    "git": "Version control with Git, branching, and collaboration",
    "aws": "Amazon Web Services cloud computing and services",
    "docker": "Containerization with Docker and orchestration basics",
}


def normalise_key(key: str) -> str:
    return key.strip().lower()


def default_description(key: str) -> str:
    return DEFAULT_CONCEPTS.get(key, f"{key} programming concepts and fundamentals")


def register(
    db: Session, key: str, description: str, *, is_active: bool = True
) -> Concept:
    """Upsert a concept by key. Flushes but does not commit."""
    key = normalise_key(key)
    concept = db.query(Concept).filter(Concept.key == key).first()
    if concept is None:
        concept = Concept(key=key, description=description, is_active=is_active)
        db.add(concept)
    else:
        concept.description = description
        concept.is_active = is_active
    db.flush()
    return concept


def list_active(db: Session) -> list[Concept]:
    return (
        db.query(Concept)
        .filter(Concept.is_active.is_(True))
        .order_by(Concept.key)
        .all()
    )


def ensure_default_concepts(db: Session) -> int:
    """Register the built-in catalog.

    Callable at startup (no auth) or via the admin endpoint.
    Returns the number of new concepts created.
    """
    existing = {key for (key,) in db.query(Concept.key).all()}
    created = 0
    for key, description in DEFAULT_CONCEPTS.items():
        if key not in existing:
            created += 1
        register(db, key, description)
    db.commit()
    if created:
        logger.info("Registered %d built-in concepts", created)
    return created


def resolve_for_attempt(db: Session, key: str) -> Concept:
    """Return the active concept for *key*, registering built-ins on first use."""
    key = normalise_key(key)
    concept = db.query(Concept).filter(Concept.key == key).first()
    if concept is not None and concept.is_active:
        return concept
    if concept is None and key in DEFAULT_CONCEPTS:
        concept = register(db, key, default_description(key))
        db.commit()
        return concept

    available = ", ".join(sorted({c.key for c in list_active(db)} | set(DEFAULT_CONCEPTS)))
    raise UnknownConcept(f"Invalid concept. Available concepts: {available}")
