"""Domain errors raised by the evaluator services.

Every error carries an ``error_code`` and the HTTP status it maps to; the
handler registered in ``main.py`` renders them as :class:`ErrorResponse`.
"""

from __future__ import annotations


class EvaluatorError(Exception):
    status_code: int = 500
    error_code: str = "EVALUATOR_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(EvaluatorError):
    """Concept or attempt absent, or not owned by the caller."""

    status_code = 404
    error_code = "NOT_FOUND"


class AlreadyCompleted(EvaluatorError):
    status_code = 409
    error_code = "ALREADY_COMPLETED"


class AttemptConflict(EvaluatorError):
    """A concurrent start kept winning the active slot."""

    status_code = 409
    error_code = "ATTEMPT_CONFLICT"


class UnknownConcept(EvaluatorError):
    status_code = 400
    error_code = "INVALID_CONCEPT"


class TestGenerationFailed(EvaluatorError):
    """The question pipeline could not produce a full, valid set."""

    __test__ = False  # keep pytest from collecting this as a test class
    status_code = 502
    error_code = "TEST_GENERATION_FAILED"


# ── Generative backend ───────────────────────────────────────────────────────


class GenerationError(EvaluatorError):
    status_code = 502
    error_code = "GENERATION_ERROR"


class GenerationUnavailable(GenerationError):
    """Backend unreachable, timed out, or replied with nothing."""

    status_code = 503
    error_code = "GENERATION_UNAVAILABLE"


class GenerationMalformed(GenerationError):
    """Backend replied, but no structured payload could be recovered."""

    error_code = "GENERATION_MALFORMED"

    def __init__(self, message: str = "", raw_excerpt: str = "") -> None:
        super().__init__(message)
        self.raw_excerpt = raw_excerpt


class RecommendationUnavailable(EvaluatorError):
    """Raised inside the recommendation engine only; always absorbed there."""

    error_code = "RECOMMENDATION_UNAVAILABLE"
