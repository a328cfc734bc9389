"""Pydantic schemas, re-exported for convenience."""

from skill_evaluator.schemas.common import ErrorResponse, HealthRead  # noqa: F401
from skill_evaluator.schemas.evaluator import (  # noqa: F401
    AttemptStarted,
    AttemptSubmit,
    ConceptRead,
    LearningResourceCreate,
    LearningResourceRead,
    QuestionRead,
    ResultAnalysis,
    ResultSummary,
    StoredResult,
    SubmitResult,
)
from skill_evaluator.schemas.admin import (  # noqa: F401
    AnalyticsRead,
    AttemptDetail,
    InitResult,
    ResultsPage,
)
