"""API route package; imports all routers for main.py."""

from skill_evaluator.api.health import router as health_router  # noqa: F401
from skill_evaluator.api.evaluator import router as evaluator_router  # noqa: F401
from skill_evaluator.api.admin import router as admin_router  # noqa: F401
