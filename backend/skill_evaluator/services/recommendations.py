"""Recommendation engine: personalised remediation for a graded attempt.

Two independent generators built on the structured generation gateway:

  - ``personalized_resources``: never raises; falls back to a fixed
    single-resource payload when generation fails.
  - ``study_recommendations``: returns ``None`` when generation fails;
    callers treat that as "unavailable", not as an error.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from pydantic import BaseModel, ValidationError

from skill_evaluator.core.exceptions import GenerationError, RecommendationUnavailable
from skill_evaluator.db.models import DifficultyEnum, PerformanceEnum
from skill_evaluator.schemas.generation import PersonalizedResources, StudyRecommendations
from skill_evaluator.services.grading import IncorrectItem
from skill_evaluator.services.question_generation import QUESTIONS_PER_TIER
from skill_evaluator.services.structured_generation import StructuredGenerationGateway

logger = logging.getLogger(__name__)

# ── Prompt templates ──────────────────────────────────────────────────────────

_RESOURCES_PROMPT = """\
Based on a student's performance in a {concept} test, recommend personalized learning resources.

Student Performance Details:
- Main Concept: {concept}
- Weak Areas: {weak_areas}
- Overall Performance: {performance}
- Specific Topics Struggled With: {struggled}

Please provide 6-8 personalized learning resource recommendations in JSON format:

{{
  "resources": [
    {{
      "title": "Resource Title",
      "description": "Why this resource is specifically helpful for this student",
      "type": "VIDEO/ARTICLE/TUTORIAL/DOCUMENTATION/COURSE/PRACTICE",
      "url": "https://example.com",
      "priority": "HIGH/MEDIUM/LOW",
      "estimatedTime": "time in minutes/hours",
      "difficulty": "BEGINNER/INTERMEDIATE/ADVANCED",
      "targetWeakness": "specific weak area this addresses"
    }}
  ],
  "studyPlan": {{
    "immediate": "What to focus on first",
    "shortTerm": "What to work on in the next week",
    "longTerm": "What to master over the next month"
  }},
  "practiceAreas": ["area1", "area2", "area3"]
}}

Requirements:
- Prioritize resources that directly address the weak areas
- Include a mix of resource types (videos, articles, practice platforms)
- Consider the student's performance level when recommending difficulty
- Provide real, accessible URLs when possible
- Focus on practical, hands-on learning opportunities

Only return valid JSON, no other text."""

_STUDY_PROMPT = """\
Analyze a student's test performance and provide specific study recommendations.

Test Details:
- Subject: {concept}
- Overall Performance: {performance}
- Weak Areas: {weak_areas}
- Incorrect Questions by Difficulty:
  - Easy: {easy_wrong}/{per_tier}
  - Medium: {medium_wrong}/{per_tier}
  - Hard: {hard_wrong}/{per_tier}

Specific Questions Answered Incorrectly:
{incorrect_block}

Provide detailed study recommendations in JSON format:

{{
  "priorityAreas": [
    {{"area": "specific topic/concept", "reason": "why this needs attention", "urgency": "HIGH/MEDIUM/LOW"}}
  ],
  "studyStrategy": {{
    "approach": "recommended learning approach",
    "timeAllocation": "suggested time distribution",
    "sequence": "order of topics to study"
  }},
  "practiceRecommendations": [
    {{"type": "CODING_PRACTICE/THEORY_REVIEW/CONCEPT_MAPPING", "description": "what to practice", "frequency": "how often"}}
  ],
  "weaknessAnalysis": {{
    "conceptual": ["conceptual gaps"],
    "practical": ["practical skill gaps"],
    "foundational": ["missing fundamentals"]
  }}
}}

Only return valid JSON."""


def _label(value: PerformanceEnum | str | None) -> str:
    if value is None:
        return "UNKNOWN"
    return value.value if isinstance(value, PerformanceEnum) else str(value)


def _format_incorrect(incorrect: Sequence[IncorrectItem]) -> str:
    if not incorrect:
        return "(none)"
    lines = []
    for i, item in enumerate(incorrect, 1):
        lines.append(
            f"{i}. Question: {item.question_text}\n"
            f"   Student Answer: {item.user_answer}\n"
            f"   Correct Answer: {item.correct_answer}\n"
            f"   Difficulty: {item.difficulty.value}\n"
            f"   Topic: {item.concept}\n"
            f"   Explanation: {item.explanation or 'N/A'}"
        )
    return "\n".join(lines)


def fallback_resources(concept: str, weak_areas: Sequence[str]) -> dict[str, Any]:
    """Deterministic payload used whenever resource generation fails."""
    title = concept[:1].upper() + concept[1:]
    return PersonalizedResources.model_validate(
        {
            "resources": [
                {
                    "title": f"{title} Fundamentals Review",
                    "description": "Review the basic concepts to strengthen your foundation",
                    "type": "TUTORIAL",
                    "url": f"https://www.tutorialspoint.com/{concept}/",
                    "priority": "HIGH",
                    "estimatedTime": "2-3 hours",
                    "difficulty": "BEGINNER",
                    "targetWeakness": "fundamentals",
                }
            ],
            "studyPlan": {
                "immediate": f"Focus on reviewing {concept} basics",
                "shortTerm": "Practice coding exercises and examples",
                "longTerm": "Work on projects to apply knowledge",
            },
            "practiceAreas": list(weak_areas),
        }
    ).model_dump()


class RecommendationEngine:
    def __init__(self, gateway: StructuredGenerationGateway) -> None:
        self._gateway = gateway

    async def _request(
        self,
        prompt: str,
        schema: type[BaseModel],
        *,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Generate and validate one payload; any failure is ``RecommendationUnavailable``."""
        try:
            payload = await self._gateway.generate(
                prompt, "object", temperature=temperature, max_tokens=max_tokens
            )
            return schema.model_validate(payload).model_dump()
        except GenerationError as e:
            raise RecommendationUnavailable(e.message) from e
        except ValidationError as e:
            raise RecommendationUnavailable(
                f"{schema.__name__} payload failed validation: {e.error_count()} error(s)"
            ) from e

    async def personalized_resources(
        self,
        concept: str,
        weak_areas: Sequence[str],
        performance: PerformanceEnum | str | None,
        incorrect: Sequence[IncorrectItem] = (),
    ) -> dict[str, Any]:
        logger.info("Generating personalized resources for %s…", concept)
        struggled = ", ".join(item.concept for item in incorrect) or "none"
        prompt = _RESOURCES_PROMPT.format(
            concept=concept,
            weak_areas=", ".join(weak_areas) or "none",
            performance=_label(performance),
            struggled=struggled,
        )
        try:
            return await self._request(
                prompt, PersonalizedResources, temperature=0.7, max_tokens=2000
            )
        except RecommendationUnavailable as e:
            logger.warning("Resource recommendations unavailable, using fallback: %s", e.message)
            return fallback_resources(concept, weak_areas)

    async def study_recommendations(
        self,
        concept: str,
        weak_areas: Sequence[str],
        performance: PerformanceEnum | str | None,
        incorrect: Sequence[IncorrectItem] = (),
    ) -> dict[str, Any] | None:
        logger.info("Generating study recommendations for %s…", concept)
        wrong = {d: 0 for d in DifficultyEnum}
        for item in incorrect:
            wrong[item.difficulty] += 1
        prompt = _STUDY_PROMPT.format(
            concept=concept,
            performance=_label(performance),
            weak_areas=", ".join(weak_areas) or "none",
            easy_wrong=wrong[DifficultyEnum.EASY],
            medium_wrong=wrong[DifficultyEnum.MEDIUM],
            hard_wrong=wrong[DifficultyEnum.HARD],
            per_tier=QUESTIONS_PER_TIER,
            incorrect_block=_format_incorrect(incorrect),
        )
        try:
            return await self._request(
                prompt, StudyRecommendations, temperature=0.6, max_tokens=1500
            )
        except RecommendationUnavailable as e:
            logger.warning("Study recommendations unavailable: %s", e.message)
            return None
