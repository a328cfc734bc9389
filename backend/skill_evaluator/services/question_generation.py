"""Question generation pipeline.

Produces the 30-question set for an attempt: three concurrent gateway
calls (EASY / MEDIUM / HARD, ten questions each), every batch validated
before anything is persisted. All-or-nothing: any failed or short batch
fails the whole set with ``TestGenerationFailed``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from skill_evaluator.core.exceptions import GenerationError, TestGenerationFailed
from skill_evaluator.db.models import DifficultyEnum
from skill_evaluator.schemas.generation import GeneratedQuestion
from skill_evaluator.services.structured_generation import StructuredGenerationGateway

logger = logging.getLogger(__name__)

QUESTIONS_PER_TIER = 10
TIERS: tuple[DifficultyEnum, ...] = (
    DifficultyEnum.EASY,
    DifficultyEnum.MEDIUM,
    DifficultyEnum.HARD,
)
TOTAL_QUESTIONS = QUESTIONS_PER_TIER * len(TIERS)

_QUESTION_GEN_PROMPT = """\
Generate {count} {difficulty} level multiple choice questions about {concept}.
Topic scope: {description}

Please respond with a JSON array where each question has this exact format:
{{
  "questionText": "Your question here?",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctAnswer": "Option A",
  "concept": "{concept}",
  "explanation": "Brief explanation of why this answer is correct"
}}

Requirements:
- Questions should be {difficulty} level for {concept}
- Ensure questions test practical knowledge and understanding
- Make sure the correctAnswer exactly matches one of the options
- Use "concept" for the specific sub-topic when it is narrower than {concept}
- Keep questions concise but comprehensive
- Focus on real-world applications where possible

Only return the JSON array, no other text."""


@dataclass
class TierQuestion:
    """A validated question tagged with its tier, ready to persist."""

    text: str
    options: list[str]
    correct_answer: str
    difficulty: DifficultyEnum
    concept: str
    explanation: str


async def _generate_tier(
    gateway: StructuredGenerationGateway,
    concept_key: str,
    description: str,
    difficulty: DifficultyEnum,
    count: int,
) -> list[TierQuestion]:
    prompt = _QUESTION_GEN_PROMPT.format(
        count=count,
        difficulty=difficulty.value.lower(),
        concept=concept_key,
        description=description,
    )
    items = await gateway.generate(prompt, "array", temperature=0.7, max_tokens=4000)

    if len(items) != count:
        raise TestGenerationFailed(
            f"Expected {count} {difficulty.value} questions, got {len(items)}"
        )

    batch: list[TierQuestion] = []
    for idx, item in enumerate(items):
        try:
            q = GeneratedQuestion.model_validate(item)
        except ValidationError as e:
            raise TestGenerationFailed(
                f"{difficulty.value} question {idx + 1} is invalid: "
                f"{e.errors()[0].get('msg', 'invalid')}"
            ) from e
        batch.append(
            TierQuestion(
                text=q.question_text,
                options=q.options,
                correct_answer=q.correct_answer,
                difficulty=difficulty,
                concept=(q.concept or "").strip() or concept_key,
                explanation=q.explanation or "",
            )
        )
    return batch


async def generate_question_set(
    gateway: StructuredGenerationGateway,
    concept_key: str,
    description: str,
) -> list[TierQuestion]:
    """Return ``TOTAL_QUESTIONS`` questions in tier order (EASY, MEDIUM, HARD)."""
    logger.info("Generating questions for %s…", concept_key)
    tasks = [
        asyncio.create_task(
            _generate_tier(gateway, concept_key, description, tier, QUESTIONS_PER_TIER)
        )
        for tier in TIERS
    ]
    try:
        try:
            batches = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # let cancelled stragglers unwind before propagating
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
    except TestGenerationFailed as e:
        logger.warning("Question generation failed for %s: %s", concept_key, e.message)
        raise
    except GenerationError as e:
        logger.warning("Question generation failed for %s: %s", concept_key, e.message)
        raise TestGenerationFailed(
            f"Could not generate questions for {concept_key}: {e.message}"
        ) from e

    return [q for batch in batches for q in batch]
