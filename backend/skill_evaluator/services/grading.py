"""Grading engine for evaluator attempts.

Pure and synchronous: exact option-string comparison, per-tier counters,
percentage, performance band and weak areas. Never calls the generator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from skill_evaluator.db.models import DifficultyEnum, EvaluatorQuestion, PerformanceEnum

# (threshold, band) checked top-down; thresholds are inclusive
_BANDS: tuple[tuple[int, PerformanceEnum], ...] = (
    (90, PerformanceEnum.EXCELLENT),
    (75, PerformanceEnum.GOOD),
    (60, PerformanceEnum.AVERAGE),
)

_BAND_MESSAGES: dict[PerformanceEnum, str] = {
    PerformanceEnum.EXCELLENT: (
        "Outstanding performance! You scored {pct}%. "
        "You have excellent understanding of {concept}."
    ),
    PerformanceEnum.GOOD: (
        "Good job! You scored {pct}%. You have a solid grasp of {concept} "
        "with room for improvement."
    ),
    PerformanceEnum.AVERAGE: (
        "Average performance. You scored {pct}%. "
        "Consider reviewing the concepts and practicing more."
    ),
    PerformanceEnum.NEEDS_IMPROVEMENT: (
        "You scored {pct}%. Don't worry! Focus on the weak areas "
        "and practice regularly to improve."
    ),
}


@dataclass
class SubmittedAnswer:
    question_id: str
    user_answer: str
    time_spent: float | None = None


@dataclass
class AnswerRecord:
    """Graded answer, ready to be written as an ``EvaluatorAnswer`` row."""

    question_id: object
    user_answer: str
    is_correct: bool
    difficulty: DifficultyEnum
    concept: str
    time_spent: float | None = None


@dataclass
class IncorrectItem:
    question_text: str
    user_answer: str
    correct_answer: str
    difficulty: DifficultyEnum
    concept: str
    explanation: str


@dataclass
class GradeResult:
    easy: int = 0
    medium: int = 0
    hard: int = 0
    total: int = 0
    percentage: int = 0
    performance: PerformanceEnum = PerformanceEnum.NEEDS_IMPROVEMENT
    weak_areas: list[str] = field(default_factory=list)
    records: list[AnswerRecord] = field(default_factory=list)
    incorrect: list[IncorrectItem] = field(default_factory=list)


def performance_band(percentage: int) -> PerformanceEnum:
    for threshold, band in _BANDS:
        if percentage >= threshold:
            return band
    return PerformanceEnum.NEEDS_IMPROVEMENT


def performance_message(band: PerformanceEnum, percentage: int, concept: str) -> str:
    return _BAND_MESSAGES[band].format(pct=percentage, concept=concept)


def score_percentage(total: int, max_score: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if max_score <= 0:
        return 0
    return int(total * 100 / max_score + 0.5)


def distinct_in_order(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for v in values:
        seen.setdefault(v, None)
    return list(seen)


def grade(
    questions: Sequence[EvaluatorQuestion],
    submitted: Iterable[SubmittedAnswer],
) -> GradeResult:
    """Score *submitted* against the attempt's own *questions*.

    Answers for unknown question ids are ignored; a question answered more
    than once counts its first answer only. Unanswered questions score
    nothing and are not weak areas.
    """
    by_id = {str(q.id): q for q in questions}
    tiers = {d: 0 for d in DifficultyEnum}
    result = GradeResult()
    answered: set[str] = set()

    for answer in submitted:
        qid = str(answer.question_id)
        question = by_id.get(qid)
        if question is None or qid in answered:
            continue
        answered.add(qid)

        is_correct = answer.user_answer == question.correct_answer
        if is_correct:
            tiers[question.difficulty] += 1
        else:
            result.incorrect.append(
                IncorrectItem(
                    question_text=question.text,
                    user_answer=answer.user_answer,
                    correct_answer=question.correct_answer,
                    difficulty=question.difficulty,
                    concept=question.concept,
                    explanation=question.explanation or "",
                )
            )

        result.records.append(
            AnswerRecord(
                question_id=question.id,
                user_answer=answer.user_answer,
                is_correct=is_correct,
                difficulty=question.difficulty,
                concept=question.concept,
                time_spent=answer.time_spent,
            )
        )

    result.easy = tiers[DifficultyEnum.EASY]
    result.medium = tiers[DifficultyEnum.MEDIUM]
    result.hard = tiers[DifficultyEnum.HARD]
    result.total = result.easy + result.medium + result.hard
    result.percentage = score_percentage(result.total, len(questions))
    result.performance = performance_band(result.percentage)
    result.weak_areas = distinct_in_order(item.concept for item in result.incorrect)
    return result
