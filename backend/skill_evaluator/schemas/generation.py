"""Schemas for payloads produced by the generative backend.

The prompts ask for camelCase keys; fields are snake_case with camelCase
aliases so parsed payloads serialise the same way as the rest of the API.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator


def _to_text(value: Any) -> Any:
    """LLMs sometimes emit numbers or lists where prose was asked for."""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return value


Text = Annotated[str, BeforeValidator(_to_text)]

_ALIASED = {"populate_by_name": True, "extra": "ignore"}


# ── Question batches ─────────────────────────────────────────────────────────


class GeneratedQuestion(BaseModel):
    """One multiple-choice question as returned by the generator."""

    question_text: str = Field(alias="questionText", min_length=1)
    options: list[str] = Field(min_length=1)
    correct_answer: str = Field(alias="correctAnswer")
    concept: str | None = None
    explanation: str | None = ""

    model_config = _ALIASED

    @field_validator("question_text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question text is blank")
        return v

    @model_validator(mode="after")
    def _answer_in_options(self) -> "GeneratedQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer is not one of the options")
        if self.explanation is None:
            self.explanation = ""
        return self


# ── Personalised resources ───────────────────────────────────────────────────


class RecommendedResource(BaseModel):
    title: str = Field(min_length=1)
    description: Text = ""
    type: str = "ARTICLE"
    url: str = ""
    priority: str = "MEDIUM"
    estimated_time: Text = Field(default="", alias="estimatedTime")
    difficulty: str = "INTERMEDIATE"
    target_weakness: Text = Field(default="", alias="targetWeakness")

    model_config = _ALIASED


class StudyPlan(BaseModel):
    immediate: Text = ""
    short_term: Text = Field(default="", alias="shortTerm")
    long_term: Text = Field(default="", alias="longTerm")

    model_config = _ALIASED


class PersonalizedResources(BaseModel):
    resources: list[RecommendedResource] = Field(min_length=1)
    study_plan: StudyPlan = Field(default_factory=StudyPlan, alias="studyPlan")
    practice_areas: list[str] = Field(default_factory=list, alias="practiceAreas")

    model_config = _ALIASED


# ── Study recommendations ────────────────────────────────────────────────────


class PriorityArea(BaseModel):
    area: str
    reason: Text = ""
    urgency: str = "MEDIUM"


class StudyStrategy(BaseModel):
    approach: Text = ""
    time_allocation: Text = Field(default="", alias="timeAllocation")
    sequence: Text = ""

    model_config = _ALIASED


class PracticeRecommendation(BaseModel):
    type: str
    description: Text = ""
    frequency: Text = ""


class WeaknessAnalysis(BaseModel):
    conceptual: list[str] = []
    practical: list[str] = []
    foundational: list[str] = []


class StudyRecommendations(BaseModel):
    priority_areas: list[PriorityArea] = Field(default_factory=list, alias="priorityAreas")
    study_strategy: StudyStrategy = Field(
        default_factory=StudyStrategy, alias="studyStrategy"
    )
    practice_recommendations: list[PracticeRecommendation] = Field(
        default_factory=list, alias="practiceRecommendations"
    )
    weakness_analysis: WeaknessAnalysis = Field(
        default_factory=WeaknessAnalysis, alias="weaknessAnalysis"
    )

    model_config = _ALIASED
