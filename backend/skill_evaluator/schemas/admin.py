"""Admin analytics schemas."""

from pydantic import BaseModel

from skill_evaluator.schemas.evaluator import QuestionReview, ResultSummary


class InitResult(BaseModel):
    created: int
    concepts: list[str]


class Overview(BaseModel):
    total_attempts: int
    completed_attempts: int
    completion_rate: int


class ConceptStat(BaseModel):
    concept: str
    attempts: int
    average_percentage: int


class AnalyticsRead(BaseModel):
    overview: Overview
    performance_distribution: dict[str, int]
    concept_stats: list[ConceptStat]
    challenging_concepts: list[ConceptStat]
    top_attempts: list[ResultSummary]
    recent_attempts: list[ResultSummary]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ResultsPage(BaseModel):
    results: list[ResultSummary]
    pagination: Pagination


class Tally(BaseModel):
    correct: int
    total: int


class AttemptDetail(ResultSummary):
    review: list[QuestionReview]
    concept_breakdown: dict[str, Tally]
    difficulty_breakdown: dict[str, Tally]
