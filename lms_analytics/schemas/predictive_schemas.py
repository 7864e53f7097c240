# lms_analytics/schemas/predictive_schemas.py
"""Typed records stored in the JSON columns of the predictive analytics tables.

Every structured column is written from one of these models with
``model_dump(mode="json")`` and read back with ``model_validate``, so the
invariants below hold no matter which code path produced the row.
"""
import datetime as dt
import enum
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..models.predictive import InterventionType, RiskLevel


class CamelModel(BaseModel):
    """Accepts the camelCase payloads of the inference service as well as snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Learning signals

class LearningAnalyticsRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: UUID
    course_id: Optional[UUID] = None
    date: dt.date
    engagement_score: float = 0.0
    average_score: Optional[float] = None
    total_time_spent: int = 0
    session_count: int = 0

    @field_validator("engagement_score", "total_time_spent", "session_count", mode="before")
    @classmethod
    def null_as_zero(cls, value):
        # upstream rows may leave these NULL
        return 0 if value is None else value


class LearningActivityRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: UUID
    course_id: Optional[UUID] = None
    activity_type: str
    occurred_at: datetime
    duration_seconds: int = 0

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def null_as_zero(cls, value):
        return 0 if value is None else value


class CohortTarget(BaseModel):
    student_id: UUID
    course_id: Optional[UUID] = None

    def label(self) -> str:
        return f"{self.student_id}/{self.course_id}" if self.course_id else str(self.student_id)


class MetricsSnapshot(BaseModel):
    """Point-in-time learning metrics captured before and after an intervention"""
    engagement_score: Optional[float] = None
    average_score: Optional[float] = None
    time_spent: Optional[int] = None
    activities_completed: Optional[int] = None
    active_days: Optional[int] = None


# Inference

class ContributingFactors(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    engagement_level: Optional[float] = None
    performance_history: Optional[float] = None
    activity_level: Optional[float] = None


class InferenceResult(CamelModel):
    predicted_value: float = Field(ge=0, le=100)
    confidence_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    contributing_factors: ContributingFactors = Field(default_factory=ContributingFactors)
    model_version: str
    model_metadata: Dict[str, Any] = Field(default_factory=dict)


class ForecastBaseline(CamelModel):
    current_progress: float = 0.0
    average_performance: float = 0.0
    engagement_level: float = 0.0
    time_spent_learning: int = 0
    completed_activities: int = 0
    skill_level: str = "beginner"


class ForecastResult(CamelModel):
    success_probability: float = Field(ge=0, le=100)
    predicted_score: Optional[float] = Field(default=None, ge=0, le=100)
    estimated_days_to_completion: Optional[int] = Field(default=None, ge=0)
    confidence_level: float = Field(ge=0, le=100)
    baseline_data: Optional[ForecastBaseline] = None
    model_version: str


# Risk assessment

class RiskFactor(BaseModel):
    score: float = Field(ge=0, le=100)
    weight: float = Field(ge=0, le=1)
    details: List[str] = Field(default_factory=list)


class RiskFactors(BaseModel):
    academic_performance: RiskFactor
    engagement_level: RiskFactor
    attendance_pattern: RiskFactor
    time_management: RiskFactor

    def items(self):
        return [
            ("academic_performance", self.academic_performance),
            ("engagement_level", self.engagement_level),
            ("attendance_pattern", self.attendance_pattern),
            ("time_management", self.time_management),
        ]

    def weighted_probability(self) -> float:
        """Weight-normalized sum of factor scores"""
        total_weight = sum(factor.weight for _, factor in self.items())
        if total_weight == 0:
            return 0.0
        return sum(factor.score * factor.weight for _, factor in self.items()) / total_weight


class ProtectiveFactors(BaseModel):
    strong_motivation: bool = False
    good_support: bool = False
    prior_success: bool = False
    effective_study_habits: bool = False
    technical_competence: bool = False
    time_availability: bool = False


class TrendDirection(str, enum.Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    INSUFFICIENT_DATA = "insufficient_data"


class TrendResult(BaseModel):
    direction: TrendDirection
    slope: float
    confidence: float


class RiskTrendAnalysis(BaseModel):
    """Risk movement across a student's assessments; a rising risk reads as declining"""
    direction: TrendDirection
    velocity: float
    projected_risk: float
    key_influencers: List[str] = Field(default_factory=list)
    sample_size: int


class PerformanceTrends(BaseModel):
    student_id: UUID
    period_days: int
    trend: TrendResult
    total_predictions: int
    average_confidence: float
    risk_distribution: Dict[str, int]


# Forecasting

class ForecastScenario(BaseModel):
    probability: float = Field(ge=0, le=100)
    outcome: str
    timeframe: int  # days
    conditions: List[str] = Field(default_factory=list)


class ForecastScenarios(BaseModel):
    optimistic: ForecastScenario
    realistic: ForecastScenario
    pessimistic: ForecastScenario

    @model_validator(mode="after")
    def check_ordering(self):
        if not (
            self.optimistic.probability
            >= self.realistic.probability
            >= self.pessimistic.probability
        ):
            raise ValueError("scenario probabilities must satisfy optimistic >= realistic >= pessimistic")
        return self


class ForecastAccuracy(BaseModel):
    outcome_accuracy: float
    time_accuracy: float
    overall_accuracy: float
    error_margin: float


class ForecastSummary(BaseModel):
    total_forecasts: int = 0
    avg_success_probability: float = 0.0
    avg_confidence_level: float = 0.0
    outcome_distribution: Dict[str, int] = Field(default_factory=dict)
    upcoming_targets: List[Dict[str, Any]] = Field(default_factory=list)
    realized_forecasts: int = 0
    avg_accuracy: float = 0.0


# Interventions

class InterventionParameters(BaseModel):
    target_metrics: List[str] = Field(default_factory=list)
    automated_intervention: bool = False
    follow_up_required: bool = False
    communication_method: Optional[str] = None


class SuccessCriteria(BaseModel):
    targets: Dict[str, float] = Field(default_factory=dict)  # metric -> minimum improvement
    evaluation_period_days: int = 14


class InterventionPlanItem(BaseModel):
    """A recommendation the planner intends to persist"""
    intervention_type: InterventionType
    title: str
    description: str
    priority: int = Field(ge=1, le=10)
    parameters: InterventionParameters
    success_criteria: Optional[SuccessCriteria] = None


# Resource optimization

class ResourceUsageSnapshot(BaseModel):
    efficiency: float = Field(ge=0, le=100)
    utilization_rate: float = Field(ge=0, le=100)
    peak_hours: List[str] = Field(default_factory=list)
    average_session_duration: float = 0.0  # seconds
    user_satisfaction: float = Field(ge=0, le=100)
    bottlenecks: List[str] = Field(default_factory=list)
    metrics: Dict[str, float] = Field(default_factory=dict)


class OptimizationAction(BaseModel):
    rank: int
    action: str
    impact: float
    effort: int
    timeline: str
    dependencies: List[str] = Field(default_factory=list)


class PredictedOutcomes(BaseModel):
    cost_savings: float
    performance_improvement: float
    user_experience_improvement: float
    implementation_cost: float
    risk_level: str


class ImplementationPhase(BaseModel):
    phase: str
    actions: List[str]
    timeline: str
    resources: List[str]
    milestones: List[str]


class ImplementationResults(BaseModel):
    success_rate: float
    unexpected_issues: List[str] = Field(default_factory=list)
    additional_benefits: List[str] = Field(default_factory=list)
    lessons_learned: List[str] = Field(default_factory=list)
