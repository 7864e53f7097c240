# lms_analytics/models/predictive/learning_outcome_forecast.py
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, JSON, Uuid
from ..base import Base, enum_column_type
import enum


class OutcomeType(enum.Enum):
    COURSE_COMPLETION = "course_completion"
    SKILL_MASTERY = "skill_mastery"
    ASSESSMENT_SCORE = "assessment_score"
    CERTIFICATION = "certification"
    TIME_TO_COMPLETION = "time_to_completion"
    KNOWLEDGE_RETENTION = "knowledge_retention"


class LearningOutcomeForecast(Base):
    __tablename__ = "learning_outcome_forecasts"

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)

    outcome_type = Column(enum_column_type(OutcomeType), nullable=False, index=True)
    forecast_date = Column(DateTime, nullable=False)
    target_date = Column(DateTime, nullable=False, index=True)

    success_probability = Column(Float, nullable=False)
    predicted_score = Column(Float)
    estimated_days_to_completion = Column(Integer)
    scenarios = Column(JSON, nullable=False)  # ForecastScenarios
    confidence_level = Column(Float, nullable=False)
    baseline_data = Column(JSON)              # ForecastBaseline
    model_version = Column(String(50))

    # Realization
    is_realized = Column(Boolean, default=False, nullable=False, index=True)
    realized_at = Column(DateTime)
    actual_outcome = Column(Float)
    actual_completion_date = Column(DateTime)
    accuracy_metrics = Column(JSON)           # ForecastAccuracy
