# lms_analytics/models/predictive/performance_prediction.py
from sqlalchemy import Column, String, DateTime, Boolean, Float, JSON, Uuid
from ..base import Base, enum_column_type
import enum


class PredictionType(enum.Enum):
    PERFORMANCE = "performance"
    DROPOUT_RISK = "dropout_risk"
    LEARNING_OUTCOME = "learning_outcome"
    COMPLETION_TIME = "completion_time"
    RESOURCE_USAGE = "resource_usage"


class RiskLevel(enum.Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class InterventionType(enum.Enum):
    MOTIVATION = "motivation"
    CONTENT_REVIEW = "content_review"
    STUDY_PLAN = "study_plan"
    TUTOR_SUPPORT = "tutor_support"
    PEER_SUPPORT = "peer_support"
    TECHNICAL_SUPPORT = "technical_support"
    ASSESSMENT_ADJUSTMENT = "assessment_adjustment"
    LEARNING_PATH_CHANGE = "learning_path_change"


HIGH_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.VERY_HIGH)


class PerformancePrediction(Base):
    __tablename__ = "performance_predictions"

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)

    prediction_type = Column(enum_column_type(PredictionType), nullable=False, index=True)
    prediction_date = Column(DateTime, nullable=False, index=True)
    target_date = Column(DateTime, index=True)

    # Prediction output (0-100 scales)
    predicted_value = Column(Float, nullable=False)
    confidence_score = Column(Float, nullable=False)
    risk_level = Column(enum_column_type(RiskLevel), nullable=False, index=True)
    contributing_factors = Column(JSON)  # ContributingFactors

    # Validation against the realized outcome
    actual_value = Column(Float)
    accuracy_score = Column(Float)
    is_validated = Column(Boolean, default=False, nullable=False, index=True)
    validated_at = Column(DateTime)

    # Provenance
    model_version = Column(String(50), nullable=False)
    model_metadata = Column(JSON)
