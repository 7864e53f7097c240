# lms_analytics/models/predictive/intervention_recommendation.py
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Float, JSON, Text, Uuid, ForeignKey
from ..base import Base, enum_column_type
from .performance_prediction import InterventionType
import enum


class InterventionStatus(enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DEFERRED = "deferred"


class InterventionOutcome(enum.Enum):
    SUCCESSFUL = "successful"
    PARTIALLY_SUCCESSFUL = "partially_successful"
    UNSUCCESSFUL = "unsuccessful"
    TOO_EARLY = "too_early"
    NO_RESPONSE = "no_response"


OPEN_INTERVENTION_STATUSES = (
    InterventionStatus.PENDING,
    InterventionStatus.SCHEDULED,
    InterventionStatus.IN_PROGRESS,
)


class InterventionRecommendation(Base):
    __tablename__ = "intervention_recommendations"

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)
    prediction_id = Column(Uuid(as_uuid=True), ForeignKey("performance_predictions.id"), index=True)
    assessment_id = Column(Uuid(as_uuid=True), ForeignKey("dropout_risk_assessments.id"), index=True)

    intervention_type = Column(enum_column_type(InterventionType), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=5)  # 1-10

    # Lifecycle
    status = Column(
        enum_column_type(InterventionStatus),
        default=InterventionStatus.PENDING,
        nullable=False,
        index=True
    )
    recommended_date = Column(DateTime, nullable=False)
    scheduled_date = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    parameters = Column(JSON, nullable=False)  # InterventionParameters
    success_criteria = Column(JSON)            # SuccessCriteria
    assigned_to_id = Column(Uuid(as_uuid=True), index=True)

    # Results
    outcome = Column(enum_column_type(InterventionOutcome))
    effectiveness_score = Column(Float)
    instructor_notes = Column(Text)
    student_feedback = Column(Text)
    pre_intervention_metrics = Column(JSON)
    post_intervention_metrics = Column(JSON)

    follow_up_required = Column(Boolean, default=False, nullable=False, index=True)
    follow_up_date = Column(DateTime)

