# lms_analytics/models/predictive/dropout_risk_assessment.py
from sqlalchemy import Column, Integer, DateTime, Date, Boolean, Float, JSON, Text, Uuid, Index
from ..base import Base, enum_column_type
from .performance_prediction import RiskLevel


class DropoutRiskAssessment(Base):
    __tablename__ = "dropout_risk_assessments"
    __table_args__ = (
        # one assessment per student/course/day, a NULL course counting as one value
        Index(
            "ix_dropout_risk_student_course_day",
            "student_id", "course_id", "assessment_day",
            unique=True,
            postgresql_nulls_not_distinct=True,
        ),
    )

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)
    assessment_date = Column(DateTime, nullable=False)
    assessment_day = Column(Date, nullable=False)  # one assessment per student/course/day

    risk_level = Column(enum_column_type(RiskLevel), nullable=False, index=True)
    risk_probability = Column(Float, nullable=False)
    risk_factors = Column(JSON, nullable=False)  # RiskFactors
    protective_factors = Column(JSON)            # ProtectiveFactors

    # Intervention planning
    intervention_required = Column(Boolean, default=False, nullable=False, index=True)
    recommended_interventions = Column(JSON)     # list of InterventionType values
    intervention_recommendations = Column(Text)
    intervention_priority = Column(Integer, nullable=False, default=1)
    intervention_deadline = Column(DateTime)

    trend_analysis = Column(JSON)                # RiskTrendAnalysis

    # Notification bookkeeping
    student_notified = Column(Boolean, default=False, nullable=False)
    instructor_notified = Column(Boolean, default=False, nullable=False)
    next_assessment_date = Column(DateTime)

    assessment_metadata = Column(JSON)
