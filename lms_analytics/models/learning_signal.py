# lms_analytics/models/learning_signal.py
"""Read-only mappings of the upstream learning-signal tables.

These tables are owned and written by the analytics ingestion side of the
platform. The predictive engine only ever selects from them.
"""
from sqlalchemy import Column, String, Integer, Float, DateTime, Date, Uuid
from .base import Base


class LearningAnalytics(Base):
    """Daily per-student (and optionally per-course) learning aggregates."""
    __tablename__ = "learning_analytics"

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)
    date = Column(Date, nullable=False, index=True)

    engagement_score = Column(Float, default=0)   # 0-100
    average_score = Column(Float)                  # 0-100, null when nothing was graded
    total_time_spent = Column(Integer, default=0)  # seconds
    session_count = Column(Integer, default=0)


class LearningActivity(Base):
    """Individual learning events (lesson views, quiz attempts, submissions...)."""
    __tablename__ = "learning_activities"

    student_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    course_id = Column(Uuid(as_uuid=True), index=True)
    activity_type = Column(String(50), nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    duration_seconds = Column(Integer, default=0)
