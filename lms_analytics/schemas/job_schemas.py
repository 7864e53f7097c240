# lms_analytics/schemas/job_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.predictive import RiskLevel


class BatchItemResult(BaseModel):
    target: str
    status: str  # "success" | "failed"
    error: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)


class RiskAlert(BaseModel):
    kind: str  # "emergency" | "risk_increase"
    student_id: UUID
    course_id: Optional[UUID] = None
    assessment_id: Optional[UUID] = None
    risk_level: RiskLevel
    risk_probability: float
    priority: int = 0
    message: str


class InterventionReminder(BaseModel):
    intervention_id: UUID
    student_id: UUID
    course_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None
    title: str
    scheduled_date: datetime


class JobResult(BaseModel):
    job_name: str
    processed: int = 0
    total: int = 0
    completed_at: datetime = Field(default_factory=datetime.utcnow)
    results: List[BatchItemResult] = Field(default_factory=list)
    alerts: List[RiskAlert] = Field(default_factory=list)
    reminders: List[InterventionReminder] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.results if item.status == "failed")
