# lms_analytics/services/learning_signal_service.py
"""Read-only access to the upstream learning signals.

The predictive engines never query the analytics tables directly. They go
through a ``LearningSignalStore`` so that tests (and other deployments) can
supply their own source of activity, engagement and score records.
"""
import logging
import statistics
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import select, and_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.learning_signal import LearningAnalytics, LearningActivity
from ..models.predictive import PerformancePrediction, PredictionType
from ..schemas.predictive_schemas import (
    CohortTarget,
    LearningActivityRecord,
    LearningAnalyticsRecord,
    MetricsSnapshot,
    ResourceUsageSnapshot,
)

logger = logging.getLogger(__name__)


class LearningSignalStore(Protocol):
    async def get_analytics(
        self, student_id: UUID, course_id: Optional[UUID], since: date
    ) -> List[LearningAnalyticsRecord]: ...

    async def get_activities(
        self, student_id: UUID, course_id: Optional[UUID], since: datetime
    ) -> List[LearningActivityRecord]: ...

    async def get_course_analytics(self, course_id: UUID, since: date) -> List[LearningAnalyticsRecord]: ...

    async def get_course_activities(self, course_id: UUID, since: datetime) -> List[LearningActivityRecord]: ...

    async def list_active_targets(self, since: date) -> List[CohortTarget]: ...

    async def has_activity_after(
        self, student_id: UUID, course_id: Optional[UUID], after: datetime
    ) -> bool: ...

    async def get_analytics_on(
        self, student_id: UUID, course_id: Optional[UUID], day: date
    ) -> Optional[LearningAnalyticsRecord]: ...


class SqlLearningSignalStore:
    """LearningSignalStore over the ``learning_analytics``/``learning_activities`` tables"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_analytics(self, student_id, course_id, since):
        stmt = select(LearningAnalytics).where(
            and_(
                LearningAnalytics.student_id == student_id,
                LearningAnalytics.date >= since,
                LearningAnalytics.is_deleted == False
            )
        )
        if course_id:
            stmt = stmt.where(LearningAnalytics.course_id == course_id)
        result = await self.db.execute(stmt.order_by(LearningAnalytics.date.desc()))
        return [LearningAnalyticsRecord.model_validate(row) for row in result.scalars().all()]

    async def get_activities(self, student_id, course_id, since):
        stmt = select(LearningActivity).where(
            and_(
                LearningActivity.student_id == student_id,
                LearningActivity.occurred_at >= since,
                LearningActivity.is_deleted == False
            )
        )
        if course_id:
            stmt = stmt.where(LearningActivity.course_id == course_id)
        result = await self.db.execute(stmt.order_by(LearningActivity.occurred_at.desc()))
        return [LearningActivityRecord.model_validate(row) for row in result.scalars().all()]

    async def get_course_analytics(self, course_id, since):
        stmt = select(LearningAnalytics).where(
            and_(
                LearningAnalytics.course_id == course_id,
                LearningAnalytics.date >= since,
                LearningAnalytics.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        return [LearningAnalyticsRecord.model_validate(row) for row in result.scalars().all()]

    async def get_course_activities(self, course_id, since):
        stmt = select(LearningActivity).where(
            and_(
                LearningActivity.course_id == course_id,
                LearningActivity.occurred_at >= since,
                LearningActivity.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        return [LearningActivityRecord.model_validate(row) for row in result.scalars().all()]

    async def list_active_targets(self, since):
        stmt = (
            select(LearningAnalytics.student_id, LearningAnalytics.course_id)
            .where(and_(LearningAnalytics.date >= since, LearningAnalytics.is_deleted == False))
            .distinct()
        )
        result = await self.db.execute(stmt)
        return [CohortTarget(student_id=row.student_id, course_id=row.course_id) for row in result.all()]

    async def has_activity_after(self, student_id, course_id, after):
        conditions = [
            LearningActivity.student_id == student_id,
            LearningActivity.occurred_at > after,
            LearningActivity.is_deleted == False
        ]
        if course_id:
            conditions.append(LearningActivity.course_id == course_id)
        result = await self.db.execute(select(exists().where(and_(*conditions))))
        return bool(result.scalar())

    async def get_analytics_on(self, student_id, course_id, day):
        # The day itself, otherwise the first record after it
        stmt = select(LearningAnalytics).where(
            and_(
                LearningAnalytics.student_id == student_id,
                LearningAnalytics.date >= day,
                LearningAnalytics.average_score.is_not(None),
                LearningAnalytics.is_deleted == False
            )
        )
        if course_id:
            stmt = stmt.where(LearningAnalytics.course_id == course_id)
        result = await self.db.execute(stmt.order_by(LearningAnalytics.date.asc()).limit(1))
        row = result.scalar_one_or_none()
        return LearningAnalyticsRecord.model_validate(row) if row else None


class LearningWindow(BaseModel):
    """A student's analytics and activities over a trailing window of days"""
    student_id: UUID
    course_id: Optional[UUID] = None
    start_date: datetime
    end_date: datetime
    analytics: List[LearningAnalyticsRecord] = Field(default_factory=list)
    activities: List[LearningActivityRecord] = Field(default_factory=list)

    @property
    def has_analytics(self) -> bool:
        return len(self.analytics) > 0

    @property
    def avg_engagement(self) -> Optional[float]:
        if not self.analytics:
            return None
        return statistics.fmean(a.engagement_score or 0 for a in self.analytics)

    @property
    def avg_score(self) -> Optional[float]:
        scores = [a.average_score for a in self.analytics if a.average_score is not None]
        if not scores:
            return None
        return statistics.fmean(scores)

    @property
    def activity_count(self) -> int:
        return len(self.activities)

    @property
    def session_lengths(self) -> List[int]:
        """Daily study time in seconds, days without study time left out"""
        return [a.total_time_spent for a in self.analytics if a.total_time_spent and a.total_time_spent > 0]

    @property
    def total_time_spent(self) -> int:
        return sum(a.total_time_spent or 0 for a in self.analytics)

    @property
    def active_days(self) -> int:
        days = {a.date for a in self.analytics if (a.session_count or 0) > 0 or (a.total_time_spent or 0) > 0}
        days.update(activity.occurred_at.date() for activity in self.activities)
        return len(days)

    def metrics_snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            engagement_score=round(self.avg_engagement, 2) if self.avg_engagement is not None else None,
            average_score=round(self.avg_score, 2) if self.avg_score is not None else None,
            time_spent=self.total_time_spent,
            activities_completed=self.activity_count,
            active_days=self.active_days,
        )

    def to_payload(self) -> Dict:
        """JSON body sent to the inference service"""
        return {
            "studentId": str(self.student_id),
            "courseId": str(self.course_id) if self.course_id else None,
            "analytics": [a.model_dump(mode="json") for a in self.analytics],
            "activities": [a.model_dump(mode="json") for a in self.activities],
            "timeframe": {
                "startDate": self.start_date.isoformat(),
                "endDate": self.end_date.isoformat(),
            },
        }


async def collect_learning_window(
    store: LearningSignalStore,
    student_id: UUID,
    course_id: Optional[UUID],
    days: int,
    now: Optional[datetime] = None,
) -> LearningWindow:
    end_date = now or datetime.utcnow()
    start_date = end_date - timedelta(days=days)

    analytics = await store.get_analytics(student_id, course_id, start_date.date())
    activities = await store.get_activities(student_id, course_id, start_date)

    logger.debug(
        f"Collected {len(analytics)} analytics and {len(activities)} activities "
        f"for student {student_id} over {days} days"
    )
    return LearningWindow(
        student_id=student_id,
        course_id=course_id,
        start_date=start_date,
        end_date=end_date,
        analytics=analytics,
        activities=activities,
    )


class OutcomeSource(Protocol):
    async def actual_value(self, prediction: PerformancePrediction) -> Optional[float]: ...


class SignalOutcomeSource:
    """Looks up realized outcomes for predictions in the learning signals"""

    def __init__(self, store: LearningSignalStore):
        self.store = store

    async def actual_value(self, prediction: PerformancePrediction) -> Optional[float]:
        target_date = prediction.target_date or datetime.utcnow()

        if prediction.prediction_type == PredictionType.PERFORMANCE:
            record = await self.store.get_analytics_on(
                prediction.student_id, prediction.course_id, target_date.date()
            )
            return record.average_score if record else None

        if prediction.prediction_type == PredictionType.DROPOUT_RISK:
            still_active = await self.store.has_activity_after(
                prediction.student_id, prediction.course_id, target_date
            )
            return 0.0 if still_active else 100.0  # 100 = dropped out

        # Not observable from learning signals yet
        return None


class ResourceUsageSource(Protocol):
    async def snapshot(self, resource_type, resource_id: str) -> ResourceUsageSnapshot: ...
