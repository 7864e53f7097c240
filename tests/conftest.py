"""Shared fixtures: a throwaway SQLite database and in-memory learning signals."""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lms_analytics.models import Base
from lms_analytics.schemas.predictive_schemas import (
    CohortTarget,
    LearningActivityRecord,
    LearningAnalyticsRecord,
    ResourceUsageSnapshot,
)
from lms_analytics.services.inference_gateway import InferenceGateway


class FakeSignalStore:
    """LearningSignalStore over plain lists; students in ``failing`` raise on every read"""

    def __init__(self, analytics=None, activities=None):
        self.analytics: List[LearningAnalyticsRecord] = list(analytics or [])
        self.activities: List[LearningActivityRecord] = list(activities or [])
        self.failing: Dict[UUID, Exception] = {}

    def _check(self, student_id):
        if student_id in self.failing:
            raise self.failing[student_id]

    @staticmethod
    def _matches(record, student_id, course_id):
        return record.student_id == student_id and (course_id is None or record.course_id == course_id)

    async def get_analytics(self, student_id, course_id, since):
        self._check(student_id)
        found = [a for a in self.analytics if self._matches(a, student_id, course_id) and a.date >= since]
        return sorted(found, key=lambda a: a.date, reverse=True)

    async def get_activities(self, student_id, course_id, since):
        self._check(student_id)
        found = [a for a in self.activities if self._matches(a, student_id, course_id) and a.occurred_at >= since]
        return sorted(found, key=lambda a: a.occurred_at, reverse=True)

    async def get_course_analytics(self, course_id, since):
        return [a for a in self.analytics if a.course_id == course_id and a.date >= since]

    async def get_course_activities(self, course_id, since):
        return [a for a in self.activities if a.course_id == course_id and a.occurred_at >= since]

    async def list_active_targets(self, since):
        pairs = {(a.student_id, a.course_id) for a in self.analytics if a.date >= since}
        return [CohortTarget(student_id=s, course_id=c) for s, c in sorted(pairs, key=str)]

    async def has_activity_after(self, student_id, course_id, after):
        return any(
            self._matches(a, student_id, course_id) and a.occurred_at > after for a in self.activities
        )

    async def get_analytics_on(self, student_id, course_id, day):
        found = [
            a for a in self.analytics
            if self._matches(a, student_id, course_id) and a.date >= day and a.average_score is not None
        ]
        return min(found, key=lambda a: a.date) if found else None


class FakeUsageSource:
    """Returns the queued snapshots in order, repeating the last one"""

    def __init__(self, *snapshots: ResourceUsageSnapshot):
        self.snapshots = list(snapshots)
        self.calls = 0

    async def snapshot(self, resource_type, resource_id):
        snapshot = self.snapshots[min(self.calls, len(self.snapshots) - 1)]
        self.calls += 1
        return snapshot


def add_learning_days(
    store: FakeSignalStore,
    student_id: UUID,
    course_id: Optional[UUID] = None,
    days: int = 8,
    engagement: float = 40.0,
    score: Optional[float] = 55.0,
    time_spent: int = 1200,
    activities: int = 8,
    today: Optional[date] = None,
):
    """Daily analytics for the last ``days`` days plus ``activities`` activity events"""
    today = today or datetime.utcnow().date()
    for offset in range(days):
        store.analytics.append(LearningAnalyticsRecord(
            student_id=student_id,
            course_id=course_id,
            date=today - timedelta(days=offset),
            engagement_score=engagement,
            average_score=score,
            total_time_spent=time_spent,
            session_count=1 if time_spent else 0,
        ))
    now = datetime.utcnow()
    for offset in range(activities):
        store.activities.append(LearningActivityRecord(
            student_id=student_id,
            course_id=course_id,
            activity_type="lesson_view",
            occurred_at=now - timedelta(days=offset % max(days, 1), hours=1),
            duration_seconds=600,
        ))


def failing_gateway(status_code: int = 503) -> InferenceGateway:
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code))
    return InferenceGateway(base_url="http://inference.test", transport=transport)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store():
    return FakeSignalStore()


@pytest.fixture
def gateway():
    return failing_gateway()


@pytest.fixture
def student_id():
    return uuid4()


@pytest.fixture
def course_id():
    return uuid4()
