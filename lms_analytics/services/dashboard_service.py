# lms_analytics/services/dashboard_service.py
"""Read-only student and instructor dashboards.

The constituent queries run concurrently, each in its own session, and the
composed result is plain JSON-friendly data so it can be cached as is.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.cache import CacheManager
from ..core.config_analytics import analytics_settings
from ..models.predictive import (
    InterventionStatus,
    ResourceType,
    HIGH_RISK_LEVELS,
    OPEN_INTERVENTION_STATUSES,
)
from ..schemas.predictive_schemas import ContributingFactors
from ..utils.serialization import entity_to_dict
from .dropout_risk_service import DropoutRiskService
from .intervention_service import InterventionService
from .learning_outcome_forecast_service import LearningOutcomeForecastService
from .performance_prediction_service import PerformancePredictionService
from .resource_optimization_service import ResourceOptimizationService

logger = logging.getLogger(__name__)

R = TypeVar("R")

URGENT_PRIORITY = analytics_settings.URGENT_PRIORITY_THRESHOLD


class DashboardComposer:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: Optional[CacheManager] = None,
        cache_ttl: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.cache_ttl = cache_ttl or analytics_settings.DASHBOARD_CACHE_TTL

    async def _query(self, fn: Callable[[AsyncSession], Awaitable[R]]) -> R:
        async with self.session_factory() as session:
            return await fn(session)

    async def _cached(self, key: str, build: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        if self.cache:
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

        dashboard = await build()

        if self.cache:
            await self.cache.set(key, dashboard, self.cache_ttl)
        return dashboard

    async def student_dashboard(self, student_id: UUID, course_id: Optional[UUID] = None) -> Dict[str, Any]:
        return await self._cached(
            f"dashboard:student:{student_id}:{course_id}",
            lambda: self._build_student_dashboard(student_id, course_id),
        )

    async def instructor_dashboard(self, instructor_id: UUID, course_id: Optional[UUID] = None) -> Dict[str, Any]:
        return await self._cached(
            f"dashboard:instructor:{instructor_id}:{course_id}",
            lambda: self._build_instructor_dashboard(instructor_id, course_id),
        )

    async def invalidate_student(self, student_id: UUID) -> int:
        """Forget cached dashboards for a student after their analytics change."""
        if not self.cache:
            return 0
        return await self.cache.delete_prefix(f"dashboard:student:{student_id}:")

    async def _build_student_dashboard(self, student_id: UUID, course_id: Optional[UUID]) -> Dict[str, Any]:
        logger.info(f"Composing analytics dashboard for student {student_id}")

        predictions, assessments, forecasts, interventions, trends = await asyncio.gather(
            self._query(lambda s: PerformancePredictionService(s).find_predictions(
                student_id=student_id, course_id=course_id, limit=50
            )),
            self._query(lambda s: DropoutRiskService(s).find_recent(student_id, course_id, limit=5)),
            self._query(lambda s: LearningOutcomeForecastService(s).find_forecasts(
                student_id=student_id, course_id=course_id, limit=50
            )),
            self._query(lambda s: InterventionService(s).find_interventions(
                student_id=student_id, course_id=course_id
            )),
            self._query(lambda s: PerformancePredictionService(s).get_performance_trends(
                student_id, analytics_settings.TREND_WINDOW_DAYS, course_id=course_id
            )),
        )

        now = datetime.utcnow()
        horizon = now + timedelta(days=30)
        latest_assessment = assessments[0] if assessments else None
        pending = [i for i in interventions if i.status == InterventionStatus.PENDING]

        return {
            "student_id": str(student_id),
            "course_id": str(course_id) if course_id else None,
            "summary": {
                "total_predictions": len(predictions),
                "current_risk_level": latest_assessment.risk_level.value if latest_assessment else "unknown",
                "active_interventions": sum(1 for i in interventions if i.status in OPEN_INTERVENTION_STATUSES),
                "upcoming_targets": sum(1 for f in forecasts if now < f.target_date <= horizon),
            },
            "performance_predictions": [entity_to_dict(p) for p in predictions[:5]],
            "risk_assessment": entity_to_dict(latest_assessment),
            "learning_forecasts": [entity_to_dict(f) for f in forecasts[:3]],
            "recommended_interventions": [entity_to_dict(i) for i in pending[:3]],
            "trends": trends.model_dump(mode="json"),
            "recommendations": self.student_recommendations(predictions, latest_assessment),
        }

    def student_recommendations(self, predictions, latest_assessment) -> List[str]:
        recommendations = []

        if predictions:
            latest = predictions[0]
            if latest.risk_level in HIGH_RISK_LEVELS:
                recommendations.append("Consider scheduling additional study time")
                recommendations.append("Review challenging topics with instructor")

            factors = ContributingFactors.model_validate(latest.contributing_factors or {})
            if factors.engagement_level is not None and factors.engagement_level < 60:
                recommendations.append("Increase participation in discussions and activities")
                recommendations.append("Set daily learning goals to maintain motivation")

        if latest_assessment and latest_assessment.intervention_required:
            recommendations.append("Follow up on recommended interventions")
            recommendations.append("Communicate with instructor about any challenges")

        return recommendations

    async def _build_instructor_dashboard(self, instructor_id: UUID, course_id: Optional[UUID]) -> Dict[str, Any]:
        logger.info(f"Composing analytics dashboard for instructor {instructor_id}")

        high_risk, pending, overdue, resource_insights = await asyncio.gather(
            self._query(lambda s: DropoutRiskService(s).get_high_risk_students(course_id)),
            self._query(lambda s: InterventionService(s).get_pending_interventions(assigned_to_id=instructor_id)),
            self._query(lambda s: InterventionService(s).get_overdue_interventions()),
            self._query(lambda s: ResourceOptimizationService(s).find_optimizations(
                resource_type=ResourceType.CONTENT, resource_id=str(course_id) if course_id else None, limit=5
            )),
        )

        overdue = [i for i in overdue if i.assigned_to_id == instructor_id]
        urgent = [i for i in pending if i.priority >= URGENT_PRIORITY]

        return {
            "instructor_id": str(instructor_id),
            "course_id": str(course_id) if course_id else None,
            "alerts": {
                "high_risk_students": len(high_risk),
                "urgent_interventions": len(urgent),
                "overdue_tasks": len(overdue),
            },
            "students_at_risk": [entity_to_dict(a) for a in high_risk[:10]],
            "pending_interventions": [entity_to_dict(i) for i in pending[:10]],
            "resource_insights": [entity_to_dict(o) for o in resource_insights],
            "recommendations": self.instructor_recommendations(high_risk, pending),
        }

    def instructor_recommendations(self, high_risk, pending) -> List[str]:
        recommendations = []

        if high_risk:
            recommendations.append(f"{len(high_risk)} students need immediate attention")
            recommendations.append("Schedule one-on-one meetings with at-risk students")

        if len(pending) > 5:
            recommendations.append("Prioritize high-priority interventions")
            recommendations.append("Consider delegating some interventions to TAs")

        urgent = [i for i in pending if i.priority >= URGENT_PRIORITY]
        if urgent:
            recommendations.append(f"{len(urgent)} urgent interventions require immediate action")

        return recommendations
