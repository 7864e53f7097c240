# lms_analytics/services/resource_optimization_service.py
import logging
import statistics
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..core.exceptions import PreconditionError, ValidationError
from ..models.predictive import ResourceOptimization, ResourceType
from ..schemas.predictive_schemas import (
    ImplementationPhase,
    ImplementationResults,
    LearningActivityRecord,
    LearningAnalyticsRecord,
    OptimizationAction,
    PredictedOutcomes,
    ResourceUsageSnapshot,
)
from ..utils.scoring import clamp
from .base_service import BaseService
from .learning_signal_service import LearningSignalStore, ResourceUsageSource, SqlLearningSignalStore

logger = logging.getLogger(__name__)


class CourseUsage:
    """Aggregates over a course's learning signals used to score its resources"""

    def __init__(self, analytics: List[LearningAnalyticsRecord], activities: List[LearningActivityRecord]):
        self.analytics = analytics
        self.activities = activities

        enrolled = {a.student_id for a in analytics}
        active = {a.student_id for a in activities}
        self.utilization_rate = len(active & enrolled) / len(enrolled) * 100 if enrolled else 0.0

        self.satisfaction = statistics.fmean(a.engagement_score or 0 for a in analytics) if analytics else 0.0
        scores = [a.average_score for a in analytics if a.average_score is not None]
        self.average_score = statistics.fmean(scores) if scores else 0.0

        per_session = [a.total_time_spent / a.session_count for a in analytics if a.session_count]
        self.average_session_duration = statistics.fmean(per_session) if per_session else 0.0

        hours = Counter(activity.occurred_at.hour for activity in activities)
        self.peak_hours = [f"{hour:02d}:00-{(hour + 1) % 24:02d}:00" for hour, _ in hours.most_common(3)]
        self.peak_share = hours.most_common(1)[0][1] / len(activities) if activities else 0.0

    def bottlenecks(self) -> List[str]:
        found = []
        if self.peak_share > 0.4:
            found.append("High concurrent usage")
        if self.activities and self.average_session_duration < 600:
            found.append("Very short sessions")
        if self.analytics and self.utilization_rate < 50:
            found.append("Low resource uptake")
        return found


# Efficiency scoring, one function per resource type

def _content_efficiency(u: CourseUsage) -> float:
    return u.satisfaction * 0.6 + u.utilization_rate * 0.4


def _instructor_time_efficiency(u: CourseUsage) -> float:
    return u.satisfaction * 0.5 + u.utilization_rate * 0.5


def _system_resources_efficiency(u: CourseUsage) -> float:
    return 100 - u.peak_share * 50 - len(u.bottlenecks()) * 10


def _learning_materials_efficiency(u: CourseUsage) -> float:
    return u.utilization_rate * 0.5 + u.average_score * 0.5


def _assessment_tools_efficiency(u: CourseUsage) -> float:
    return u.average_score * 0.7 + u.utilization_rate * 0.3


EFFICIENCY_SCORERS: Dict[ResourceType, Callable[[CourseUsage], float]] = {
    ResourceType.CONTENT: _content_efficiency,
    ResourceType.INSTRUCTOR_TIME: _instructor_time_efficiency,
    ResourceType.SYSTEM_RESOURCES: _system_resources_efficiency,
    ResourceType.LEARNING_MATERIALS: _learning_materials_efficiency,
    ResourceType.ASSESSMENT_TOOLS: _assessment_tools_efficiency,
}

if set(EFFICIENCY_SCORERS) != set(ResourceType):
    raise RuntimeError("every resource type needs an efficiency scorer")


class SignalResourceUsageSource:
    """Usage snapshot for a course-scoped resource; ``resource_id`` is the course id"""

    def __init__(self, store: LearningSignalStore):
        self.store = store

    async def snapshot(self, resource_type: ResourceType, resource_id: str) -> ResourceUsageSnapshot:
        try:
            course_id = UUID(str(resource_id))
        except ValueError:
            raise ValidationError("resource_id must be a course id", field="resource_id")

        since = datetime.utcnow() - timedelta(days=analytics_settings.METRICS_WINDOW_DAYS)
        usage = CourseUsage(
            await self.store.get_course_analytics(course_id, since.date()),
            await self.store.get_course_activities(course_id, since),
        )

        return ResourceUsageSnapshot(
            efficiency=round(clamp(EFFICIENCY_SCORERS[resource_type](usage)), 2),
            utilization_rate=round(clamp(usage.utilization_rate), 2),
            peak_hours=usage.peak_hours,
            average_session_duration=round(usage.average_session_duration, 2),
            user_satisfaction=round(clamp(usage.satisfaction), 2),
            bottlenecks=usage.bottlenecks(),
            metrics={
                "average_score": round(usage.average_score, 2),
                "peak_share": round(usage.peak_share, 4),
                "activity_count": float(len(usage.activities)),
            },
        )


class ResourceOptimizer:
    """Rule-based optimization opportunities for a usage snapshot"""

    def opportunities(self, usage: ResourceUsageSnapshot) -> List[Dict[str, Any]]:
        found = []
        if usage.utilization_rate < 80:
            found.append({
                "action": "Increase resource utilization",
                "impact": 10,
                "effort": 3,
                "timeline": "2 weeks",
                "dependencies": ["Usage pattern analysis", "User education"],
            })
        if usage.user_satisfaction < 80:
            found.append({
                "action": "Improve user experience",
                "impact": 8,
                "effort": 5,
                "timeline": "1 month",
                "dependencies": ["UI/UX improvements", "Performance optimization"],
            })
        if usage.bottlenecks:
            found.append({
                "action": "Address performance bottlenecks",
                "impact": 12,
                "effort": 7,
                "timeline": "3 weeks",
                "dependencies": ["Infrastructure upgrade", "Code optimization"],
            })
        return found

    def analyze(self, usage: ResourceUsageSnapshot) -> Tuple[float, List[OptimizationAction], PredictedOutcomes]:
        found = self.opportunities(usage)
        ranked = sorted(found, key=lambda item: item["impact"], reverse=True)
        actions = [OptimizationAction(rank=i + 1, **item) for i, item in enumerate(ranked)]

        predicted = min(100.0, usage.efficiency + sum(a.impact for a in actions))
        gain = predicted - usage.efficiency

        outcomes = PredictedOutcomes(
            cost_savings=round(gain * 100, 2),
            performance_improvement=round(gain, 2),
            user_experience_improvement=round(min(20.0, gain * 0.8), 2),
            implementation_cost=sum(a.effort * 1000 for a in actions),
            risk_level="medium" if len(actions) > 2 else "low",
        )
        return predicted, actions, outcomes

    def implementation_plan(self, actions: List[OptimizationAction]) -> List[ImplementationPhase]:
        if not actions:
            return []
        return [
            ImplementationPhase(
                phase="Planning",
                actions=["Analyze current state", "Define success metrics", "Allocate resources"],
                timeline="1 week",
                resources=["Project manager", "Technical team"],
                milestones=["Implementation plan approved"],
            ),
            ImplementationPhase(
                phase="Implementation",
                actions=[a.action for a in actions],
                timeline="2-4 weeks",
                resources=["Development team", "Infrastructure team"],
                milestones=["All recommendations implemented"],
            ),
            ImplementationPhase(
                phase="Validation",
                actions=["Monitor performance", "Collect user feedback", "Measure efficiency gains"],
                timeline="2 weeks",
                resources=["QA team", "Analytics team"],
                milestones=["Results validated and documented"],
            ),
        ]

    def evaluate(self, predicted_efficiency: float, actual_efficiency: float) -> ImplementationResults:
        if predicted_efficiency > 0:
            success_rate = min(100.0, actual_efficiency / predicted_efficiency * 100)
        else:
            success_rate = 100.0

        results = ImplementationResults(success_rate=round(success_rate, 2))
        if actual_efficiency >= predicted_efficiency * 0.9:
            results.additional_benefits.append("Met or exceeded efficiency targets")
        else:
            results.unexpected_issues.append("Lower than expected efficiency gains")
        return results


class ResourceOptimizationService(BaseService[ResourceOptimization]):
    resource_name = "Resource optimization"

    def __init__(
        self,
        db: AsyncSession,
        usage_source: Optional[ResourceUsageSource] = None,
        optimizer: Optional[ResourceOptimizer] = None,
    ):
        super().__init__(ResourceOptimization, db)
        self.usage_source = usage_source or SignalResourceUsageSource(SqlLearningSignalStore(db))
        self.optimizer = optimizer or ResourceOptimizer()

    async def analyze_resource_usage(self, resource_type: ResourceType, resource_id: str) -> ResourceOptimization:
        logger.info(f"Analyzing resource usage for {resource_type.value}:{resource_id}")

        usage = await self.usage_source.snapshot(resource_type, resource_id)
        predicted, actions, outcomes = self.optimizer.analyze(usage)

        optimization = await self.create({
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            "optimization_date": datetime.utcnow(),
            "current_efficiency": usage.efficiency,
            "predicted_efficiency": predicted,
            "current_usage": usage.model_dump(mode="json"),
            "recommendations": [a.model_dump(mode="json") for a in actions],
            "predicted_outcomes": outcomes.model_dump(mode="json"),
        })
        logger.info(
            f"Created optimization {optimization.id}: efficiency {usage.efficiency} -> {predicted} "
            f"with {len(actions)} recommendations"
        )
        return optimization

    async def implement_optimization(self, optimization_id: UUID) -> ResourceOptimization:
        optimization = await self.get_or_404(optimization_id)
        if optimization.is_implemented:
            return optimization

        if not optimization.implementation_plan:
            actions = [OptimizationAction.model_validate(r) for r in optimization.recommendations or []]
            optimization.implementation_plan = [
                phase.model_dump(mode="json") for phase in self.optimizer.implementation_plan(actions)
            ]
        optimization.is_implemented = True
        optimization.implemented_at = datetime.utcnow()

        await self.db.commit()
        await self.db.refresh(optimization)
        logger.info(f"Implemented optimization {optimization_id}")
        return optimization

    async def validate_optimization_results(self, optimization_id: UUID) -> ResourceOptimization:
        optimization = await self.get_or_404(optimization_id)
        if not optimization.is_implemented:
            raise PreconditionError("Optimization must be implemented before validation")

        usage = await self.usage_source.snapshot(optimization.resource_type, optimization.resource_id)
        results = self.optimizer.evaluate(optimization.predicted_efficiency, usage.efficiency)

        optimization.actual_efficiency = usage.efficiency
        optimization.implementation_results = results.model_dump(mode="json")
        optimization.validated_at = datetime.utcnow()

        await self.db.commit()
        await self.db.refresh(optimization)
        logger.info(f"Validated optimization {optimization_id}: success rate {results.success_rate}")
        return optimization

    async def find_optimizations(
        self,
        resource_type: Optional[ResourceType] = None,
        resource_id: Optional[str] = None,
        is_implemented: Optional[bool] = None,
        limit: int = 100,
    ) -> List[ResourceOptimization]:
        conditions = [ResourceOptimization.is_deleted == False]
        if resource_type:
            conditions.append(ResourceOptimization.resource_type == resource_type)
        if resource_id:
            conditions.append(ResourceOptimization.resource_id == str(resource_id))
        if is_implemented is not None:
            conditions.append(ResourceOptimization.is_implemented == is_implemented)

        stmt = (
            select(ResourceOptimization)
            .where(and_(*conditions))
            .order_by(ResourceOptimization.optimization_date.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_optimization_summary(self) -> Dict[str, Any]:
        optimizations = await self.find_optimizations(limit=1000)
        total = len(optimizations)

        summary = {
            "total_optimizations": total,
            "implemented_optimizations": 0,
            "total_efficiency_gain": 0.0,
            "avg_current_efficiency": 0.0,
            "avg_predicted_efficiency": 0.0,
            "resource_type_distribution": {},
            "top_recommendations": [],
            "implementation_status": {"pending": 0, "in_progress": 0, "completed": 0},
        }
        if not total:
            return summary

        def gain(o: ResourceOptimization) -> float:
            return o.predicted_efficiency - o.current_efficiency

        summary["implemented_optimizations"] = sum(1 for o in optimizations if o.is_implemented)
        summary["avg_current_efficiency"] = round(sum(o.current_efficiency for o in optimizations) / total, 2)
        summary["avg_predicted_efficiency"] = round(sum(o.predicted_efficiency for o in optimizations) / total, 2)
        summary["total_efficiency_gain"] = round(sum(gain(o) for o in optimizations), 2)
        summary["resource_type_distribution"] = dict(Counter(o.resource_type.value for o in optimizations))
        summary["top_recommendations"] = [
            {
                "id": str(o.id),
                "resource_type": o.resource_type.value,
                "resource_id": o.resource_id,
                "efficiency_gain": round(gain(o), 2),
                "is_implemented": o.is_implemented,
            }
            for o in sorted(optimizations, key=gain, reverse=True)[:5]
        ]

        for o in optimizations:
            if o.is_implemented:
                summary["implementation_status"]["completed"] += 1
            elif o.implementation_plan:
                summary["implementation_status"]["in_progress"] += 1
            else:
                summary["implementation_status"]["pending"] += 1

        return summary
