# lms_analytics/services/intervention_service.py
"""Intervention recommendations and their lifecycle.

Status changes follow a fixed transition table:

    pending     -> scheduled | in_progress | completed | cancelled | deferred
    scheduled   -> in_progress | completed | cancelled | deferred
    in_progress -> completed
    deferred    -> pending | scheduled

``completed`` and ``cancelled`` are terminal. Anything else raises
InvalidTransitionError.
"""
import logging
from datetime import datetime, timedelta, time
from typing import Dict, FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from ..models.predictive import (
    DropoutRiskAssessment,
    InterventionOutcome,
    InterventionRecommendation,
    InterventionStatus,
    InterventionType,
    PerformancePrediction,
    RiskLevel,
    HIGH_RISK_LEVELS,
    OPEN_INTERVENTION_STATUSES,
)
from ..schemas.predictive_schemas import (
    ContributingFactors,
    InterventionParameters,
    InterventionPlanItem,
    MetricsSnapshot,
    RiskFactors,
    SuccessCriteria,
)
from .base_service import BaseService
from .learning_signal_service import LearningSignalStore, SqlLearningSignalStore, collect_learning_window

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[InterventionStatus, FrozenSet[InterventionStatus]] = {
    InterventionStatus.PENDING: frozenset({
        InterventionStatus.SCHEDULED,
        InterventionStatus.IN_PROGRESS,
        InterventionStatus.COMPLETED,
        InterventionStatus.CANCELLED,
        InterventionStatus.DEFERRED,
    }),
    InterventionStatus.SCHEDULED: frozenset({
        InterventionStatus.IN_PROGRESS,
        InterventionStatus.COMPLETED,
        InterventionStatus.CANCELLED,
        InterventionStatus.DEFERRED,
    }),
    InterventionStatus.IN_PROGRESS: frozenset({InterventionStatus.COMPLETED}),
    InterventionStatus.DEFERRED: frozenset({InterventionStatus.PENDING, InterventionStatus.SCHEDULED}),
    InterventionStatus.COMPLETED: frozenset(),
    InterventionStatus.CANCELLED: frozenset(),
}

# Sub-scores above this point at the matching kind of support
RISK_TRIGGER = 60.0


class RiskProfile(BaseModel):
    """What the planner needs from either a prediction or an assessment"""
    student_id: UUID
    course_id: Optional[UUID] = None
    prediction_id: Optional[UUID] = None
    assessment_id: Optional[UUID] = None
    risk_level: RiskLevel
    academic_risk: float
    engagement_risk: float
    time_management_risk: float = 0.0

    @classmethod
    def from_prediction(cls, prediction: PerformancePrediction) -> "RiskProfile":
        factors = ContributingFactors.model_validate(prediction.contributing_factors or {})
        performance = factors.performance_history if factors.performance_history is not None else 50.0
        engagement = factors.engagement_level if factors.engagement_level is not None else 50.0
        return cls(
            student_id=prediction.student_id,
            course_id=prediction.course_id,
            prediction_id=prediction.id,
            risk_level=prediction.risk_level,
            academic_risk=max(0.0, 100 - performance),
            engagement_risk=max(0.0, 100 - engagement),
        )

    @classmethod
    def from_assessment(cls, assessment: DropoutRiskAssessment) -> "RiskProfile":
        factors = RiskFactors.model_validate(assessment.risk_factors)
        return cls(
            student_id=assessment.student_id,
            course_id=assessment.course_id,
            assessment_id=assessment.id,
            risk_level=assessment.risk_level,
            academic_risk=factors.academic_performance.score,
            engagement_risk=factors.engagement_level.score,
            time_management_risk=factors.time_management.score,
        )


class InterventionPlanner:
    """Turns a risk profile into intervention plan items"""

    def plan(self, profile: RiskProfile) -> List[InterventionPlanItem]:
        if profile.risk_level in HIGH_RISK_LEVELS:
            return self._high_risk_plan(profile, very_high=profile.risk_level == RiskLevel.VERY_HIGH)
        if profile.risk_level == RiskLevel.MEDIUM:
            return [self._study_plan(priority=5)]
        return []

    def _high_risk_plan(self, profile: RiskProfile, very_high: bool) -> List[InterventionPlanItem]:
        items = []

        if profile.academic_risk > RISK_TRIGGER:
            items.append(InterventionPlanItem(
                intervention_type=InterventionType.TUTOR_SUPPORT,
                title="Urgent: Academic Support Required",
                description="Student shows poor performance history and needs immediate tutoring support",
                priority=10 if very_high else 9,
                parameters=InterventionParameters(
                    target_metrics=["average_score", "engagement_score"],
                    follow_up_required=True,
                ),
                success_criteria=SuccessCriteria(targets={"average_score": 10.0}),
            ))
            items.append(InterventionPlanItem(
                intervention_type=InterventionType.CONTENT_REVIEW,
                title="Targeted Content Review",
                description="Provide additional review materials for struggling areas",
                priority=10 if very_high else 8,
                parameters=InterventionParameters(
                    target_metrics=["average_score"],
                    automated_intervention=True,
                ),
                success_criteria=SuccessCriteria(targets={"average_score": 5.0}),
            ))

        if profile.engagement_risk > RISK_TRIGGER:
            items.append(InterventionPlanItem(
                intervention_type=InterventionType.MOTIVATION,
                title="Motivation and Engagement Intervention",
                description="Student shows low engagement and needs motivational support",
                priority=9 if very_high else 8,
                parameters=InterventionParameters(
                    target_metrics=["engagement_score", "time_spent"],
                    communication_method="personal_meeting",
                    follow_up_required=True,
                ),
                success_criteria=SuccessCriteria(targets={"engagement_score": 15.0}),
            ))
            items.append(InterventionPlanItem(
                intervention_type=InterventionType.PEER_SUPPORT,
                title="Peer Study Group Placement",
                description="Connect with study groups and peer mentoring",
                priority=8 if very_high else 7,
                parameters=InterventionParameters(
                    target_metrics=["active_days", "activities_completed"],
                    communication_method="email",
                ),
                success_criteria=SuccessCriteria(targets={"active_days": 3.0}),
            ))

        if profile.time_management_risk > RISK_TRIGGER:
            items.append(self._study_plan(priority=7 if very_high else 6))

        return items

    def _study_plan(self, priority: int) -> InterventionPlanItem:
        return InterventionPlanItem(
            intervention_type=InterventionType.STUDY_PLAN,
            title="Study Plan Optimization",
            description="Create personalized study plan to improve learning outcomes",
            priority=priority,
            parameters=InterventionParameters(
                target_metrics=["time_spent", "active_days"],
                automated_intervention=True,
            ),
            success_criteria=SuccessCriteria(targets={"active_days": 2.0}),
        )


class InterventionService(BaseService[InterventionRecommendation]):
    resource_name = "Intervention recommendation"

    def __init__(
        self,
        db: AsyncSession,
        signal_store: Optional[LearningSignalStore] = None,
        planner: Optional[InterventionPlanner] = None,
    ):
        super().__init__(InterventionRecommendation, db)
        self.signal_store = signal_store or SqlLearningSignalStore(db)
        self.planner = planner or InterventionPlanner()

    async def capture_metrics(self, student_id: UUID, course_id: Optional[UUID]) -> MetricsSnapshot:
        window = await collect_learning_window(
            self.signal_store, student_id, course_id, analytics_settings.METRICS_WINDOW_DAYS
        )
        return window.metrics_snapshot()

    # Generation

    async def generate_from_prediction(self, prediction_id: UUID) -> List[InterventionRecommendation]:
        result = await self.db.execute(
            select(PerformancePrediction).where(
                and_(PerformancePrediction.id == prediction_id, PerformancePrediction.is_deleted == False)
            )
        )
        prediction = result.scalar_one_or_none()
        if not prediction:
            raise NotFoundError("Performance prediction", prediction_id)

        logger.info(f"Generating intervention recommendations for prediction {prediction_id}")
        return await self.generate_for_profile(RiskProfile.from_prediction(prediction))

    async def generate_from_assessment(self, assessment_id: UUID) -> List[InterventionRecommendation]:
        result = await self.db.execute(
            select(DropoutRiskAssessment).where(
                and_(DropoutRiskAssessment.id == assessment_id, DropoutRiskAssessment.is_deleted == False)
            )
        )
        assessment = result.scalar_one_or_none()
        if not assessment:
            raise NotFoundError("Dropout risk assessment", assessment_id)

        logger.info(f"Generating intervention recommendations for assessment {assessment_id}")
        return await self.generate_for_profile(RiskProfile.from_assessment(assessment))

    async def generate_for_profile(self, profile: RiskProfile) -> List[InterventionRecommendation]:
        """Persist the planner's items, reusing open recommendations of the same type"""
        items = self.planner.plan(profile)
        if not items:
            return []

        pre_metrics = await self.capture_metrics(profile.student_id, profile.course_id)
        now = datetime.utcnow()
        recommendations = []

        for item in items:
            existing = await self._open_recommendation(profile.student_id, profile.course_id, item.intervention_type)
            if existing:
                if item.priority > existing.priority:
                    existing.priority = item.priority
                    await self.db.commit()
                    await self.db.refresh(existing)
                recommendations.append(existing)
                continue

            recommendation = await self.create({
                "student_id": profile.student_id,
                "course_id": profile.course_id,
                "prediction_id": profile.prediction_id,
                "assessment_id": profile.assessment_id,
                "intervention_type": item.intervention_type,
                "title": item.title,
                "description": item.description,
                "priority": item.priority,
                "status": InterventionStatus.PENDING,
                "recommended_date": now,
                "parameters": item.parameters.model_dump(mode="json"),
                "success_criteria": item.success_criteria.model_dump(mode="json") if item.success_criteria else None,
                "pre_intervention_metrics": pre_metrics.model_dump(mode="json", exclude_none=True),
            })
            logger.info(
                f"Created {item.intervention_type.value} intervention {recommendation.id} "
                f"for student {profile.student_id} (priority {item.priority})"
            )
            recommendations.append(recommendation)

        return recommendations

    async def _open_recommendation(
        self, student_id: UUID, course_id: Optional[UUID], intervention_type: InterventionType
    ) -> Optional[InterventionRecommendation]:
        conditions = [
            InterventionRecommendation.student_id == student_id,
            InterventionRecommendation.intervention_type == intervention_type,
            InterventionRecommendation.status.in_(OPEN_INTERVENTION_STATUSES),
            InterventionRecommendation.is_deleted == False
        ]
        if course_id:
            conditions.append(InterventionRecommendation.course_id == course_id)
        else:
            conditions.append(InterventionRecommendation.course_id.is_(None))
        result = await self.db.execute(select(InterventionRecommendation).where(and_(*conditions)).limit(1))
        return result.scalar_one_or_none()

    # Queries

    async def find_interventions(
        self,
        student_id: Optional[UUID] = None,
        course_id: Optional[UUID] = None,
        intervention_type: Optional[InterventionType] = None,
        status: Optional[InterventionStatus] = None,
        statuses: Optional[List[InterventionStatus]] = None,
        min_priority: Optional[int] = None,
        assigned_to_id: Optional[UUID] = None,
        follow_up_required: Optional[bool] = None,
        limit: int = 100,
    ) -> List[InterventionRecommendation]:
        """Filtered recommendations, highest priority first, then newest"""
        conditions = [InterventionRecommendation.is_deleted == False]

        if student_id:
            conditions.append(InterventionRecommendation.student_id == student_id)
        if course_id:
            conditions.append(InterventionRecommendation.course_id == course_id)
        if intervention_type:
            conditions.append(InterventionRecommendation.intervention_type == intervention_type)
        if status:
            conditions.append(InterventionRecommendation.status == status)
        if statuses:
            conditions.append(InterventionRecommendation.status.in_(statuses))
        if min_priority is not None:
            conditions.append(InterventionRecommendation.priority >= min_priority)
        if assigned_to_id:
            conditions.append(InterventionRecommendation.assigned_to_id == assigned_to_id)
        if follow_up_required is not None:
            conditions.append(InterventionRecommendation.follow_up_required == follow_up_required)

        stmt = (
            select(InterventionRecommendation)
            .where(and_(*conditions))
            .order_by(InterventionRecommendation.priority.desc(), InterventionRecommendation.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_interventions(
        self, assigned_to_id: Optional[UUID] = None, student_id: Optional[UUID] = None
    ) -> List[InterventionRecommendation]:
        return await self.find_interventions(
            status=InterventionStatus.PENDING, assigned_to_id=assigned_to_id, student_id=student_id
        )

    async def get_overdue_interventions(self, now: Optional[datetime] = None) -> List[InterventionRecommendation]:
        """Scheduled interventions whose date has passed without being started"""
        stmt = select(InterventionRecommendation).where(
            and_(
                InterventionRecommendation.status == InterventionStatus.SCHEDULED,
                InterventionRecommendation.scheduled_date < (now or datetime.utcnow()),
                InterventionRecommendation.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_scheduled_on(self, day) -> List[InterventionRecommendation]:
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        stmt = select(InterventionRecommendation).where(
            and_(
                InterventionRecommendation.status == InterventionStatus.SCHEDULED,
                InterventionRecommendation.scheduled_date >= start,
                InterventionRecommendation.scheduled_date < end,
                InterventionRecommendation.is_deleted == False
            )
        ).order_by(InterventionRecommendation.scheduled_date.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Lifecycle

    def _check_transition(self, intervention: InterventionRecommendation, new_status: InterventionStatus):
        if new_status not in ALLOWED_TRANSITIONS[intervention.status]:
            raise InvalidTransitionError(intervention.status.value, new_status.value)

    async def _save(self, intervention: InterventionRecommendation) -> InterventionRecommendation:
        await self.db.commit()
        await self.db.refresh(intervention)
        logger.info(f"Intervention {intervention.id} is now {intervention.status.value}")
        return intervention

    async def schedule_intervention(
        self,
        intervention_id: UUID,
        scheduled_date: Optional[datetime] = None,
        assigned_to_id: Optional[UUID] = None,
    ) -> InterventionRecommendation:
        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.SCHEDULED)

        intervention.status = InterventionStatus.SCHEDULED
        intervention.scheduled_date = scheduled_date or intervention.scheduled_date or datetime.utcnow()
        if assigned_to_id:
            intervention.assigned_to_id = assigned_to_id
        return await self._save(intervention)

    async def start_intervention(self, intervention_id: UUID) -> InterventionRecommendation:
        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.IN_PROGRESS)

        intervention.status = InterventionStatus.IN_PROGRESS
        intervention.started_at = datetime.utcnow()
        return await self._save(intervention)

    async def complete_intervention(
        self,
        intervention_id: UUID,
        outcome: Optional[InterventionOutcome],
        effectiveness_score: Optional[float],
        instructor_notes: Optional[str] = None,
        student_feedback: Optional[str] = None,
    ) -> InterventionRecommendation:
        """Close an intervention with its outcome and capture post-intervention metrics"""
        if outcome is None:
            raise ValidationError("An outcome is required to complete an intervention", field="outcome")
        if effectiveness_score is None or not 0 <= effectiveness_score <= 100:
            raise ValidationError("effectiveness_score must be between 0 and 100", field="effectiveness_score")

        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.COMPLETED)

        current = await self.capture_metrics(intervention.student_id, intervention.course_id)
        if not intervention.pre_intervention_metrics:
            intervention.pre_intervention_metrics = current.model_dump(mode="json", exclude_none=True)
        captured_keys = set(intervention.pre_intervention_metrics)
        intervention.post_intervention_metrics = current.model_dump(mode="json", include=captured_keys)

        now = datetime.utcnow()
        intervention.status = InterventionStatus.COMPLETED
        intervention.completed_at = now
        intervention.outcome = outcome
        intervention.effectiveness_score = effectiveness_score
        if instructor_notes is not None:
            intervention.instructor_notes = instructor_notes
        if student_feedback is not None:
            intervention.student_feedback = student_feedback

        if (
            effectiveness_score < analytics_settings.FOLLOW_UP_EFFECTIVENESS_THRESHOLD
            or outcome == InterventionOutcome.PARTIALLY_SUCCESSFUL
        ):
            intervention.follow_up_required = True
            intervention.follow_up_date = now + timedelta(days=analytics_settings.FOLLOW_UP_DAYS)

        return await self._save(intervention)

    async def cancel_intervention(
        self, intervention_id: UUID, reason: Optional[str] = None
    ) -> InterventionRecommendation:
        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.CANCELLED)

        intervention.status = InterventionStatus.CANCELLED
        if reason:
            intervention.instructor_notes = reason
        return await self._save(intervention)

    async def defer_intervention(
        self, intervention_id: UUID, reason: Optional[str] = None
    ) -> InterventionRecommendation:
        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.DEFERRED)

        intervention.status = InterventionStatus.DEFERRED
        if reason:
            intervention.instructor_notes = reason
        return await self._save(intervention)

    async def reactivate_intervention(self, intervention_id: UUID) -> InterventionRecommendation:
        """Return a deferred intervention to the pending queue"""
        intervention = await self.get_or_404(intervention_id)
        self._check_transition(intervention, InterventionStatus.PENDING)

        intervention.status = InterventionStatus.PENDING
        return await self._save(intervention)

    async def execute_automated_intervention(self, intervention_id: UUID) -> InterventionRecommendation:
        """Run an automated intervention to completion; manual ones are deferred to staff"""
        intervention = await self.get_or_404(intervention_id)
        parameters = InterventionParameters.model_validate(intervention.parameters or {})

        if not parameters.automated_intervention:
            logger.info(f"Intervention {intervention_id} is not automated, deferring to staff")
            return await self.defer_intervention(intervention_id, reason="Requires manual handling")

        if intervention.status != InterventionStatus.IN_PROGRESS:
            await self.start_intervention(intervention_id)
        return await self.complete_intervention(
            intervention_id,
            InterventionOutcome.SUCCESSFUL,
            analytics_settings.AUTOMATED_EFFECTIVENESS_SCORE,
            instructor_notes="Delivered automatically",
        )
