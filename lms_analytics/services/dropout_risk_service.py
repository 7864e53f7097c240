# lms_analytics/services/dropout_risk_service.py
"""Dropout risk assessment.

Risk is scored from four factors over a trailing window of learning signals.
Each factor is a 0-100 score where higher means riskier:

* academic performance - inverse of the average graded score
* engagement level - inverse of the average engagement score
* attendance pattern - shortfall against the expected number of activities
* time management - penalties for short and for inconsistent study sessions

The overall probability is the weight-normalized sum of the factor scores.
Missing analytics never fail an assessment; the affected factors fall back
to neutral defaults and say so in their details.
"""
import logging
import statistics
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..models.predictive import DropoutRiskAssessment, InterventionType, RiskLevel, HIGH_RISK_LEVELS
from ..schemas.predictive_schemas import (
    ProtectiveFactors,
    RiskFactor,
    RiskFactors,
    RiskTrendAnalysis,
    TrendDirection,
)
from ..utils.scoring import clamp, classify_risk_level
from .base_service import BaseService
from .learning_signal_service import (
    LearningSignalStore,
    LearningWindow,
    SqlLearningSignalStore,
    collect_learning_window,
)
from .trend_analyzer import trend_analyzer

logger = logging.getLogger(__name__)

INTERVENTION_DESCRIPTIONS = {
    InterventionType.TUTOR_SUPPORT: "Assign dedicated tutor for personalized support",
    InterventionType.CONTENT_REVIEW: "Provide additional review materials for struggling areas",
    InterventionType.MOTIVATION: "Implement motivational strategies and goal setting",
    InterventionType.STUDY_PLAN: "Create structured study plan with regular check-ins",
    InterventionType.PEER_SUPPORT: "Connect with study groups and peer mentoring",
}

# Factor scores above this are considered drivers of the risk
INFLUENCER_THRESHOLD = 60.0


class RiskAnalysis(BaseModel):
    risk_level: RiskLevel
    risk_probability: float
    risk_factors: RiskFactors
    protective_factors: ProtectiveFactors
    intervention_required: bool
    recommended_interventions: List[InterventionType]
    intervention_priority: int
    intervention_recommendations: str


class RiskAssessmentEngine:
    """Pure scoring over a LearningWindow; no I/O"""

    def __init__(self, weights=None, expected_activities: Optional[int] = None):
        self.weights = weights or analytics_settings.RISK_WEIGHTS
        self.expected_activities = expected_activities or analytics_settings.EXPECTED_ACTIVITIES

    def academic_performance(self, window: LearningWindow) -> RiskFactor:
        weight = self.weights["academic_performance"]
        avg_score = window.avg_score
        if avg_score is None:
            return RiskFactor(score=50, weight=weight, details=["No performance data available"])

        details = []
        if avg_score < 60:
            details.append("Low average performance")
        if avg_score < 40:
            details.append("Critical performance level")
        return RiskFactor(score=clamp(100 - avg_score), weight=weight, details=details)

    def engagement_level(self, window: LearningWindow) -> RiskFactor:
        weight = self.weights["engagement_level"]
        avg_engagement = window.avg_engagement
        if avg_engagement is None:
            return RiskFactor(score=70, weight=weight, details=["No engagement data available"])

        details = []
        if avg_engagement < 50:
            details.append("Low engagement levels")
        if window.activity_count < 5:
            details.append("Minimal learning activities")
        return RiskFactor(score=clamp(100 - avg_engagement), weight=weight, details=details)

    def attendance_pattern(self, window: LearningWindow) -> RiskFactor:
        weight = self.weights["attendance_pattern"]
        attendance_rate = window.activity_count / self.expected_activities * 100

        details = []
        if attendance_rate < 70:
            details.append("Poor attendance pattern")
        if attendance_rate < 50:
            details.append("Very low activity levels")
        return RiskFactor(score=clamp(100 - attendance_rate), weight=weight, details=details)

    def time_management(self, window: LearningWindow) -> RiskFactor:
        weight = self.weights["time_management"]
        if not window.has_analytics:
            return RiskFactor(score=60, weight=weight, details=["No time management data available"])

        sessions = window.session_lengths
        if not sessions:
            return RiskFactor(score=80, weight=weight, details=["No study time recorded"])

        score = 0.0
        details = []
        if statistics.fmean(sessions) < analytics_settings.SHORT_SESSION_SECONDS:
            score += 40
            details.append("Very short study sessions")
        if session_consistency(sessions) < analytics_settings.MAX_SESSION_VARIATION:
            score += 30
            details.append("Inconsistent study patterns")
        return RiskFactor(score=min(100.0, score), weight=weight, details=details)

    def score_factors(self, window: LearningWindow) -> RiskFactors:
        return RiskFactors(
            academic_performance=self.academic_performance(window),
            engagement_level=self.engagement_level(window),
            attendance_pattern=self.attendance_pattern(window),
            time_management=self.time_management(window),
        )

    def protective_factors(self, window: LearningWindow, good_support: bool = False) -> ProtectiveFactors:
        factors = ProtectiveFactors(good_support=good_support)
        if window.has_analytics:
            factors.strong_motivation = (window.avg_engagement or 0) > 70
            factors.prior_success = (window.avg_score or 0) > 75
            factors.effective_study_habits = any(
                length > analytics_settings.LONG_SESSION_SECONDS for length in window.session_lengths
            )
        factors.technical_competence = window.activity_count > 10
        factors.time_availability = window.activity_count > 15
        return factors

    def recommend(self, risk_level: RiskLevel, factors: RiskFactors) -> Tuple[List[InterventionType], int]:
        interventions: List[InterventionType] = []
        priority = 1

        if risk_level in HIGH_RISK_LEVELS:
            priority = 10 if risk_level == RiskLevel.VERY_HIGH else 8
            if factors.academic_performance.score > INFLUENCER_THRESHOLD:
                interventions += [InterventionType.TUTOR_SUPPORT, InterventionType.CONTENT_REVIEW]
            if factors.engagement_level.score > INFLUENCER_THRESHOLD:
                interventions += [InterventionType.MOTIVATION, InterventionType.PEER_SUPPORT]
            if factors.time_management.score > INFLUENCER_THRESHOLD:
                interventions.append(InterventionType.STUDY_PLAN)
        elif risk_level == RiskLevel.MEDIUM:
            priority = 5
            interventions += [InterventionType.STUDY_PLAN, InterventionType.MOTIVATION]

        return interventions, priority

    def analyze(self, window: LearningWindow, good_support: bool = False) -> RiskAnalysis:
        factors = self.score_factors(window)
        probability = round(factors.weighted_probability(), 2)
        risk_level = classify_risk_level(probability)
        interventions, priority = self.recommend(risk_level, factors)

        return RiskAnalysis(
            risk_level=risk_level,
            risk_probability=probability,
            risk_factors=factors,
            protective_factors=self.protective_factors(window, good_support),
            intervention_required=risk_level in HIGH_RISK_LEVELS,
            recommended_interventions=interventions,
            intervention_priority=priority,
            intervention_recommendations="; ".join(INTERVENTION_DESCRIPTIONS[i] for i in interventions),
        )


def session_consistency(values: List[float]) -> float:
    """1 - coefficient of variation, floored at 0; fewer than two values count as consistent"""
    if len(values) < 2:
        return 1.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 1.0
    return max(0.0, 1 - statistics.pstdev(values) / mean)


def analyze_risk_trend(history: List[float], factors: RiskFactors) -> RiskTrendAnalysis:
    """Trend of risk probabilities, oldest first; rising risk is reported as declining"""
    trend = trend_analyzer.analyze(history)
    direction = {
        TrendDirection.IMPROVING: TrendDirection.DECLINING,
        TrendDirection.DECLINING: TrendDirection.IMPROVING,
    }.get(trend.direction, trend.direction)

    current = history[-1] if history else 0.0
    return RiskTrendAnalysis(
        direction=direction,
        velocity=trend.slope,
        projected_risk=round(clamp(current + trend.slope), 2),
        key_influencers=[name for name, factor in factors.items() if factor.score > INFLUENCER_THRESHOLD],
        sample_size=len(history),
    )


class DropoutRiskService(BaseService[DropoutRiskAssessment]):
    resource_name = "Dropout risk assessment"

    def __init__(
        self,
        db: AsyncSession,
        signal_store: Optional[LearningSignalStore] = None,
        engine: Optional[RiskAssessmentEngine] = None,
    ):
        super().__init__(DropoutRiskAssessment, db)
        self.signal_store = signal_store or SqlLearningSignalStore(db)
        self.engine = engine or RiskAssessmentEngine()

    async def assess_dropout_risk(
        self,
        student_id: UUID,
        course_id: Optional[UUID] = None,
        good_support: bool = False,
        now: Optional[datetime] = None,
    ) -> DropoutRiskAssessment:
        """Score the student's trailing window and store today's assessment.

        A student/course pair has at most one assessment per day; assessing
        again on the same day updates it.
        """
        now = now or datetime.utcnow()
        logger.info(f"Assessing dropout risk for student {student_id}")

        window = await collect_learning_window(
            self.signal_store, student_id, course_id, analytics_settings.RISK_WINDOW_DAYS, now=now
        )
        analysis = self.engine.analyze(window, good_support=good_support)

        history = await self._risk_history(student_id, course_id, before_day=now.date())
        trend = analyze_risk_trend(history + [analysis.risk_probability], analysis.risk_factors)

        values = {
            "assessment_date": now,
            "risk_level": analysis.risk_level,
            "risk_probability": analysis.risk_probability,
            "risk_factors": analysis.risk_factors.model_dump(mode="json"),
            "protective_factors": analysis.protective_factors.model_dump(mode="json"),
            "intervention_required": analysis.intervention_required,
            "recommended_interventions": [i.value for i in analysis.recommended_interventions],
            "intervention_recommendations": analysis.intervention_recommendations,
            "intervention_priority": analysis.intervention_priority,
            "intervention_deadline": self._intervention_deadline(analysis.risk_level, now),
            "trend_analysis": trend.model_dump(mode="json"),
            "next_assessment_date": now + timedelta(days=analytics_settings.NEXT_ASSESSMENT_DAYS),
            "assessment_metadata": {
                "window_days": analytics_settings.RISK_WINDOW_DAYS,
                "analytics_records": len(window.analytics),
                "activity_count": window.activity_count,
            },
        }

        existing = await self._assessment_on_day(student_id, course_id, now.date())
        if existing:
            return await self._update_assessment(existing, values)

        try:
            assessment = await self.create({
                "student_id": student_id,
                "course_id": course_id,
                "assessment_day": now.date(),
                **values,
            })
        except IntegrityError:
            # a concurrent assessment stored today's row first
            await self.db.rollback()
            existing = await self._assessment_on_day(student_id, course_id, now.date())
            if not existing:
                raise
            return await self._update_assessment(existing, values)

        logger.info(
            f"Created dropout risk assessment {assessment.id} for student {student_id}: "
            f"{assessment.risk_level.value} ({assessment.risk_probability})"
        )
        return assessment

    async def _update_assessment(self, existing: DropoutRiskAssessment, values: Dict) -> DropoutRiskAssessment:
        for key, value in values.items():
            setattr(existing, key, value)
        await self.db.commit()
        await self.db.refresh(existing)
        logger.info(f"Updated dropout risk assessment {existing.id} for student {existing.student_id}")
        return existing

    def _intervention_deadline(self, risk_level: RiskLevel, now: datetime) -> Optional[datetime]:
        if risk_level == RiskLevel.VERY_HIGH:
            return now + timedelta(days=2)
        if risk_level == RiskLevel.HIGH:
            return now + timedelta(days=7)
        return None

    def _pair_conditions(self, student_id: UUID, course_id: Optional[UUID]):
        conditions = [
            DropoutRiskAssessment.student_id == student_id,
            DropoutRiskAssessment.is_deleted == False
        ]
        if course_id:
            conditions.append(DropoutRiskAssessment.course_id == course_id)
        else:
            conditions.append(DropoutRiskAssessment.course_id.is_(None))
        return conditions

    async def _assessment_on_day(self, student_id, course_id, day) -> Optional[DropoutRiskAssessment]:
        stmt = select(DropoutRiskAssessment).where(
            and_(*self._pair_conditions(student_id, course_id), DropoutRiskAssessment.assessment_day == day)
        )
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def _risk_history(self, student_id, course_id, before_day) -> List[float]:
        stmt = (
            select(DropoutRiskAssessment.risk_probability)
            .where(and_(*self._pair_conditions(student_id, course_id), DropoutRiskAssessment.assessment_day < before_day))
            .order_by(DropoutRiskAssessment.assessment_date.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_assessments(
        self,
        student_id: Optional[UUID] = None,
        course_id: Optional[UUID] = None,
        risk_level: Optional[RiskLevel] = None,
        intervention_required: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        min_risk_probability: Optional[float] = None,
        limit: int = 100,
    ) -> List[DropoutRiskAssessment]:
        """Filtered assessments, most urgent first"""
        conditions = [DropoutRiskAssessment.is_deleted == False]

        if student_id:
            conditions.append(DropoutRiskAssessment.student_id == student_id)
        if course_id:
            conditions.append(DropoutRiskAssessment.course_id == course_id)
        if risk_level:
            conditions.append(DropoutRiskAssessment.risk_level == risk_level)
        if intervention_required is not None:
            conditions.append(DropoutRiskAssessment.intervention_required == intervention_required)
        if start_date:
            conditions.append(DropoutRiskAssessment.assessment_date >= start_date)
        if end_date:
            conditions.append(DropoutRiskAssessment.assessment_date <= end_date)
        if min_risk_probability is not None:
            conditions.append(DropoutRiskAssessment.risk_probability >= min_risk_probability)

        stmt = (
            select(DropoutRiskAssessment)
            .where(and_(*conditions))
            .order_by(
                DropoutRiskAssessment.intervention_priority.desc(),
                DropoutRiskAssessment.assessment_date.desc()
            )
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_high_risk_students(
        self, course_id: Optional[UUID] = None, since: Optional[datetime] = None
    ) -> List[DropoutRiskAssessment]:
        stmt = (
            select(DropoutRiskAssessment)
            .where(
                and_(
                    DropoutRiskAssessment.risk_level.in_(HIGH_RISK_LEVELS),
                    DropoutRiskAssessment.intervention_required == True,
                    DropoutRiskAssessment.is_deleted == False
                )
            )
            .order_by(
                DropoutRiskAssessment.intervention_priority.desc(),
                DropoutRiskAssessment.risk_probability.desc()
            )
        )
        if course_id:
            stmt = stmt.where(DropoutRiskAssessment.course_id == course_id)
        if since:
            stmt = stmt.where(DropoutRiskAssessment.assessment_date >= since)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_current_high_risk(
        self, course_id: Optional[UUID] = None, since: Optional[datetime] = None
    ) -> List[DropoutRiskAssessment]:
        """High-risk assessments that are still the latest for their student and course"""
        latest: Dict[Tuple[UUID, Optional[UUID]], DropoutRiskAssessment] = {}
        for assessment in await self.get_high_risk_students(course_id, since):
            key = (assessment.student_id, assessment.course_id)
            if key not in latest or assessment.assessment_date > latest[key].assessment_date:
                latest[key] = assessment

        current = []
        for (student_id, pair_course_id), assessment in latest.items():
            stmt = (
                select(DropoutRiskAssessment.id)
                .where(and_(*self._pair_conditions(student_id, pair_course_id)))
                .order_by(DropoutRiskAssessment.assessment_date.desc())
                .limit(1)
            )
            result = await self.db.execute(stmt)
            if result.scalar_one_or_none() == assessment.id:
                current.append(assessment)
        return current

    async def get_latest_assessment(
        self, student_id: UUID, course_id: Optional[UUID] = None
    ) -> Optional[DropoutRiskAssessment]:
        assessments = await self.find_recent(student_id, course_id, limit=1)
        return assessments[0] if assessments else None

    async def get_previous_assessment(
        self, assessment: DropoutRiskAssessment
    ) -> Optional[DropoutRiskAssessment]:
        """The student's assessment immediately before the given one"""
        stmt = (
            select(DropoutRiskAssessment)
            .where(
                and_(
                    *self._pair_conditions(assessment.student_id, assessment.course_id),
                    DropoutRiskAssessment.assessment_date < assessment.assessment_date
                )
            )
            .order_by(DropoutRiskAssessment.assessment_date.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_recent(
        self, student_id: UUID, course_id: Optional[UUID] = None, limit: int = 10
    ) -> List[DropoutRiskAssessment]:
        stmt = select(DropoutRiskAssessment).where(
            and_(DropoutRiskAssessment.student_id == student_id, DropoutRiskAssessment.is_deleted == False)
        )
        if course_id:
            stmt = stmt.where(DropoutRiskAssessment.course_id == course_id)
        result = await self.db.execute(stmt.order_by(DropoutRiskAssessment.assessment_date.desc()).limit(limit))
        return list(result.scalars().all())

    async def mark_notified(
        self, assessment_id: UUID, student: bool = False, instructor: bool = False
    ) -> DropoutRiskAssessment:
        assessment = await self.get_or_404(assessment_id)
        if student:
            assessment.student_notified = True
        if instructor:
            assessment.instructor_notified = True
        await self.db.commit()
        await self.db.refresh(assessment)
        return assessment
