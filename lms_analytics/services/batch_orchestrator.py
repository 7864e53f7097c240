# lms_analytics/services/batch_orchestrator.py
"""Cohort-wide analytics jobs.

Every job works through its targets one at a time, each in its own session.
A target that fails is logged and recorded as failed and the job moves on;
only infrastructure errors (database unreachable, connection lost) abort a
job. Jobs return their alerts and reminders as data and never send anything
themselves.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config_analytics import analytics_settings
from ..core.exceptions import INFRASTRUCTURE_ERRORS
from ..core.performance_monitor import monitor_performance
from ..models.predictive import PredictionType
from ..schemas.job_schemas import BatchItemResult, InterventionReminder, JobResult, RiskAlert
from ..schemas.predictive_schemas import CohortTarget, TrendDirection
from .dropout_risk_service import DropoutRiskService
from .inference_gateway import InferenceGateway, inference_gateway
from .intervention_service import InterventionService
from .learning_signal_service import LearningSignalStore, SignalOutcomeSource, SqlLearningSignalStore
from .performance_prediction_service import PerformancePredictionService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
ItemHandler = Callable[[AsyncSession, Any, JobResult], Awaitable[Optional[Dict[str, Any]]]]


class BatchOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        signal_store_factory: Callable[[AsyncSession], LearningSignalStore] = SqlLearningSignalStore,
        gateway: Optional[InferenceGateway] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.session_factory = session_factory
        self.signal_store_factory = signal_store_factory
        self.gateway = gateway or inference_gateway
        self.progress = progress

    # Service construction per session

    def _predictions(self, session: AsyncSession) -> PerformancePredictionService:
        return PerformancePredictionService(session, self.signal_store_factory(session), self.gateway)

    def _risk(self, session: AsyncSession) -> DropoutRiskService:
        return DropoutRiskService(session, self.signal_store_factory(session))

    def _interventions(self, session: AsyncSession) -> InterventionService:
        return InterventionService(session, self.signal_store_factory(session))

    def _report(self, done: int, total: int):
        if self.progress:
            self.progress(done, total)

    async def _run_items(
        self,
        job_name: str,
        items: List[Any],
        handler: ItemHandler,
        label: Callable[[Any], str] = str,
    ) -> JobResult:
        """Apply ``handler`` to every item, isolating per-item failures"""
        result = JobResult(job_name=job_name, total=len(items))

        for index, item in enumerate(items, start=1):
            try:
                async with self.session_factory() as session:
                    detail = await handler(session, item, result)
                result.results.append(BatchItemResult(target=label(item), status="success", detail=detail or {}))
                result.processed += 1
            except INFRASTRUCTURE_ERRORS as e:
                logger.error(f"{job_name} aborted on {label(item)}: {e}")
                raise
            except Exception as e:
                logger.warning(f"{job_name} failed for {label(item)}: {e}")
                result.results.append(BatchItemResult(target=label(item), status="failed", error=str(e)))
            self._report(index, len(items))

        result.completed_at = datetime.utcnow()
        logger.info(f"{job_name} completed: {result.processed}/{result.total} processed")
        return result

    async def _active_targets(self, since: date) -> List[CohortTarget]:
        async with self.session_factory() as session:
            return await self.signal_store_factory(session).list_active_targets(since)

    # Prediction jobs

    @monitor_performance("job.generate-batch-predictions")
    async def generate_batch_predictions(
        self,
        targets: Iterable[CohortTarget],
        prediction_type: PredictionType = PredictionType.PERFORMANCE,
    ) -> JobResult:
        async def handle(session, target: CohortTarget, _result):
            prediction = await self._predictions(session).generate_prediction(
                target.student_id, target.course_id, prediction_type
            )
            return {
                "prediction_id": str(prediction.id),
                "predicted_value": prediction.predicted_value,
                "model_version": prediction.model_version,
            }

        return await self._run_items(
            "generate-batch-predictions", list(targets), handle, label=lambda t: t.label()
        )

    @monitor_performance("job.update-prediction-accuracies")
    async def update_prediction_accuracies(self, updates: Iterable[Dict[str, Any]]) -> JobResult:
        """Validate predictions against supplied outcomes (``prediction_id`` and ``actual_value`` per item)"""
        async def handle(session, update: Dict[str, Any], _result):
            prediction = await self._predictions(session).validate_prediction(
                UUID(str(update["prediction_id"])), float(update["actual_value"])
            )
            return {"accuracy_score": prediction.accuracy_score}

        return await self._run_items(
            "update-prediction-accuracies", list(updates), handle, label=lambda u: str(u.get("prediction_id"))
        )

    # Risk jobs

    @monitor_performance("job.assess-batch-dropout-risk")
    async def assess_batch_dropout_risk(self, targets: Iterable[CohortTarget]) -> JobResult:
        async def handle(session, target: CohortTarget, _result):
            assessment = await self._risk(session).assess_dropout_risk(target.student_id, target.course_id)
            return {
                "assessment_id": str(assessment.id),
                "risk_level": assessment.risk_level.value,
                "intervention_required": assessment.intervention_required,
            }

        return await self._run_items(
            "assess-batch-dropout-risk", list(targets), handle, label=lambda t: t.label()
        )

    @monitor_performance("job.monitor-high-risk-students")
    async def monitor_high_risk_students(
        self, course_id: Optional[UUID] = None, now: Optional[datetime] = None
    ) -> JobResult:
        """Raise an alert for each currently high-risk student whose risk rose since the previous assessment"""
        now = now or datetime.utcnow()
        since = now - timedelta(days=analytics_settings.NEXT_ASSESSMENT_DAYS)
        async with self.session_factory() as session:
            assessments = await self._risk(session).get_current_high_risk(course_id, since=since)
        assessment_ids = [a.id for a in assessments]

        async def handle(session, assessment_id: UUID, result: JobResult):
            risk = self._risk(session)
            current = await risk.get_or_404(assessment_id)
            previous = await risk.get_previous_assessment(current)
            increased = previous is not None and current.risk_probability > previous.risk_probability
            if increased:
                result.alerts.append(RiskAlert(
                    kind="risk_increase",
                    student_id=current.student_id,
                    course_id=current.course_id,
                    assessment_id=current.id,
                    risk_level=current.risk_level,
                    risk_probability=current.risk_probability,
                    priority=current.intervention_priority,
                    message=(
                        f"Risk increased from {previous.risk_probability} to {current.risk_probability}"
                    ),
                ))
            return {"risk_increased": increased}

        result = await self._run_items("monitor-high-risk-students", assessment_ids, handle)
        result.summary = {"monitored": len(assessment_ids), "alerts": len(result.alerts)}
        return result

    @monitor_performance("job.emergency-intervention-detection")
    async def emergency_intervention_detection(self, now: Optional[datetime] = None) -> JobResult:
        """Alerts for current high-risk assessments at emergency priority"""
        now = now or datetime.utcnow()
        since = now - timedelta(days=analytics_settings.NEXT_ASSESSMENT_DAYS)

        async with self.session_factory() as session:
            high_risk = await self._risk(session).get_current_high_risk(since=since)

        emergencies = [
            a for a in high_risk if a.intervention_priority >= analytics_settings.EMERGENCY_PRIORITY_THRESHOLD
        ]
        result = JobResult(job_name="emergency-intervention-detection", total=len(high_risk))
        for assessment in emergencies:
            result.alerts.append(RiskAlert(
                kind="emergency",
                student_id=assessment.student_id,
                course_id=assessment.course_id,
                assessment_id=assessment.id,
                risk_level=assessment.risk_level,
                risk_probability=assessment.risk_probability,
                priority=assessment.intervention_priority,
                message="Immediate intervention required",
            ))
        result.processed = len(high_risk)
        result.summary = {"emergency_students": len(emergencies), "total_high_risk": len(high_risk)}
        result.completed_at = datetime.utcnow()
        self._report(1, 1)

        if emergencies:
            logger.warning(f"Found {len(emergencies)} students requiring emergency intervention")
        return result

    # Intervention jobs

    @monitor_performance("job.execute-automated-intervention")
    async def execute_automated_intervention(self, intervention_id: UUID) -> JobResult:
        async def handle(session, item_id: UUID, _result):
            intervention = await self._interventions(session).execute_automated_intervention(item_id)
            return {
                "status": intervention.status.value,
                "effectiveness_score": intervention.effectiveness_score,
            }

        return await self._run_items("execute-automated-intervention", [intervention_id], handle)

    @monitor_performance("job.schedule-intervention-reminders")
    async def schedule_intervention_reminders(self, reminder_date: Optional[date] = None) -> JobResult:
        reminder_date = reminder_date or datetime.utcnow().date()

        async with self.session_factory() as session:
            scheduled = await self._interventions(session).get_scheduled_on(reminder_date)

        result = JobResult(job_name="schedule-intervention-reminders", total=len(scheduled))
        result.reminders = [
            InterventionReminder(
                intervention_id=i.id,
                student_id=i.student_id,
                course_id=i.course_id,
                assigned_to_id=i.assigned_to_id,
                title=i.title,
                scheduled_date=i.scheduled_date,
            )
            for i in scheduled
        ]
        result.processed = len(result.reminders)
        result.summary = {"reminder_date": reminder_date.isoformat()}
        result.completed_at = datetime.utcnow()
        self._report(1, 1)

        logger.info(f"Prepared {len(result.reminders)} intervention reminders for {reminder_date}")
        return result

    # Scheduled cohort jobs

    @monitor_performance("job.daily-analytics-generation")
    async def daily_analytics_generation(self, day: Optional[date] = None) -> JobResult:
        """Fresh prediction and risk assessment for every recently active student"""
        day = day or datetime.utcnow().date()
        targets = await self._active_targets(day - timedelta(days=analytics_settings.RISK_WINDOW_DAYS))

        async def handle(session, target: CohortTarget, _result):
            prediction = await self._predictions(session).generate_prediction(target.student_id, target.course_id)
            assessment = await self._risk(session).assess_dropout_risk(target.student_id, target.course_id)
            return {
                "prediction_id": str(prediction.id),
                "assessment_id": str(assessment.id),
                "risk_level": assessment.risk_level.value,
            }

        result = await self._run_items("daily-analytics-generation", targets, handle, label=lambda t: t.label())
        result.summary = {"date": day.isoformat()}
        return result

    @monitor_performance("job.weekly-trend-analysis")
    async def weekly_trend_analysis(self, week_end: Optional[date] = None) -> JobResult:
        """Refresh predictions for students whose weekly trend is sharply declining"""
        week_end = week_end or datetime.utcnow().date()
        week_start = week_end - timedelta(days=analytics_settings.WEEKLY_TREND_DAYS)
        targets = await self._active_targets(week_start)

        async def handle(session, target: CohortTarget, _result):
            predictions = self._predictions(session)
            trends = await predictions.get_performance_trends(
                target.student_id, analytics_settings.WEEKLY_TREND_DAYS, course_id=target.course_id
            )
            refreshed = (
                trends.trend.direction == TrendDirection.DECLINING
                and trends.trend.slope < analytics_settings.DECLINE_SLOPE_TRIGGER
            )
            if refreshed:
                await predictions.generate_prediction(target.student_id, target.course_id)
            return {
                "direction": trends.trend.direction.value,
                "slope": trends.trend.slope,
                "refreshed": refreshed,
            }

        result = await self._run_items("weekly-trend-analysis", targets, handle, label=lambda t: t.label())
        result.summary = {"week_start": week_start.isoformat(), "week_end": week_end.isoformat()}
        return result

    @monitor_performance("job.model-accuracy-validation")
    async def model_accuracy_validation(self, now: Optional[datetime] = None) -> JobResult:
        """Validate due predictions against observed outcomes and report model accuracy"""
        async with self.session_factory() as session:
            predictions = self._predictions(session)
            outcome_source = SignalOutcomeSource(self.signal_store_factory(session))
            sweep = await predictions.validate_due_predictions(outcome_source, now=now)
            metrics = await predictions.accuracy_metrics()

        self._report(1, 1)
        logger.info(f"Model accuracy validation completed with overall accuracy {metrics['overall_accuracy']}")
        return JobResult(
            job_name="model-accuracy-validation",
            processed=sweep["validated"],
            total=sweep["total"],
            summary={**sweep, "accuracy_metrics": metrics},
        )

    @monitor_performance("job.predictive-model-retraining")
    async def predictive_model_retraining(self, model_type: str = "performance") -> JobResult:
        async with self.session_factory() as session:
            metrics = await self._predictions(session).accuracy_metrics()

        retraining = await self.gateway.request_retraining({
            "modelType": model_type,
            "modelVersion": analytics_settings.MODEL_VERSION,
            "trainingSummary": metrics,
        })
        self._report(1, 1)

        return JobResult(
            job_name="predictive-model-retraining",
            processed=1 if retraining["status"] == "requested" else 0,
            total=1,
            summary={"model_type": model_type, "accuracy_metrics": metrics, "retraining": retraining},
        )
