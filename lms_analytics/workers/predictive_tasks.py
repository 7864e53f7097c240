# lms_analytics/workers/predictive_tasks.py
"""Celery tasks for the scheduled and on-demand analytics jobs.

Each task name matches its job name. Tasks drive the async orchestrator with
``asyncio.run`` and report progress through the task state.
"""
import asyncio
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from celery_worker import celery_app

from ..core.database import AsyncSessionLocal, close_db_connections
from ..models.predictive import PredictionType
from ..schemas.job_schemas import JobResult
from ..schemas.predictive_schemas import CohortTarget
from ..services.batch_orchestrator import BatchOrchestrator

logger = logging.getLogger(__name__)


def _progress_reporter(task) -> Callable[[int, int], None]:
    def report(done: int, total: int):
        percent = round(done / total * 100, 2) if total else 100.0
        task.update_state(state="PROGRESS", meta={"current": done, "total": total, "progress": percent})
    return report


def _run_job(task, job: Callable[[BatchOrchestrator], Awaitable[JobResult]]) -> Dict[str, Any]:
    async def runner() -> JobResult:
        orchestrator = BatchOrchestrator(AsyncSessionLocal, progress=_progress_reporter(task))
        try:
            return await job(orchestrator)
        finally:
            # each asyncio.run gets a fresh loop; pooled connections must not outlive it
            await close_db_connections()

    result = asyncio.run(runner())
    if result.failed:
        logger.warning(f"{result.job_name}: {result.failed} of {result.total} items failed")
    return result.model_dump(mode="json")


def _targets(payload: List[Dict[str, Any]]) -> List[CohortTarget]:
    return [CohortTarget.model_validate(item) for item in payload]


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@celery_app.task(bind=True, name="generate-batch-predictions")
def generate_batch_predictions(self, targets: List[Dict[str, Any]], prediction_type: str = "performance"):
    return _run_job(self, lambda o: o.generate_batch_predictions(_targets(targets), PredictionType(prediction_type)))


@celery_app.task(bind=True, name="update-prediction-accuracies")
def update_prediction_accuracies(self, updates: List[Dict[str, Any]]):
    return _run_job(self, lambda o: o.update_prediction_accuracies(updates))


@celery_app.task(bind=True, name="assess-batch-dropout-risk")
def assess_batch_dropout_risk(self, targets: List[Dict[str, Any]]):
    return _run_job(self, lambda o: o.assess_batch_dropout_risk(_targets(targets)))


@celery_app.task(bind=True, name="monitor-high-risk-students")
def monitor_high_risk_students(self, course_id: Optional[str] = None):
    return _run_job(self, lambda o: o.monitor_high_risk_students(UUID(course_id) if course_id else None))


@celery_app.task(bind=True, name="execute-automated-intervention")
def execute_automated_intervention(self, intervention_id: str):
    return _run_job(self, lambda o: o.execute_automated_intervention(UUID(intervention_id)))


@celery_app.task(bind=True, name="schedule-intervention-reminders")
def schedule_intervention_reminders(self, reminder_date: Optional[str] = None):
    return _run_job(self, lambda o: o.schedule_intervention_reminders(_parse_date(reminder_date)))


@celery_app.task(bind=True, name="daily-analytics-generation")
def daily_analytics_generation(self, day: Optional[str] = None):
    return _run_job(self, lambda o: o.daily_analytics_generation(_parse_date(day)))


@celery_app.task(bind=True, name="weekly-trend-analysis")
def weekly_trend_analysis(self, week_end: Optional[str] = None):
    return _run_job(self, lambda o: o.weekly_trend_analysis(_parse_date(week_end)))


@celery_app.task(bind=True, name="model-accuracy-validation")
def model_accuracy_validation(self):
    return _run_job(self, lambda o: o.model_accuracy_validation(datetime.utcnow()))


@celery_app.task(bind=True, name="emergency-intervention-detection")
def emergency_intervention_detection(self):
    return _run_job(self, lambda o: o.emergency_intervention_detection())


@celery_app.task(bind=True, name="predictive-model-retraining")
def predictive_model_retraining(self, model_type: str = "performance"):
    return _run_job(self, lambda o: o.predictive_model_retraining(model_type))
