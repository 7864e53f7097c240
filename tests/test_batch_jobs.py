"""Tests for the cohort batch jobs."""

from datetime import datetime, timedelta
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_learning_days, failing_gateway
from lms_analytics.models.predictive import (
    InterventionStatus,
    InterventionType,
    PredictionType,
    RiskLevel,
)
from lms_analytics.schemas.predictive_schemas import CohortTarget
from lms_analytics.services.batch_orchestrator import BatchOrchestrator
from lms_analytics.services.dropout_risk_service import DropoutRiskService
from lms_analytics.services.inference_gateway import InferenceGateway
from lms_analytics.services.intervention_service import InterventionService, RiskProfile
from lms_analytics.services.performance_prediction_service import PerformancePredictionService


def _orchestrator(session_factory, store, gateway=None, progress=None) -> BatchOrchestrator:
    return BatchOrchestrator(
        session_factory,
        signal_store_factory=lambda session: store,
        gateway=gateway or failing_gateway(),
        progress=progress,
    )


async def _assessment(db, student_id, days_ago, probability, level, priority):
    when = datetime.utcnow() - timedelta(days=days_ago)
    return await DropoutRiskService(db).create({
        "student_id": student_id,
        "assessment_date": when,
        "assessment_day": when.date(),
        "risk_level": level,
        "risk_probability": probability,
        "risk_factors": {},
        "intervention_required": level in (RiskLevel.HIGH, RiskLevel.VERY_HIGH),
        "intervention_priority": priority,
    })


async def test_failing_target_is_isolated(session_factory, store) -> None:
    targets = [CohortTarget(student_id=uuid4()) for _ in range(5)]
    store.failing[targets[2].student_id] = RuntimeError("corrupt analytics row")
    progress = []
    orchestrator = _orchestrator(session_factory, store, progress=lambda done, total: progress.append((done, total)))

    result = await orchestrator.generate_batch_predictions(targets)

    assert result.processed == 4
    assert result.total == 5
    assert result.failed == 1
    assert [r.status for r in result.results] == ["success", "success", "failed", "success", "success"]
    assert "corrupt analytics row" in result.results[2].error
    assert result.results[2].target == str(targets[2].student_id)
    assert progress[-1] == (5, 5)
    assert result.completed_at is not None


async def test_infrastructure_errors_abort_the_job(session_factory, store) -> None:
    targets = [CohortTarget(student_id=uuid4()) for _ in range(3)]
    store.failing[targets[1].student_id] = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(OperationalError):
        await _orchestrator(session_factory, store).assess_batch_dropout_risk(targets)


async def test_batch_risk_assessment(session_factory, store, course_id) -> None:
    medium, high = uuid4(), uuid4()
    add_learning_days(store, medium, course_id, engagement=40, score=55, time_spent=1200, activities=8)
    targets = [CohortTarget(student_id=medium, course_id=course_id), CohortTarget(student_id=high, course_id=course_id)]

    result = await _orchestrator(session_factory, store).assess_batch_dropout_risk(targets)

    assert result.processed == 2
    details = [r.detail for r in result.results]
    assert [d["risk_level"] for d in details] == ["medium", "high"]
    assert [d["intervention_required"] for d in details] == [False, True]


async def test_prediction_accuracy_updates(session_factory, db, store, student_id) -> None:
    prediction = await PerformancePredictionService(db).create({
        "student_id": student_id,
        "prediction_type": PredictionType.PERFORMANCE,
        "prediction_date": datetime.utcnow(),
        "predicted_value": 70.0,
        "confidence_score": 80.0,
        "risk_level": RiskLevel.LOW,
        "model_version": "v2.1.0",
    })

    result = await _orchestrator(session_factory, store).update_prediction_accuracies([
        {"prediction_id": str(prediction.id), "actual_value": 65},
        {"prediction_id": str(uuid4()), "actual_value": 65},
    ])

    assert result.processed == 1
    assert result.results[0].detail == {"accuracy_score": 95}
    assert result.results[1].status == "failed"


async def test_high_risk_monitoring_alerts_on_increase(session_factory, db, store) -> None:
    rising, steady = uuid4(), uuid4()
    await _assessment(db, rising, 3, 70, RiskLevel.HIGH, 8)
    await _assessment(db, rising, 1, 85, RiskLevel.VERY_HIGH, 10)
    await _assessment(db, steady, 1, 70, RiskLevel.HIGH, 8)

    result = await _orchestrator(session_factory, store).monitor_high_risk_students()

    assert result.total == 2
    assert [(a.kind, a.student_id) for a in result.alerts] == [("risk_increase", rising)]
    assert result.alerts[0].risk_level == RiskLevel.VERY_HIGH
    assert result.summary == {"monitored": 2, "alerts": 1}


async def test_emergency_detection(session_factory, db, store) -> None:
    urgent, serious, stale = uuid4(), uuid4(), uuid4()
    await _assessment(db, urgent, 1, 88, RiskLevel.VERY_HIGH, 10)
    await _assessment(db, serious, 1, 70, RiskLevel.HIGH, 8)
    await _assessment(db, stale, 20, 92, RiskLevel.VERY_HIGH, 10)

    result = await _orchestrator(session_factory, store).emergency_intervention_detection()

    assert [(a.kind, a.student_id, a.priority) for a in result.alerts] == [("emergency", urgent, 10)]
    assert result.summary == {"emergency_students": 1, "total_high_risk": 2}


async def test_automated_intervention_job(session_factory, db, store, student_id) -> None:
    created = await InterventionService(db, store).generate_for_profile(RiskProfile(
        student_id=student_id, risk_level=RiskLevel.HIGH, academic_risk=80, engagement_risk=0,
    ))
    review = next(i for i in created if i.intervention_type == InterventionType.CONTENT_REVIEW)

    result = await _orchestrator(session_factory, store).execute_automated_intervention(review.id)
    missing = await _orchestrator(session_factory, store).execute_automated_intervention(uuid4())

    assert result.results[0].detail == {"status": "completed", "effectiveness_score": 75}
    assert missing.processed == 0 and missing.failed == 1


async def test_reminders_for_scheduled_interventions(session_factory, db, store, student_id) -> None:
    service = InterventionService(db, store)
    created = await service.generate_for_profile(RiskProfile(
        student_id=student_id, risk_level=RiskLevel.HIGH, academic_risk=80, engagement_risk=0,
    ))
    tomorrow = (datetime.utcnow() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
    await service.schedule_intervention(created[0].id, tomorrow, assigned_to_id=uuid4())

    result = await _orchestrator(session_factory, store).schedule_intervention_reminders(tomorrow.date())

    assert [r.intervention_id for r in result.reminders] == [created[0].id]
    assert result.reminders[0].scheduled_date == tomorrow
    assert result.processed == 1


async def test_daily_generation_covers_active_students(session_factory, db, store, course_id) -> None:
    students = [uuid4(), uuid4()]
    for student in students:
        add_learning_days(store, student, course_id)
    add_learning_days(store, uuid4(), course_id, days=1, today=datetime.utcnow().date() - timedelta(days=60))

    result = await _orchestrator(session_factory, store).daily_analytics_generation()

    assert result.total == 2 and result.processed == 2
    assert await PerformancePredictionService(db).count() == 2
    assert await DropoutRiskService(db).count() == 2


async def test_weekly_trend_refreshes_declining_students(session_factory, db, store) -> None:
    declining, stable = uuid4(), uuid4()
    add_learning_days(store, declining, days=3)
    add_learning_days(store, stable, days=3)
    predictions = PerformancePredictionService(db)
    now = datetime.utcnow()
    for offset, (falling, flat) in enumerate(zip([90, 80, 70, 60], [70, 70, 70, 70])):
        for student, value in ((declining, falling), (stable, flat)):
            await predictions.create({
                "student_id": student,
                "prediction_type": PredictionType.PERFORMANCE,
                "prediction_date": now - timedelta(days=5 - offset),
                "predicted_value": float(value),
                "confidence_score": 80.0,
                "risk_level": RiskLevel.LOW,
                "model_version": "v2.1.0",
            })

    result = await _orchestrator(session_factory, store).weekly_trend_analysis()

    refreshed = {r.target: r.detail["refreshed"] for r in result.results}
    assert refreshed == {str(declining): True, str(stable): False}
    assert await predictions.count(student_id=declining) == 5
    assert await predictions.count(student_id=stable) == 4


async def test_model_accuracy_validation(session_factory, db, store, student_id) -> None:
    past = datetime.utcnow() - timedelta(days=3)
    await PerformancePredictionService(db).create({
        "student_id": student_id,
        "prediction_type": PredictionType.PERFORMANCE,
        "prediction_date": past - timedelta(days=30),
        "target_date": past,
        "predicted_value": 70.0,
        "confidence_score": 80.0,
        "risk_level": RiskLevel.LOW,
        "model_version": "v2.1.0",
    })
    add_learning_days(store, student_id, days=1, score=65, today=past.date())

    result = await _orchestrator(session_factory, store).model_accuracy_validation()

    assert result.processed == 1 and result.total == 1
    assert result.summary["accuracy_metrics"]["overall_accuracy"] == 95


async def test_retraining_request(session_factory, store) -> None:
    gateway = InferenceGateway(
        base_url="http://inference.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(202, json={"jobId": "retrain-7"})),
    )

    requested = await _orchestrator(session_factory, store, gateway=gateway).predictive_model_retraining()
    unavailable = await _orchestrator(session_factory, store).predictive_model_retraining()

    assert requested.processed == 1
    assert requested.summary["retraining"]["status"] == "requested"
    assert unavailable.processed == 0
    assert unavailable.summary["retraining"]["status"] == "unavailable"
    assert unavailable.summary["accuracy_metrics"]["validated_predictions"] == 0


async def test_recovered_students_raise_no_alerts(session_factory, db, store) -> None:
    recovered, stale = uuid4(), uuid4()
    await _assessment(db, recovered, 3, 70, RiskLevel.HIGH, 8)
    await _assessment(db, recovered, 2, 88, RiskLevel.VERY_HIGH, 10)
    await _assessment(db, recovered, 0, 20, RiskLevel.VERY_LOW, 1)
    await _assessment(db, stale, 40, 60, RiskLevel.HIGH, 8)
    await _assessment(db, stale, 30, 85, RiskLevel.VERY_HIGH, 10)

    emergency = await _orchestrator(session_factory, store).emergency_intervention_detection()
    monitoring = await _orchestrator(session_factory, store).monitor_high_risk_students()

    assert emergency.alerts == []
    assert emergency.summary == {"emergency_students": 0, "total_high_risk": 0}
    assert monitoring.alerts == []
    assert monitoring.summary == {"monitored": 0, "alerts": 0}
