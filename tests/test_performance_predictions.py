"""Tests for stored performance predictions and their validation."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest

from conftest import add_learning_days
from lms_analytics.core.exceptions import AlreadyValidatedError, NotFoundError, ValidationError
from lms_analytics.models.learning_signal import LearningActivity, LearningAnalytics
from lms_analytics.models.predictive import PredictionType, RiskLevel
from lms_analytics.schemas.predictive_schemas import TrendDirection
from lms_analytics.services.learning_signal_service import SignalOutcomeSource, SqlLearningSignalStore
from lms_analytics.services.performance_prediction_service import PerformancePredictionService


async def _stored_prediction(service, student_id, predicted_value=70.0, **overrides):
    now = datetime.utcnow()
    values = {
        "student_id": student_id,
        "prediction_type": PredictionType.PERFORMANCE,
        "prediction_date": now,
        "target_date": now + timedelta(days=30),
        "predicted_value": predicted_value,
        "confidence_score": 80.0,
        "risk_level": RiskLevel.LOW,
        "model_version": "v2.1.0",
    }
    values.update(overrides)
    return await service.create(values)


async def test_generate_prediction_stores_fallback_result(db, store, gateway, student_id, course_id) -> None:
    add_learning_days(store, student_id, course_id, engagement=40, score=55)
    service = PerformancePredictionService(db, store, gateway)

    prediction = await service.generate_prediction(student_id, course_id)

    assert prediction.predicted_value == 49
    assert prediction.model_version == "rule-based-v1.0"
    assert prediction.is_validated is False
    assert (prediction.target_date - prediction.prediction_date).days == 30
    assert prediction.contributing_factors["engagement_level"] == 40


async def test_validation_scores_accuracy(db, student_id) -> None:
    service = PerformancePredictionService(db)
    close = await _stored_prediction(service, student_id, 70)
    far = await _stored_prediction(service, student_id, 70)

    assert (await service.validate_prediction(close.id, 65)).accuracy_score == 95
    validated = await service.validate_prediction(far.id, 0)

    assert validated.accuracy_score == 30
    assert validated.is_validated is True
    assert validated.validated_at is not None


async def test_revalidation_is_idempotent(db, student_id) -> None:
    service = PerformancePredictionService(db)
    prediction = await _stored_prediction(service, student_id, 70)

    first = await service.validate_prediction(prediction.id, 65)
    validated_at = first.validated_at
    again = await service.validate_prediction(prediction.id, 65)

    assert again.validated_at == validated_at
    with pytest.raises(AlreadyValidatedError):
        await service.validate_prediction(prediction.id, 80)

    corrected = await service.validate_prediction(prediction.id, 80, correction=True)
    assert corrected.accuracy_score == 90


async def test_validation_rejects_out_of_range_and_unknown(db, student_id) -> None:
    service = PerformancePredictionService(db)
    prediction = await _stored_prediction(service, student_id)

    with pytest.raises(ValidationError):
        await service.validate_prediction(prediction.id, 101)
    with pytest.raises(NotFoundError):
        await service.validate_prediction(uuid4(), 50)


async def test_find_predictions_filters(db, student_id) -> None:
    service = PerformancePredictionService(db)
    await _stored_prediction(service, student_id, 70, confidence_score=90.0)
    await _stored_prediction(service, student_id, 40, risk_level=RiskLevel.VERY_HIGH, confidence_score=60.0)
    await _stored_prediction(service, uuid4(), 55)

    assert len(await service.find_predictions(student_id=student_id)) == 2
    assert len(await service.find_predictions(student_id=student_id, min_confidence=75)) == 1
    high = await service.find_predictions(risk_level=RiskLevel.VERY_HIGH)
    assert [p.predicted_value for p in high] == [40]


async def test_performance_trends(db, student_id) -> None:
    service = PerformancePredictionService(db)
    now = datetime.utcnow()
    for offset, value in enumerate([50, 60, 70, 80]):
        await _stored_prediction(
            service, student_id, value, prediction_date=now - timedelta(days=4 - offset), confidence_score=80.0
        )

    trends = await service.get_performance_trends(student_id, days=30)

    assert trends.trend.direction == TrendDirection.IMPROVING
    assert trends.total_predictions == 4
    assert trends.average_confidence == 80
    assert trends.risk_distribution["low"] == 100
    assert set(trends.risk_distribution) == {level.value for level in RiskLevel}


async def test_trends_without_predictions(db, student_id) -> None:
    trends = await PerformancePredictionService(db).get_performance_trends(student_id)

    assert trends.trend.direction == TrendDirection.INSUFFICIENT_DATA
    assert trends.average_confidence == 0
    assert all(share == 0 for share in trends.risk_distribution.values())


async def test_due_predictions_validated_from_outcomes(db, store, student_id) -> None:
    service = PerformancePredictionService(db, store)
    past = datetime.utcnow() - timedelta(days=2)
    observable = await _stored_prediction(service, student_id, 70, target_date=past)
    unobservable = await _stored_prediction(
        service, student_id, 70, target_date=past, prediction_type=PredictionType.COMPLETION_TIME
    )
    await _stored_prediction(service, student_id, 70)
    add_learning_days(store, student_id, days=1, score=65, today=past.date())

    sweep = await service.validate_due_predictions(SignalOutcomeSource(store))

    assert sweep == {"total": 2, "validated": 1, "skipped": 1, "failed": 0}
    assert (await service.get(observable.id)).accuracy_score == 95
    assert (await service.get(unobservable.id)).is_validated is False

    metrics = await service.accuracy_metrics()
    assert metrics["validated_predictions"] == 1
    assert metrics["overall_accuracy"] == 95
    assert metrics["by_type"] == {"performance": {"accuracy": 95, "count": 1}}


async def test_accuracy_metrics_without_validations(db) -> None:
    metrics = await PerformancePredictionService(db).accuracy_metrics()

    assert metrics == {"validated_predictions": 0, "overall_accuracy": None, "by_type": {}}


async def test_sql_signal_store_answers_outcomes(db, student_id, course_id) -> None:
    target = datetime.utcnow() - timedelta(days=5)
    db.add_all([
        LearningAnalytics(
            student_id=student_id, course_id=course_id, date=target.date(),
            engagement_score=60, average_score=None, total_time_spent=900, session_count=1,
        ),
        LearningAnalytics(
            student_id=student_id, course_id=course_id, date=target.date() + timedelta(days=1),
            engagement_score=65, average_score=72, total_time_spent=1800, session_count=2,
        ),
        LearningActivity(
            student_id=student_id, course_id=course_id, activity_type="quiz_attempt",
            occurred_at=target + timedelta(days=2), duration_seconds=300,
        ),
    ])
    await db.commit()
    store = SqlLearningSignalStore(db)
    service = PerformancePredictionService(db, store)

    performance = await _stored_prediction(service, student_id, 70, course_id=course_id, target_date=target)
    dropout = await _stored_prediction(
        service, student_id, 30, course_id=course_id, target_date=target,
        prediction_type=PredictionType.DROPOUT_RISK,
    )
    outcomes = SignalOutcomeSource(store)

    assert await outcomes.actual_value(performance) == 72
    assert await outcomes.actual_value(dropout) == 0
    targets = await store.list_active_targets(date.today() - timedelta(days=30))
    assert [(t.student_id, t.course_id) for t in targets] == [(student_id, course_id)]
    assert len(await store.get_activities(student_id, course_id, target)) == 1


async def test_latest_prediction_by_type(db, student_id) -> None:
    service = PerformancePredictionService(db)
    now = datetime.utcnow()
    await _stored_prediction(service, student_id, 60.0, prediction_date=now - timedelta(days=2))
    await _stored_prediction(service, student_id, 65.0, prediction_date=now - timedelta(days=1))
    await _stored_prediction(
        service, student_id, 20.0, prediction_type=PredictionType.DROPOUT_RISK, prediction_date=now
    )

    latest_any = await service.get_latest_prediction(student_id)
    latest_performance = await service.get_latest_prediction(student_id, prediction_type=PredictionType.PERFORMANCE)

    assert latest_any.predicted_value == 20.0
    assert latest_performance.predicted_value == 65.0
    assert await service.get_latest_prediction(uuid4()) is None


async def test_trends_keep_prediction_types_and_courses_apart(db, student_id, course_id) -> None:
    service = PerformancePredictionService(db)
    now = datetime.utcnow()
    for offset in range(4):
        await _stored_prediction(service, student_id, 80.0, prediction_date=now - timedelta(days=8 - 2 * offset))
        await _stored_prediction(
            service, student_id, 20.0, prediction_type=PredictionType.DROPOUT_RISK,
            prediction_date=now - timedelta(days=7 - 2 * offset),
        )
    await _stored_prediction(service, student_id, 80.0, course_id=course_id, prediction_date=now)

    performance = await service.get_performance_trends(student_id)
    dropout = await service.get_performance_trends(student_id, prediction_type=PredictionType.DROPOUT_RISK)
    in_course = await service.get_performance_trends(student_id, course_id=course_id)

    assert performance.trend.direction == TrendDirection.STABLE
    assert performance.trend.slope == 0
    assert performance.total_predictions == 5
    assert dropout.trend.direction == TrendDirection.STABLE
    assert dropout.total_predictions == 4
    assert in_course.total_predictions == 1
