"""Tests for the shared store operations on the predictive tables."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from lms_analytics.core.exceptions import NotFoundError
from lms_analytics.models.predictive import PredictionType, RiskLevel
from lms_analytics.services.performance_prediction_service import PerformancePredictionService


async def _create(service, student_id, predicted_value, days_ago=0, risk_level=RiskLevel.LOW):
    return await service.create({
        "student_id": student_id,
        "prediction_type": PredictionType.PERFORMANCE,
        "prediction_date": datetime.utcnow() - timedelta(days=days_ago),
        "predicted_value": predicted_value,
        "confidence_score": 80.0,
        "risk_level": risk_level,
        "model_version": "v2.1.0",
    })


async def test_get_multi_filters_and_orders(db, student_id) -> None:
    service = PerformancePredictionService(db)
    await _create(service, student_id, 60.0, days_ago=2)
    await _create(service, student_id, 70.0, days_ago=1, risk_level=RiskLevel.MEDIUM)
    await _create(service, uuid4(), 80.0)

    newest_first = await service.get_multi(student_id=student_id, order_by="prediction_date")
    oldest_first = await service.get_multi(student_id=student_id, order_by="prediction_date", sort="asc")
    medium = await service.get_multi(risk_level=RiskLevel.MEDIUM)

    assert [p.predicted_value for p in newest_first] == [70.0, 60.0]
    assert [p.predicted_value for p in oldest_first] == [60.0, 70.0]
    assert [p.predicted_value for p in medium] == [70.0]


async def test_update_unknown_id_is_not_found(db) -> None:
    with pytest.raises(NotFoundError):
        await PerformancePredictionService(db).update(uuid4(), {"predicted_value": 10.0})


async def test_update_changes_fields(db, student_id) -> None:
    service = PerformancePredictionService(db)
    prediction = await _create(service, student_id, 60.0)

    updated = await service.update(prediction.id, {"confidence_score": 55.0})

    assert updated.confidence_score == 55.0
    assert updated.predicted_value == 60.0


async def test_soft_deleted_rows_are_hidden_but_kept(db, student_id) -> None:
    service = PerformancePredictionService(db)
    prediction = await _create(service, student_id, 60.0)

    assert await service.soft_delete(prediction.id) is True
    assert await service.soft_delete(uuid4()) is False

    assert await service.get(prediction.id) is None
    assert await service.count(student_id=student_id) == 0
    assert await service.get_multi(student_id=student_id) == []
    kept = await service.get(prediction.id, include_deleted=True)
    assert kept is not None and kept.is_deleted is True
