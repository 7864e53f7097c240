"""Tests for the inference client and its rule-based fallback."""

import json

import httpx
import pytest

from conftest import add_learning_days
from lms_analytics.models.predictive import OutcomeType, PredictionType, RiskLevel
from lms_analytics.services.inference_gateway import FORECAST_ESTIMATORS, PREDICTION_ESTIMATORS, InferenceGateway
from lms_analytics.services.learning_signal_service import collect_learning_window


def _gateway(handler) -> InferenceGateway:
    return InferenceGateway(base_url="http://inference.test", api_key="secret", transport=httpx.MockTransport(handler))


async def test_server_error_falls_back_to_rule_based(store, student_id) -> None:
    add_learning_days(store, student_id, engagement=40, score=55)
    window = await collect_learning_window(store, student_id, None, 90)
    gateway = _gateway(lambda request: httpx.Response(500))

    result = await gateway.predict(window, PredictionType.PERFORMANCE)

    assert result.model_version == "rule-based-v1.0"
    assert result.predicted_value == 49
    assert result.confidence_score == 70
    assert result.risk_level == RiskLevel.VERY_HIGH
    assert result.model_metadata == {"algorithm": "rule-based", "fallback": True}
    assert result.contributing_factors.engagement_level == 40


async def test_camel_case_response_is_accepted(store, student_id) -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "predictedValue": 82,
            "confidenceScore": 88,
            "riskLevel": "low",
            "contributingFactors": {"engagementLevel": 75, "performanceHistory": 80, "attendanceRate": 90},
            "modelVersion": "v2.1.0",
        })

    window = await collect_learning_window(store, student_id, None, 90)

    result = await _gateway(handler).predict(window, PredictionType.PERFORMANCE)

    assert result.predicted_value == 82
    assert result.risk_level == RiskLevel.LOW
    assert result.contributing_factors.engagement_level == 75
    assert result.model_version == "v2.1.0"
    assert captured["auth"] == "Bearer secret"
    assert captured["body"]["predictionType"] == "performance"
    assert captured["body"]["learningData"]["studentId"] == str(student_id)


async def test_out_of_range_response_falls_back(store, student_id) -> None:
    window = await collect_learning_window(store, student_id, None, 90)
    gateway = _gateway(lambda request: httpx.Response(200, json={
        "predictedValue": 150, "confidenceScore": 90, "riskLevel": "low", "modelVersion": "v2.1.0",
    }))

    result = await gateway.predict(window, PredictionType.PERFORMANCE)

    assert result.model_version == "rule-based-v1.0"


async def test_timeout_falls_back(store, student_id) -> None:
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    window = await collect_learning_window(store, student_id, None, 90)

    result = await _gateway(handler).forecast(window, OutcomeType.SKILL_MASTERY, window.end_date)

    assert result.model_version == "rule-based-v1.0"
    assert result.confidence_level == 65


async def test_unconfigured_gateway_uses_fallback(store, student_id) -> None:
    window = await collect_learning_window(store, student_id, None, 90)

    result = await InferenceGateway(base_url="").predict(window, PredictionType.DROPOUT_RISK)

    assert result.model_version == "rule-based-v1.0"
    # 100 - (50 * 0.5 + 50 * 0.3 + 0) with neutral signals
    assert result.predicted_value == 60
    assert result.risk_level == RiskLevel.MEDIUM


def test_estimator_tables_cover_every_type() -> None:
    assert set(PREDICTION_ESTIMATORS) == set(PredictionType)
    assert set(FORECAST_ESTIMATORS) == set(OutcomeType)


@pytest.mark.parametrize("prediction_type", list(PredictionType))
async def test_every_prediction_type_has_a_bounded_fallback(store, student_id, prediction_type) -> None:
    add_learning_days(store, student_id, engagement=100, score=100, activities=40)
    window = await collect_learning_window(store, student_id, None, 90)

    result = InferenceGateway(base_url="").fallback_prediction(window, prediction_type)

    assert 0 <= result.predicted_value <= 100


@pytest.mark.parametrize("outcome_type", list(OutcomeType))
async def test_every_outcome_type_has_a_fallback_forecast(store, student_id, outcome_type) -> None:
    add_learning_days(store, student_id, engagement=70, score=85)
    window = await collect_learning_window(store, student_id, None, 60)

    result = InferenceGateway(base_url="").fallback_forecast(window, outcome_type)

    assert 0 <= result.success_probability <= 100
    assert result.baseline_data.skill_level == "advanced"


async def test_retraining_reports_unavailable_service() -> None:
    outcome = await _gateway(lambda request: httpx.Response(503)).request_retraining({"modelType": "performance"})

    assert outcome["status"] == "unavailable"


async def test_retraining_request_is_sent() -> None:
    outcome = await _gateway(lambda request: httpx.Response(202, json={"jobId": "retrain-1"})).request_retraining(
        {"modelType": "performance"}
    )

    assert outcome == {"status": "requested", "response": {"jobId": "retrain-1"}}
