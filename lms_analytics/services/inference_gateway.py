# lms_analytics/services/inference_gateway.py

import logging
import httpx
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from pydantic import ValidationError as PydanticValidationError

from ..core.config_analytics import analytics_settings
from ..core.exceptions import InferenceServiceError
from ..core.performance_monitor import monitor_performance
from ..models.predictive import OutcomeType, PredictionType
from ..schemas.predictive_schemas import (
    ContributingFactors,
    ForecastBaseline,
    ForecastResult,
    InferenceResult,
)
from ..utils.scoring import clamp, classify_performance_level, classify_risk_level
from .learning_signal_service import LearningWindow

logger = logging.getLogger(__name__)

# Neutral value used by the fallback when a window carries no analytics
NEUTRAL_SIGNAL = 50.0


class FallbackSignals:
    """The handful of aggregates the rule-based estimators work from"""

    def __init__(self, window: LearningWindow):
        self.engagement = window.avg_engagement if window.avg_engagement is not None else NEUTRAL_SIGNAL
        self.performance = window.avg_score if window.avg_score is not None else NEUTRAL_SIGNAL
        self.activities = window.activity_count
        self.time_spent = window.total_time_spent

    @property
    def attendance_rate(self) -> float:
        return min(100.0, self.activities / analytics_settings.EXPECTED_ACTIVITIES * 100)


# Prediction estimators, one per prediction type

def _predict_performance(s: FallbackSignals) -> float:
    return s.engagement * 0.4 + s.performance * 0.6


def _predict_dropout_risk(s: FallbackSignals) -> float:
    return 100 - (s.engagement * 0.5 + s.performance * 0.3 + s.activities * 0.2)


def _predict_learning_outcome(s: FallbackSignals) -> float:
    return s.performance


def _predict_completion_time(s: FallbackSignals) -> float:
    return s.engagement * 0.5 + s.attendance_rate * 0.5


def _predict_resource_usage(s: FallbackSignals) -> float:
    return s.attendance_rate


PREDICTION_ESTIMATORS: Dict[PredictionType, Callable[[FallbackSignals], float]] = {
    PredictionType.PERFORMANCE: _predict_performance,
    PredictionType.DROPOUT_RISK: _predict_dropout_risk,
    PredictionType.LEARNING_OUTCOME: _predict_learning_outcome,
    PredictionType.COMPLETION_TIME: _predict_completion_time,
    PredictionType.RESOURCE_USAGE: _predict_resource_usage,
}


# Forecast estimators return (success probability, predicted score, estimated days)

def _forecast_course_completion(s: FallbackSignals):
    probability = min(95.0, s.engagement * 0.4 + s.performance * 0.4 + s.activities * 0.2)
    days = max(7, 45 - int(s.engagement // 5))
    return probability, 70.0, days


def _forecast_skill_mastery(s: FallbackSignals):
    probability = min(90.0, s.performance + s.engagement * 0.3)
    days = max(14, 60 - int(s.performance // 3))
    return probability, 70.0, days


def _forecast_assessment_score(s: FallbackSignals):
    score = min(100.0, s.performance + s.engagement * 0.2)
    probability = 80.0 if score > 70 else 60.0
    return probability, score, 30


def _forecast_general(s: FallbackSignals):
    return (s.engagement + s.performance) / 2, 70.0, 30


FORECAST_ESTIMATORS = {
    OutcomeType.COURSE_COMPLETION: _forecast_course_completion,
    OutcomeType.SKILL_MASTERY: _forecast_skill_mastery,
    OutcomeType.ASSESSMENT_SCORE: _forecast_assessment_score,
    OutcomeType.CERTIFICATION: _forecast_general,
    OutcomeType.TIME_TO_COMPLETION: _forecast_general,
    OutcomeType.KNOWLEDGE_RETENTION: _forecast_general,
}

if set(PREDICTION_ESTIMATORS) != set(PredictionType):
    raise RuntimeError("every prediction type needs an estimator")
if set(FORECAST_ESTIMATORS) != set(OutcomeType):
    raise RuntimeError("every outcome type needs an estimator")


def _skill_level(performance: float) -> str:
    if performance > 80:
        return "advanced"
    if performance > 60:
        return "intermediate"
    return "beginner"


class InferenceGateway:
    """Client for the external inference service with a deterministic fallback.

    ``predict`` and ``forecast`` always return a result. Any failure talking
    to the service (not configured, timeout, non-2xx, malformed body) is
    logged as a warning and answered by the rule-based estimators instead.
    Failed calls are never retried.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or analytics_settings.INFERENCE_URL or "").rstrip("/")
        self.api_key = api_key or analytics_settings.INFERENCE_API_KEY
        self.timeout = timeout or analytics_settings.INFERENCE_TIMEOUT
        self.transport = transport
        self.headers = {"Content-Type": "application/json"}
        if self.api_key:
            self.headers["Authorization"] = f"Bearer {self.api_key}"

    async def _make_request(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the inference service, raising InferenceServiceError on any failure"""
        if not self.base_url:
            raise InferenceServiceError("Inference service URL not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}{path}", headers=self.headers, json=payload)
                response.raise_for_status()
                return response.json()

        except httpx.TimeoutException:
            raise InferenceServiceError("Inference service timeout")
        except httpx.HTTPStatusError as e:
            raise InferenceServiceError(f"Inference service error: {e.response.status_code}")
        except httpx.HTTPError as e:
            raise InferenceServiceError(f"Inference service unreachable: {e}")
        except ValueError as e:
            raise InferenceServiceError(f"Invalid inference response: {e}")

    @monitor_performance("inference.predict")
    async def predict(self, window: LearningWindow, prediction_type: PredictionType) -> InferenceResult:
        payload = {
            "learningData": window.to_payload(),
            "predictionType": prediction_type.value,
            "modelVersion": analytics_settings.MODEL_VERSION,
        }
        try:
            data = await self._make_request("/predict/performance", payload)
            return InferenceResult.model_validate(data)
        except (InferenceServiceError, PydanticValidationError) as e:
            logger.warning(f"Prediction service unavailable, using rule-based fallback: {e}")
            return self.fallback_prediction(window, prediction_type)

    @monitor_performance("inference.forecast")
    async def forecast(
        self, window: LearningWindow, outcome_type: OutcomeType, target_date: datetime
    ) -> ForecastResult:
        payload = {
            "learningData": window.to_payload(),
            "outcomeType": outcome_type.value,
            "targetDate": target_date.isoformat(),
            "modelVersion": analytics_settings.MODEL_VERSION,
        }
        try:
            data = await self._make_request("/forecast/outcome", payload)
            return ForecastResult.model_validate(data)
        except (InferenceServiceError, PydanticValidationError) as e:
            logger.warning(f"Forecasting service unavailable, using rule-based fallback: {e}")
            return self.fallback_forecast(window, outcome_type)

    def fallback_prediction(self, window: LearningWindow, prediction_type: PredictionType) -> InferenceResult:
        signals = FallbackSignals(window)
        predicted_value = float(round(clamp(PREDICTION_ESTIMATORS[prediction_type](signals))))

        if prediction_type == PredictionType.DROPOUT_RISK:
            risk_level = classify_risk_level(predicted_value)
        else:
            risk_level = classify_performance_level(predicted_value)

        return InferenceResult(
            predicted_value=predicted_value,
            confidence_score=analytics_settings.FALLBACK_CONFIDENCE,
            risk_level=risk_level,
            contributing_factors=ContributingFactors(
                engagement_level=round(signals.engagement, 2),
                performance_history=round(signals.performance, 2),
                activity_level=signals.activities,
            ),
            model_version=analytics_settings.FALLBACK_MODEL_VERSION,
            model_metadata={"algorithm": "rule-based", "fallback": True},
        )

    def fallback_forecast(self, window: LearningWindow, outcome_type: OutcomeType) -> ForecastResult:
        signals = FallbackSignals(window)
        probability, score, days = FORECAST_ESTIMATORS[outcome_type](signals)

        return ForecastResult(
            success_probability=float(round(clamp(probability))),
            predicted_score=float(round(clamp(score))),
            estimated_days_to_completion=days,
            confidence_level=analytics_settings.FALLBACK_FORECAST_CONFIDENCE,
            baseline_data=ForecastBaseline(
                current_progress=round(signals.performance, 2),
                average_performance=round(signals.performance, 2),
                engagement_level=round(signals.engagement, 2),
                time_spent_learning=signals.time_spent,
                completed_activities=signals.activities,
                skill_level=_skill_level(signals.performance),
            ),
            model_version=analytics_settings.FALLBACK_MODEL_VERSION,
        )

    async def request_retraining(self, training_summary: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the inference service to retrain; reports 'unavailable' instead of failing"""
        try:
            data = await self._make_request("/models/retrain", training_summary)
            logger.info("Model retraining requested")
            return {"status": "requested", "response": data}
        except InferenceServiceError as e:
            logger.warning(f"Model retraining request failed: {e}")
            return {"status": "unavailable", "error": str(e)}


inference_gateway = InferenceGateway()
