# lms_analytics/core/config_analytics.py
from pydantic import model_validator
from pydantic_settings import BaseSettings
from typing import Dict, Optional


class AnalyticsSettings(BaseSettings):
    # Inference service
    INFERENCE_URL: Optional[str] = None
    INFERENCE_API_KEY: Optional[str] = None
    INFERENCE_TIMEOUT: float = 30.0
    MODEL_VERSION: str = "v2.1.0"
    FALLBACK_MODEL_VERSION: str = "rule-based-v1.0"
    FALLBACK_CONFIDENCE: float = 70.0
    FALLBACK_FORECAST_CONFIDENCE: float = 65.0

    # Data windows (days)
    RISK_WINDOW_DAYS: int = 30
    FORECAST_WINDOW_DAYS: int = 60
    PREDICTION_WINDOW_DAYS: int = 90
    TREND_WINDOW_DAYS: int = 30
    WEEKLY_TREND_DAYS: int = 7
    METRICS_WINDOW_DAYS: int = 30

    # Risk scoring
    EXPECTED_ACTIVITIES: int = 20
    RISK_WEIGHTS: Dict[str, float] = {
        "academic_performance": 0.30,
        "engagement_level": 0.25,
        "attendance_pattern": 0.25,
        "time_management": 0.20,
    }
    VERY_HIGH_RISK_THRESHOLD: float = 80.0
    HIGH_RISK_THRESHOLD: float = 65.0
    MEDIUM_RISK_THRESHOLD: float = 50.0
    LOW_RISK_THRESHOLD: float = 30.0
    SHORT_SESSION_SECONDS: int = 1800
    LONG_SESSION_SECONDS: int = 3600
    MAX_SESSION_VARIATION: float = 0.5

    # Predictions and interventions
    PREDICTION_HORIZON_DAYS: int = 30
    FOLLOW_UP_DAYS: int = 7
    FOLLOW_UP_EFFECTIVENESS_THRESHOLD: float = 70.0
    NEXT_ASSESSMENT_DAYS: int = 7
    EMERGENCY_PRIORITY_THRESHOLD: int = 9
    URGENT_PRIORITY_THRESHOLD: int = 8
    DECLINE_SLOPE_TRIGGER: float = -5.0
    AUTOMATED_EFFECTIVENESS_SCORE: float = 75.0

    # Monitoring
    SLOW_OPERATION_SECONDS: float = 10.0
    DASHBOARD_CACHE_TTL: int = 300  # 5 minutes

    model_config = {
        'env_prefix': 'ANALYTICS_',
        'env_file': '.env',
        'extra': 'ignore'
    }

    @model_validator(mode="after")
    def check_risk_weights(self):
        total = sum(self.RISK_WEIGHTS.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"RISK_WEIGHTS must sum to 1.0, got {total}")
        return self

analytics_settings = AnalyticsSettings()
