# lms_analytics/models/__init__.py
"""Import all models here so Alembic sees every table."""
from .base import Base

# Upstream, read-only
from .learning_signal import LearningAnalytics, LearningActivity

# Predictive analytics
from .predictive import (
    PerformancePrediction,
    DropoutRiskAssessment,
    LearningOutcomeForecast,
    InterventionRecommendation,
    ResourceOptimization,
)

__all__ = [
    "Base",
    "LearningAnalytics",
    "LearningActivity",
    "PerformancePrediction",
    "DropoutRiskAssessment",
    "LearningOutcomeForecast",
    "InterventionRecommendation",
    "ResourceOptimization",
]
