# lms_analytics/utils/scoring.py
"""Shared helpers for 0-100 scores and risk level classification."""
from ..core.config_analytics import analytics_settings
from ..models.predictive import RiskLevel


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def classify_risk_level(probability: float) -> RiskLevel:
    """Map a risk probability to a level; each threshold is an inclusive lower bound"""
    if probability >= analytics_settings.VERY_HIGH_RISK_THRESHOLD:
        return RiskLevel.VERY_HIGH
    if probability >= analytics_settings.HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if probability >= analytics_settings.MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    if probability >= analytics_settings.LOW_RISK_THRESHOLD:
        return RiskLevel.LOW
    return RiskLevel.VERY_LOW


def classify_performance_level(value: float) -> RiskLevel:
    """Risk implied by a predicted performance value; a higher value is safer"""
    if value >= 80:
        return RiskLevel.VERY_LOW
    if value >= 70:
        return RiskLevel.LOW
    if value >= 60:
        return RiskLevel.MEDIUM
    if value >= 50:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def accuracy_score(predicted: float, actual: float) -> float:
    return max(0.0, 100.0 - abs(predicted - actual))
