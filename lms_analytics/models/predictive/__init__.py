from .performance_prediction import (
    PerformancePrediction, PredictionType, RiskLevel, InterventionType, HIGH_RISK_LEVELS
)
from .dropout_risk_assessment import DropoutRiskAssessment
from .learning_outcome_forecast import LearningOutcomeForecast, OutcomeType
from .intervention_recommendation import (
    InterventionRecommendation, InterventionStatus, InterventionOutcome, OPEN_INTERVENTION_STATUSES
)
from .resource_optimization import ResourceOptimization, ResourceType
