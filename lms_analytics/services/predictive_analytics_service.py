# lms_analytics/services/predictive_analytics_service.py
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..models.predictive import (
    DropoutRiskAssessment,
    InterventionRecommendation,
    OutcomeType,
    RiskLevel,
)
from ..utils.serialization import entity_to_dict
from .dropout_risk_service import DropoutRiskService
from .inference_gateway import InferenceGateway
from .intervention_service import InterventionService
from .learning_outcome_forecast_service import LearningOutcomeForecastService
from .learning_signal_service import LearningSignalStore, SqlLearningSignalStore
from .performance_prediction_service import PerformancePredictionService

logger = logging.getLogger(__name__)

COMPLETION_FORECAST_DAYS = 60


class PredictiveAnalyticsService:
    """Runs prediction, risk assessment, forecasting and intervention planning for one student"""

    def __init__(
        self,
        db: AsyncSession,
        signal_store: Optional[LearningSignalStore] = None,
        gateway: Optional[InferenceGateway] = None,
    ):
        self.db = db
        signal_store = signal_store or SqlLearningSignalStore(db)
        self.predictions = PerformancePredictionService(db, signal_store, gateway)
        self.risk = DropoutRiskService(db, signal_store)
        self.forecasts = LearningOutcomeForecastService(db, signal_store, gateway)
        self.interventions = InterventionService(db, signal_store)

    async def run_comprehensive_analysis(
        self, student_id: UUID, course_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        logger.info(f"Running comprehensive analysis for student {student_id}")

        prediction = await self.predictions.generate_prediction(student_id, course_id)
        assessment = await self.risk.assess_dropout_risk(student_id, course_id)

        forecast = None
        if course_id:
            forecast = await self.forecasts.generate_forecast(
                student_id,
                course_id,
                OutcomeType.COURSE_COMPLETION,
                datetime.utcnow() + timedelta(days=COMPLETION_FORECAST_DAYS),
            )

        interventions: List[InterventionRecommendation] = []
        if assessment.intervention_required:
            interventions = await self.interventions.generate_from_assessment(assessment.id)

        return {
            "student_id": str(student_id),
            "course_id": str(course_id) if course_id else None,
            "analysis_date": datetime.utcnow().isoformat(),
            "results": {
                "performance_prediction": entity_to_dict(prediction),
                "dropout_assessment": entity_to_dict(assessment),
                "learning_forecast": entity_to_dict(forecast),
                "interventions": [entity_to_dict(i) for i in interventions],
            },
            "summary": {
                "overall_risk": assessment.risk_level.value,
                "predicted_outcome": forecast.success_probability if forecast else None,
                "interventions_recommended": len(interventions),
                "confidence": prediction.confidence_score,
            },
            "next_steps": next_steps(assessment, interventions),
        }


def next_steps(assessment: DropoutRiskAssessment, interventions: List[InterventionRecommendation]) -> List[str]:
    steps = []

    if assessment.intervention_required:
        steps.append("Review and approve recommended interventions")
        if any(i.priority >= analytics_settings.URGENT_PRIORITY_THRESHOLD for i in interventions):
            steps.append("Schedule high-priority interventions within 48 hours")

    if assessment.risk_level == RiskLevel.VERY_HIGH:
        steps.append("Contact student immediately")
        steps.append("Involve academic advisor or counselor")

    steps.append("Monitor progress and reassess in 1 week")
    return steps
