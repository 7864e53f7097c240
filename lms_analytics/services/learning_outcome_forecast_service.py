# lms_analytics/services/learning_outcome_forecast_service.py
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..core.exceptions import AlreadyValidatedError, PreconditionError, ValidationError
from ..models.predictive import LearningOutcomeForecast, OutcomeType
from ..schemas.predictive_schemas import (
    ForecastAccuracy,
    ForecastScenario,
    ForecastScenarios,
    ForecastSummary,
)
from .base_service import BaseService
from .inference_gateway import InferenceGateway, inference_gateway
from .learning_signal_service import LearningSignalStore, SqlLearningSignalStore, collect_learning_window

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_DAYS = 30


def build_scenarios(success_probability: float, estimated_days: Optional[int]) -> ForecastScenarios:
    """Optimistic, realistic and pessimistic variants around a success probability.

    The optimistic case adds 15 points capped at 95 and the pessimistic case
    removes 20 points floored at 20. Neither bound may cross the realistic
    probability, so the three stay ordered.
    """
    realistic = success_probability
    optimistic = max(realistic, min(95.0, realistic + 15))
    pessimistic = min(realistic, max(20.0, realistic - 20))
    days = estimated_days if estimated_days is not None else DEFAULT_ESTIMATED_DAYS

    return ForecastScenarios(
        optimistic=ForecastScenario(
            probability=optimistic,
            outcome="Excellent completion with high scores",
            timeframe=max(1, days - 10),
            conditions=["Maintains current engagement", "No major obstacles"],
        ),
        realistic=ForecastScenario(
            probability=realistic,
            outcome="Successful completion with good understanding",
            timeframe=days,
            conditions=["Current progress continues", "Normal study conditions"],
        ),
        pessimistic=ForecastScenario(
            probability=pessimistic,
            outcome="Completion with basic understanding",
            timeframe=days + 15,
            conditions=["Reduced engagement", "Additional support needed"],
        ),
    )


def forecast_accuracy(
    success_probability: float,
    target_date: datetime,
    actual_outcome: float,
    actual_completion_date: Optional[datetime] = None,
) -> ForecastAccuracy:
    outcome_accuracy = 100 - abs(success_probability - actual_outcome)

    if actual_completion_date:
        # fractional days, early and late alike
        days_off = abs(actual_completion_date - target_date).total_seconds() / 86400
        time_accuracy = max(0.0, 100.0 - days_off)
    else:
        time_accuracy = 100.0

    return ForecastAccuracy(
        outcome_accuracy=round(outcome_accuracy, 2),
        time_accuracy=round(time_accuracy, 2),
        overall_accuracy=round((outcome_accuracy + time_accuracy) / 2, 2),
        error_margin=round(abs(success_probability - actual_outcome), 2),
    )


class LearningOutcomeForecastService(BaseService[LearningOutcomeForecast]):
    resource_name = "Learning outcome forecast"

    def __init__(
        self,
        db: AsyncSession,
        signal_store: Optional[LearningSignalStore] = None,
        gateway: Optional[InferenceGateway] = None,
    ):
        super().__init__(LearningOutcomeForecast, db)
        self.signal_store = signal_store or SqlLearningSignalStore(db)
        self.gateway = gateway or inference_gateway

    async def generate_forecast(
        self,
        student_id: UUID,
        course_id: Optional[UUID],
        outcome_type: OutcomeType,
        target_date: datetime,
    ) -> LearningOutcomeForecast:
        logger.info(f"Generating {outcome_type.value} forecast for student {student_id}")

        window = await collect_learning_window(
            self.signal_store, student_id, course_id, analytics_settings.FORECAST_WINDOW_DAYS
        )
        result = await self.gateway.forecast(window, outcome_type, target_date)
        scenarios = build_scenarios(result.success_probability, result.estimated_days_to_completion)

        forecast = await self.create({
            "student_id": student_id,
            "course_id": course_id,
            "outcome_type": outcome_type,
            "forecast_date": datetime.utcnow(),
            "target_date": target_date,
            "success_probability": result.success_probability,
            "predicted_score": result.predicted_score,
            "estimated_days_to_completion": result.estimated_days_to_completion,
            "scenarios": scenarios.model_dump(mode="json"),
            "confidence_level": result.confidence_level,
            "baseline_data": result.baseline_data.model_dump(mode="json") if result.baseline_data else None,
            "model_version": result.model_version,
        })

        logger.info(f"Created forecast {forecast.id} for student {student_id}")
        return forecast

    async def validate_forecast(
        self,
        forecast_id: UUID,
        actual_outcome: float,
        actual_completion_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> LearningOutcomeForecast:
        """Reconcile a forecast with what actually happened.

        Allowed once the target date has passed, or earlier when the outcome
        already completed. A realized forecast accepts the identical outcome
        again as a no-op and rejects a different one.
        """
        if not 0 <= actual_outcome <= 100:
            raise ValidationError("actual_outcome must be between 0 and 100", field="actual_outcome")

        forecast = await self.get_or_404(forecast_id)

        if forecast.is_realized:
            if (
                forecast.actual_outcome == actual_outcome
                and forecast.actual_completion_date == actual_completion_date
            ):
                return forecast
            raise AlreadyValidatedError(self.resource_name, forecast_id)

        now = now or datetime.utcnow()
        if forecast.target_date > now and actual_completion_date is None:
            raise PreconditionError(
                f"Forecast {forecast_id} cannot be validated before its target date {forecast.target_date.date()}"
            )

        accuracy = forecast_accuracy(
            forecast.success_probability, forecast.target_date, actual_outcome, actual_completion_date
        )

        forecast.actual_outcome = actual_outcome
        forecast.actual_completion_date = actual_completion_date
        forecast.accuracy_metrics = accuracy.model_dump(mode="json")
        forecast.is_realized = True
        forecast.realized_at = now

        await self.db.commit()
        await self.db.refresh(forecast)

        logger.info(f"Validated forecast {forecast_id} with overall accuracy {accuracy.overall_accuracy}")
        return forecast

    async def find_forecasts(
        self,
        student_id: Optional[UUID] = None,
        course_id: Optional[UUID] = None,
        outcome_type: Optional[OutcomeType] = None,
        is_realized: Optional[bool] = None,
        target_before: Optional[datetime] = None,
        target_after: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[LearningOutcomeForecast]:
        conditions = [LearningOutcomeForecast.is_deleted == False]

        if student_id:
            conditions.append(LearningOutcomeForecast.student_id == student_id)
        if course_id:
            conditions.append(LearningOutcomeForecast.course_id == course_id)
        if outcome_type:
            conditions.append(LearningOutcomeForecast.outcome_type == outcome_type)
        if is_realized is not None:
            conditions.append(LearningOutcomeForecast.is_realized == is_realized)
        if target_before:
            conditions.append(LearningOutcomeForecast.target_date <= target_before)
        if target_after:
            conditions.append(LearningOutcomeForecast.target_date > target_after)

        stmt = (
            select(LearningOutcomeForecast)
            .where(and_(*conditions))
            .order_by(LearningOutcomeForecast.forecast_date.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_forecast_summary(
        self, student_id: UUID, course_id: Optional[UUID] = None, now: Optional[datetime] = None
    ) -> ForecastSummary:
        forecasts = await self.find_forecasts(student_id=student_id, course_id=course_id, limit=1000)
        if not forecasts:
            return ForecastSummary()

        now = now or datetime.utcnow()
        horizon = now + timedelta(days=30)
        total = len(forecasts)

        upcoming = [f for f in forecasts if now < f.target_date <= horizon]
        realized = [f for f in forecasts if f.is_realized and f.accuracy_metrics]
        accuracies = [ForecastAccuracy.model_validate(f.accuracy_metrics).overall_accuracy for f in realized]

        return ForecastSummary(
            total_forecasts=total,
            avg_success_probability=round(sum(f.success_probability for f in forecasts) / total, 2),
            avg_confidence_level=round(sum(f.confidence_level for f in forecasts) / total, 2),
            outcome_distribution=dict(Counter(f.outcome_type.value for f in forecasts)),
            upcoming_targets=[
                {
                    "id": str(f.id),
                    "outcome_type": f.outcome_type.value,
                    "target_date": f.target_date.isoformat(),
                    "success_probability": f.success_probability,
                }
                for f in sorted(upcoming, key=lambda f: f.target_date)
            ],
            realized_forecasts=len(realized),
            avg_accuracy=round(sum(accuracies) / len(accuracies), 2) if accuracies else 0.0,
        )

    def get_scenarios(self, forecast: LearningOutcomeForecast) -> ForecastScenarios:
        return ForecastScenarios.model_validate(forecast.scenarios)
