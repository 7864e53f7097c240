# lms_analytics/services/performance_prediction_service.py
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config_analytics import analytics_settings
from ..core.exceptions import AlreadyValidatedError, INFRASTRUCTURE_ERRORS, ValidationError
from ..models.predictive import PerformancePrediction, PredictionType, RiskLevel
from ..schemas.predictive_schemas import PerformanceTrends
from ..utils.scoring import accuracy_score
from .base_service import BaseService
from .inference_gateway import InferenceGateway, inference_gateway
from .learning_signal_service import (
    LearningSignalStore,
    OutcomeSource,
    SqlLearningSignalStore,
    collect_learning_window,
)
from .trend_analyzer import trend_analyzer

logger = logging.getLogger(__name__)


class PerformancePredictionService(BaseService[PerformancePrediction]):
    resource_name = "Performance prediction"

    def __init__(
        self,
        db: AsyncSession,
        signal_store: Optional[LearningSignalStore] = None,
        gateway: Optional[InferenceGateway] = None,
    ):
        super().__init__(PerformancePrediction, db)
        self.signal_store = signal_store or SqlLearningSignalStore(db)
        self.gateway = gateway or inference_gateway

    async def generate_prediction(
        self,
        student_id: UUID,
        course_id: Optional[UUID] = None,
        prediction_type: PredictionType = PredictionType.PERFORMANCE,
        target_date: Optional[datetime] = None,
    ) -> PerformancePrediction:
        """Collect the student's learning window, run inference and store the result"""
        logger.info(f"Generating {prediction_type.value} prediction for student {student_id}")

        window = await collect_learning_window(
            self.signal_store, student_id, course_id, analytics_settings.PREDICTION_WINDOW_DAYS
        )
        result = await self.gateway.predict(window, prediction_type)

        now = datetime.utcnow()
        prediction = await self.create({
            "student_id": student_id,
            "course_id": course_id,
            "prediction_type": prediction_type,
            "prediction_date": now,
            "target_date": target_date or now + timedelta(days=analytics_settings.PREDICTION_HORIZON_DAYS),
            "predicted_value": result.predicted_value,
            "confidence_score": result.confidence_score,
            "risk_level": result.risk_level,
            "contributing_factors": result.contributing_factors.model_dump(mode="json"),
            "model_version": result.model_version,
            "model_metadata": result.model_metadata,
        })

        logger.info(
            f"Created prediction {prediction.id} for student {student_id} "
            f"({prediction.predicted_value} via {prediction.model_version})"
        )
        return prediction

    async def find_predictions(
        self,
        student_id: Optional[UUID] = None,
        course_id: Optional[UUID] = None,
        prediction_type: Optional[PredictionType] = None,
        risk_level: Optional[RiskLevel] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        min_confidence: Optional[float] = None,
        is_validated: Optional[bool] = None,
        limit: int = 100,
    ) -> List[PerformancePrediction]:
        """Filtered predictions, newest first"""
        conditions = [PerformancePrediction.is_deleted == False]

        if student_id:
            conditions.append(PerformancePrediction.student_id == student_id)
        if course_id:
            conditions.append(PerformancePrediction.course_id == course_id)
        if prediction_type:
            conditions.append(PerformancePrediction.prediction_type == prediction_type)
        if risk_level:
            conditions.append(PerformancePrediction.risk_level == risk_level)
        if start_date:
            conditions.append(PerformancePrediction.prediction_date >= start_date)
        if end_date:
            conditions.append(PerformancePrediction.prediction_date <= end_date)
        if min_confidence is not None:
            conditions.append(PerformancePrediction.confidence_score >= min_confidence)
        if is_validated is not None:
            conditions.append(PerformancePrediction.is_validated == is_validated)

        stmt = (
            select(PerformancePrediction)
            .where(and_(*conditions))
            .order_by(PerformancePrediction.prediction_date.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_prediction(
        self,
        student_id: UUID,
        course_id: Optional[UUID] = None,
        prediction_type: Optional[PredictionType] = None,
    ) -> Optional[PerformancePrediction]:
        predictions = await self.find_predictions(
            student_id=student_id, course_id=course_id, prediction_type=prediction_type, limit=1
        )
        return predictions[0] if predictions else None

    async def validate_prediction(
        self, prediction_id: UUID, actual_value: float, correction: bool = False
    ) -> PerformancePrediction:
        """Record the realized value and its accuracy score.

        Validating again with the same value is a no-op. A different value is
        only accepted as an explicit correction.
        """
        if not 0 <= actual_value <= 100:
            raise ValidationError("actual_value must be between 0 and 100", field="actual_value")

        prediction = await self.get_or_404(prediction_id)

        if prediction.is_validated:
            if prediction.actual_value == actual_value:
                return prediction
            if not correction:
                raise AlreadyValidatedError(self.resource_name, prediction_id)
            logger.info(
                f"Correcting prediction {prediction_id}: actual value {prediction.actual_value} -> {actual_value}"
            )

        prediction.actual_value = actual_value
        prediction.accuracy_score = accuracy_score(prediction.predicted_value, actual_value)
        prediction.is_validated = True
        prediction.validated_at = datetime.utcnow()

        await self.db.commit()
        await self.db.refresh(prediction)

        logger.info(f"Validated prediction {prediction_id} with accuracy {prediction.accuracy_score}")
        return prediction

    async def get_due_predictions(self, now: Optional[datetime] = None) -> List[PerformancePrediction]:
        """Unvalidated predictions whose target date has passed"""
        stmt = select(PerformancePrediction).where(
            and_(
                PerformancePrediction.is_validated == False,
                PerformancePrediction.target_date < (now or datetime.utcnow()),
                PerformancePrediction.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def validate_due_predictions(
        self, outcome_source: OutcomeSource, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Validate every due prediction whose outcome is already observable"""
        # A rollback expires loaded rows, so each one is reloaded by id
        due_ids = [p.id for p in await self.get_due_predictions(now)]
        validated = skipped = failed = 0

        for prediction_id in due_ids:
            try:
                prediction = await self.get_or_404(prediction_id)
                actual_value = await outcome_source.actual_value(prediction)
                if actual_value is None:
                    skipped += 1
                    continue
                await self.validate_prediction(prediction.id, actual_value)
                validated += 1
            except INFRASTRUCTURE_ERRORS:
                raise
            except Exception as e:
                failed += 1
                await self.db.rollback()
                logger.warning(f"Failed to validate prediction {prediction_id}: {e}")

        logger.info(f"Validated {validated} of {len(due_ids)} due predictions ({skipped} not yet observable)")
        return {"total": len(due_ids), "validated": validated, "skipped": skipped, "failed": failed}

    async def get_performance_trends(
        self,
        student_id: UUID,
        days: int = 30,
        course_id: Optional[UUID] = None,
        prediction_type: PredictionType = PredictionType.PERFORMANCE,
    ) -> PerformanceTrends:
        """Trend over one prediction type, since the types do not share a scale"""
        start_date = datetime.utcnow() - timedelta(days=days)
        stmt = (
            select(PerformancePrediction)
            .where(
                and_(
                    PerformancePrediction.student_id == student_id,
                    PerformancePrediction.prediction_type == prediction_type,
                    PerformancePrediction.prediction_date > start_date,
                    PerformancePrediction.is_deleted == False
                )
            )
            .order_by(PerformancePrediction.prediction_date.asc())
        )
        if course_id:
            stmt = stmt.where(PerformancePrediction.course_id == course_id)
        result = await self.db.execute(stmt)
        predictions = list(result.scalars().all())

        average_confidence = (
            sum(p.confidence_score for p in predictions) / len(predictions) if predictions else 0.0
        )

        return PerformanceTrends(
            student_id=student_id,
            period_days=days,
            trend=trend_analyzer.analyze([p.predicted_value for p in predictions]),
            total_predictions=len(predictions),
            average_confidence=round(average_confidence, 2),
            risk_distribution=self._risk_distribution(predictions),
        )

    def _risk_distribution(self, predictions: List[PerformancePrediction]) -> Dict[str, int]:
        """Share of predictions per risk level, as whole percentages"""
        counts = Counter(p.risk_level for p in predictions)
        total = len(predictions)
        return {
            level.value: round(counts[level] / total * 100) if total else 0
            for level in RiskLevel
        }

    async def accuracy_metrics(self) -> Dict[str, Any]:
        """Average accuracy of validated predictions, overall and per type"""
        stmt = select(PerformancePrediction.prediction_type, PerformancePrediction.accuracy_score).where(
            and_(
                PerformancePrediction.is_validated == True,
                PerformancePrediction.accuracy_score.is_not(None),
                PerformancePrediction.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        rows = result.all()

        by_type: Dict[str, List[float]] = defaultdict(list)
        for prediction_type, score in rows:
            by_type[prediction_type.value].append(score)

        all_scores = [score for _, score in rows]
        return {
            "validated_predictions": len(all_scores),
            "overall_accuracy": round(sum(all_scores) / len(all_scores), 2) if all_scores else None,
            "by_type": {
                key: {"accuracy": round(sum(scores) / len(scores), 2), "count": len(scores)}
                for key, scores in by_type.items()
            },
        }
