# lms_analytics/services/trend_analyzer.py
from typing import Sequence

from ..schemas.predictive_schemas import TrendDirection, TrendResult


class TrendAnalyzer:
    """Least-squares trend over a time-ordered sequence of values.

    The slope is fitted against index position, not wall-clock time, so
    irregularly spaced samples count the same as daily ones.
    """

    def __init__(self, threshold: float = 2.0, confidence_per_point: float = 10.0):
        self.threshold = threshold
        self.confidence_per_point = confidence_per_point

    def analyze(self, values: Sequence[float]) -> TrendResult:
        n = len(values)
        if n < 2:
            return TrendResult(direction=TrendDirection.INSUFFICIENT_DATA, slope=0.0, confidence=0.0)

        sum_x = sum(range(n))
        sum_y = sum(values)
        sum_xy = sum(i * value for i, value in enumerate(values))
        sum_xx = sum(i * i for i in range(n))

        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
        slope = round(slope, 2)

        if slope > self.threshold:
            direction = TrendDirection.IMPROVING
        elif slope < -self.threshold:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE

        return TrendResult(
            direction=direction,
            slope=slope,
            confidence=min(100.0, n * self.confidence_per_point),
        )


trend_analyzer = TrendAnalyzer()
