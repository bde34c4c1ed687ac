import math
from typing import Any, Dict, Iterable, List, Optional

from trendscope.config import TrendSettings, settings
from trendscope.domain.models import (
    DeclineWarning,
    Direction,
    Polarity,
    TrendAnalysis,
    TrendClassification,
    TrendDescriptor,
)
from trendscope.logic.normalizer import SeriesNormalizer

# Rising fail counts are bad news in this domain. Not configurable.
POLARITY: Dict[str, Polarity] = {
    "increasing": "bad",
    "decreasing": "good",
    "stable": "neutral",
}


class TrendClassifier:
    """
    Maps an upstream direction label or a raw delta to a display direction and color polarity.
    Total: anything unrecognized is "stable".
    """

    def classify(self, value: Any) -> TrendClassification:
        direction = self.direction_of(value)
        return TrendClassification(direction=direction, polarity=POLARITY[direction])

    @staticmethod
    def direction_of(value: Any) -> Direction:
        if isinstance(value, str):
            label = value.strip().lower()
            if label == "increasing":
                return "increasing"
            if label == "decreasing":
                return "decreasing"
            return "stable"
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "stable"
        if math.isnan(value):
            return "stable"
        if value > 0:
            return "increasing"
        if value < 0:
            return "decreasing"
        return "stable"


class TrendAnalyzer:
    """
    Fits a least-squares line through fail counts to derive a trend direction,
    then grades how alarming the decline in data quality is.
    """

    def __init__(self, config: Optional[TrendSettings] = None, normalizer: Optional[SeriesNormalizer] = None):
        self.config = config or settings.trends
        self.normalizer = normalizer or SeriesNormalizer()

    def calculate_trend(self, points: Optional[Iterable[Any]]) -> TrendAnalysis:
        """
        Accepts fail-count numbers or point records. Records missing a fail count
        count as zero here, the same way the sparkline plots them.
        """
        y = [p.value for p in self.normalizer.normalize_sparkline(list(points or []))]
        n = len(y)
        if n < 2:
            return TrendAnalysis()

        x = list(range(n))
        sum_x = sum(x)
        sum_y = sum(y)
        sum_xy = sum(xi * yi for xi, yi in zip(x, y))
        sum_x2 = sum(xi * xi for xi in x)
        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)

        first, last = y[0], y[-1]
        rate_of_change = ((last - first) / first) * 100 if first > 0 else 0.0

        consecutive_increases = 0
        for i in range(n - 1, 0, -1):
            if y[i] > y[i - 1]:
                consecutive_increases += 1
            else:
                break

        direction: Direction = "stable"
        if slope > self.config.slope_threshold:
            direction = "increasing"
        elif slope < -self.config.slope_threshold:
            direction = "decreasing"

        return TrendAnalysis(
            direction=direction,
            slope=round(slope, 4),
            rate_of_change=round(rate_of_change, 2),
            is_declining=slope > self.config.slope_threshold,
            consecutive_increases=consecutive_increases,
        )

    def describe(self, points: Optional[Iterable[Any]]) -> TrendDescriptor:
        analysis = self.calculate_trend(points)
        return TrendDescriptor(direction=analysis.direction, magnitude_percent=analysis.rate_of_change)

    def determine_warning(self, analysis: TrendAnalysis, latest_fail_rate: Optional[float] = 0.0) -> Optional[DeclineWarning]:
        cfg = self.config
        fail_rate = latest_fail_rate or 0.0

        if (
            analysis.slope > cfg.slope_critical
            or analysis.rate_of_change > cfg.rate_critical
            or fail_rate > cfg.fail_rate_critical
        ):
            return DeclineWarning(
                level="critical",
                message="Data quality is critically declining",
                details=f"Fail count increased {analysis.rate_of_change:.1f}% with critical trend slope",
            )

        if (
            analysis.slope > cfg.slope_warning
            or analysis.rate_of_change > cfg.rate_warning
            or analysis.consecutive_increases >= cfg.consecutive_increase
            or fail_rate > cfg.fail_rate_warning
        ):
            return DeclineWarning(
                level="warning",
                message=f"Data quality declining - fail count increased {analysis.rate_of_change:.1f}%",
                details=f"{analysis.consecutive_increases} consecutive periods of increase detected",
            )

        return None

    @staticmethod
    def latest_fail_rate(points: List[Any]) -> float:
        if not points:
            return 0.0
        last = points[-1]
        rate = last.get("fail_rate") if isinstance(last, dict) else getattr(last, "fail_rate", None)
        return float(rate) if isinstance(rate, (int, float)) and not isinstance(rate, bool) else 0.0
