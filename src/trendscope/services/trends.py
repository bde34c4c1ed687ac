from typing import Any, Dict, List, Optional, Sequence

from trendscope.domain.models import (
    PeriodAggregate,
    PeriodComparison,
    SeriesMetadata,
    TrendReport,
)
from trendscope.logic.comparison import PeriodComparator
from trendscope.logic.merger import SeriesMerger
from trendscope.logic.trends import TrendAnalyzer, TrendClassifier


class TrendService:
    """
    Read-side facade used by the API and CLI: trend reports, period comparisons and sparklines.
    """

    def __init__(
        self,
        merger: Optional[SeriesMerger] = None,
        analyzer: Optional[TrendAnalyzer] = None,
        classifier: Optional[TrendClassifier] = None,
        comparator: Optional[PeriodComparator] = None,
    ):
        self.merger = merger or SeriesMerger()
        self.analyzer = analyzer or TrendAnalyzer()
        self.classifier = classifier or TrendClassifier()
        self.comparator = comparator or PeriodComparator()

    def analyze(self, points: Optional[Sequence[Any]], period_type: Optional[str] = None) -> TrendReport:
        # Reuse the merger's point-level recovery so bad rows are reported, not fatal
        report = self.merger.merge_with_report(points, None)
        valid = self._valid_points(points or [], {r.index for r in report.rejected})

        analysis = self.analyzer.calculate_trend(valid)
        warning = self.analyzer.determine_warning(analysis, self.analyzer.latest_fail_rate(valid))
        periods = [p.period for p in report.points]
        return TrendReport(
            analysis=analysis,
            descriptor=self.analyzer.describe(valid),
            classification=self.classifier.classify(analysis.direction),
            warning=warning,
            metadata=SeriesMetadata(
                period_type=period_type,
                total_periods=len(periods),
                earliest_date=periods[0] if periods else None,
                latest_date=periods[-1] if periods else None,
            ),
            rejected=report.rejected,
        )

    def compare(self, period1: Optional[PeriodAggregate], period2: Optional[PeriodAggregate]) -> PeriodComparison:
        return self.comparator.summarize(period1, period2)

    def sparkline(self, data: Optional[Sequence[Any]], trend: Any = None) -> Dict[str, Any]:
        points = self.analyzer.normalizer.normalize_sparkline(data)
        if trend is None:
            trend = self.analyzer.calculate_trend([p.value for p in points]).direction
        return {
            "points": [p.model_dump() for p in points],
            "classification": self.classifier.classify(trend).model_dump(),
        }

    @staticmethod
    def _valid_points(points: Sequence[Any], rejected_indexes: set) -> List[Any]:
        return [p for i, p in enumerate(points) if i not in rejected_indexes]
