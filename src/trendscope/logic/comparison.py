import logging
from datetime import date
from typing import Any, Iterable, Optional

from trendscope.domain.models import PeriodAggregate, PeriodComparison, PeriodDelta, Verdict
from trendscope.exceptions import IncomparablePeriodsError, InsufficientDataError, MalformedPointError
from trendscope.logic.normalizer import SeriesNormalizer

logger = logging.getLogger(__name__)


class PeriodComparator:
    """
    Period-over-period fail count comparison.
    More fails in the later window is "worsening", fewer is "improving".
    """

    def __init__(self, normalizer: Optional[SeriesNormalizer] = None):
        self.normalizer = normalizer or SeriesNormalizer()

    def compare(self, period1: Optional[PeriodAggregate], period2: Optional[PeriodAggregate]) -> PeriodDelta:
        """
        Returns the delta from period1 (earlier) to period2 (later).

        Raises InsufficientDataError when either aggregate is missing, and
        IncomparablePeriodsError when both carry windows that overlap or are reversed.
        """
        if period1 is None or period2 is None:
            missing = [name for name, p in (("period1", period1), ("period2", period2)) if p is None]
            raise InsufficientDataError(f"Missing aggregate for {', '.join(missing)}")
        self._check_windows(period1, period2)

        baseline = period1.total_fail_count
        change = period2.total_fail_count - baseline

        percent_change: Optional[float]
        if baseline == 0:
            # Growth from zero has no finite percentage; surfaced as "N/A"
            percent_change = 0.0 if change == 0 else None
        else:
            percent_change = (change / baseline) * 100

        return PeriodDelta(
            fail_count_change=change,
            percent_change=percent_change,
            fail_rate_change=round(period2.avg_fail_rate - period1.avg_fail_rate, 2),
            trend=self.verdict(change),
        )

    def summarize(self, period1: Optional[PeriodAggregate], period2: Optional[PeriodAggregate]) -> PeriodComparison:
        """Display-level wrapper: insufficient data becomes a placeholder state instead of an error."""
        try:
            difference = self.compare(period1, period2)
        except InsufficientDataError as exc:
            logger.info(f"Period comparison unavailable: {exc}")
            return PeriodComparison(
                period1=period1,
                period2=period2,
                status="insufficient_data",
                message=str(exc),
            )
        return PeriodComparison(period1=period1, period2=period2, difference=difference)

    @staticmethod
    def verdict(fail_count_change: float) -> Verdict:
        if fail_count_change > 0:
            return "worsening"
        if fail_count_change < 0:
            return "improving"
        return "unchanged"

    def aggregate(
        self,
        label: str,
        points: Iterable[Any],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> PeriodAggregate:
        """
        Rolls raw series points up into a PeriodAggregate. When a window is given,
        only points whose period falls inside [start, end] are counted.
        Malformed points are skipped and counted in `rejected_count`.
        """
        total_fails = 0
        total_passes = 0
        rates = []
        records = 0
        rejected = 0
        for i, point in enumerate(points):
            try:
                normalized = self.normalizer.normalize(point, index=i, series=label)
            except MalformedPointError as exc:
                logger.warning(f"Skipping malformed point in aggregate: {exc}")
                rejected += 1
                continue
            position = self.normalizer.period_sort_key(normalized.period)
            if start and position and position < start:
                continue
            if end and position and position > end:
                continue
            records += 1
            total_fails += normalized.fail_count or 0
            total_passes += normalized.pass_count or 0
            if normalized.fail_rate is not None:
                rates.append(normalized.fail_rate)

        return PeriodAggregate(
            label=label,
            total_fail_count=total_fails,
            avg_fail_rate=round(sum(rates) / len(rates), 2) if rates else 0.0,
            start=start,
            end=end,
            total_pass_count=total_passes,
            record_count=records,
            rejected_count=rejected,
        )

    @staticmethod
    def format_percent(delta: Optional[PeriodDelta]) -> str:
        if delta is None or delta.percent_change is None:
            return "N/A"
        sign = "+" if delta.percent_change > 0 else ""
        return f"{sign}{delta.percent_change:.1f}%"

    @staticmethod
    def _check_windows(period1: PeriodAggregate, period2: PeriodAggregate) -> None:
        for p in (period1, period2):
            if p.start and p.end and p.start > p.end:
                raise IncomparablePeriodsError(f"Window '{p.label}' ends before it starts")
        first_end = period1.end or period1.start
        second_start = period2.start or period2.end
        if first_end and second_start and second_start <= first_end:
            raise IncomparablePeriodsError(
                f"Windows '{period1.label}' and '{period2.label}' overlap or are out of order"
            )
