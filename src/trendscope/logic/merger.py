import logging
from typing import Any, List, Optional, Sequence, Tuple

from trendscope.domain.models import (
    MergedSeriesPoint,
    MergeReport,
    NormalizedPoint,
    NormalizedPrediction,
    RejectedPoint,
)
from trendscope.exceptions import MalformedPointError
from trendscope.logic.normalizer import SeriesNormalizer

logger = logging.getLogger(__name__)


class SeriesMerger:
    """
    Combines a historical series and a forecast series into one chart sequence:
    historical block, an optional connector point, then the forecast block.

    Neither sub-series is re-sorted; callers supply each ascending by period.
    Inputs are never mutated, a new list is built on every call.
    """

    def __init__(self, normalizer: Optional[SeriesNormalizer] = None):
        self.normalizer = normalizer or SeriesNormalizer()

    def merge(
        self,
        historical: Optional[Sequence[Any]],
        predicted: Optional[Sequence[Any]],
        strict: bool = False,
    ) -> List[MergedSeriesPoint]:
        return self.merge_with_report(historical, predicted, strict=strict).points

    def merge_with_report(
        self,
        historical: Optional[Sequence[Any]],
        predicted: Optional[Sequence[Any]],
        strict: bool = False,
    ) -> MergeReport:
        """
        Same as `merge` but also reports the points that were dropped.
        With strict=True the first malformed point raises instead of being dropped.
        """
        rejected: List[RejectedPoint] = []
        history = self._normalize_history(historical or [], rejected, strict)
        indexed_forecast = self._normalize_forecast(predicted or [], rejected, strict)
        forecast = self._truncate_overlap(history, indexed_forecast, rejected)

        points: List[MergedSeriesPoint] = [
            MergedSeriesPoint(period=p.period, kind="historical", actual=p.fail_count) for p in history
        ]

        connector = self._connector(history, forecast)
        if connector is not None:
            points.append(connector)

        points.extend(
            MergedSeriesPoint(
                period=p.period,
                kind="prediction",
                predicted=p.predicted_fail_count,
                confidence=p.confidence,
                range=p.range,
            )
            for p in forecast
        )
        return MergeReport(points=points, rejected=rejected)

    def _normalize_history(
        self, historical: Sequence[Any], rejected: List[RejectedPoint], strict: bool
    ) -> List[NormalizedPoint]:
        normalized = []
        for i, point in enumerate(historical):
            try:
                normalized.append(self.normalizer.normalize(point, index=i, series="historical"))
            except MalformedPointError as exc:
                if strict:
                    raise
                logger.warning(f"Dropping malformed historical point: {exc}")
                rejected.append(RejectedPoint(series="historical", index=i, reason=str(exc)))
        return normalized

    def _normalize_forecast(
        self, predicted: Sequence[Any], rejected: List[RejectedPoint], strict: bool
    ) -> List[Tuple[int, NormalizedPrediction]]:
        normalized = []
        for i, point in enumerate(predicted):
            try:
                normalized.append((i, self.normalizer.normalize_prediction(point, index=i, series="predicted")))
            except MalformedPointError as exc:
                if strict:
                    raise
                logger.warning(f"Dropping malformed predicted point: {exc}")
                rejected.append(RejectedPoint(series="predicted", index=i, reason=str(exc)))
        return normalized

    def _truncate_overlap(
        self,
        history: List[NormalizedPoint],
        forecast: List[Tuple[int, NormalizedPrediction]],
        rejected: List[RejectedPoint],
    ) -> List[NormalizedPrediction]:
        """
        Drops forecast points that fall before the last observed period.
        A forecast point at exactly the last observed period is kept.
        """
        points = [p for _, p in forecast]
        if not history or not points:
            return points
        boundary = self.normalizer.period_sort_key(history[-1].period)
        if boundary is None:
            return points

        kept = []
        for i, point in forecast:
            position = self.normalizer.period_sort_key(point.period)
            if position is not None and position < boundary:
                logger.warning(
                    f"Dropping predicted point {point.period}: precedes last historical period {history[-1].period}"
                )
                rejected.append(
                    RejectedPoint(
                        series="predicted",
                        index=i,
                        reason=f"overlaps_history: {point.period} < {history[-1].period}",
                    )
                )
                continue
            kept.append(point)
        return kept

    @staticmethod
    def _connector(
        history: List[NormalizedPoint], forecast: List[NormalizedPrediction]
    ) -> Optional[MergedSeriesPoint]:
        if not history or not forecast:
            return None
        last = history[-1]
        # The forecast already has a value at the hand-off period, a connector would duplicate the tick
        if forecast[0].period == last.period:
            return None
        if last.fail_count is None:
            return None
        return MergedSeriesPoint(
            period=last.period,
            kind="connector",
            actual=last.fail_count,
            predicted=float(last.fail_count),
        )
