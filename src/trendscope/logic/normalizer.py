import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ValidationError

from trendscope.domain.models import (
    NormalizedPoint,
    NormalizedPrediction,
    PredictionRange,
    SeverityBreakdown,
    SparklinePoint,
)
from trendscope.exceptions import MalformedPointError

_DAY_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WEEK_KEY = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")


class SeriesNormalizer:
    """
    Canonicalizes raw series points into a stable chart shape.

    Period keys come out as `YYYY-MM-DD` (date-time strings are cut at the `T`
    separator). Weekly (`YYYY-Www`) and monthly (`YYYY-MM`) bucket keys produced by
    the metrics backend are already normalized and pass through untouched.
    Numeric fields are passed through; missing ones stay None.
    """

    def normalize(self, point: Any, index: Optional[int] = None, series: Optional[str] = None) -> NormalizedPoint:
        raw = self._as_mapping(point, index, series)
        return NormalizedPoint(
            period=self.period_key(raw.get("period"), index=index, series=series),
            fail_count=self._count(raw.get("fail_count"), "fail_count", index, series),
            pass_count=self._count(raw.get("pass_count"), "pass_count", index, series),
            fail_rate=self._rate(raw.get("fail_rate"), index, series),
            by_severity=self._severity(raw.get("by_severity"), index, series),
        )

    def normalize_prediction(
        self, point: Any, index: Optional[int] = None, series: Optional[str] = None
    ) -> NormalizedPrediction:
        raw = self._as_mapping(point, index, series)
        period = self.period_key(raw.get("period"), index=index, series=series)

        predicted = self._number(raw.get("predicted_fail_count"), "predicted_fail_count", index, series)
        if predicted is None:
            raise MalformedPointError("missing value", series=series, index=index, field="predicted_fail_count")
        if predicted < 0:
            raise MalformedPointError("must be non-negative", series=series, index=index, field="predicted_fail_count")

        confidence = self._number(raw.get("confidence"), "confidence", index, series)
        if confidence is not None and not 0 <= confidence <= 1:
            raise MalformedPointError(f"{confidence} outside [0, 1]", series=series, index=index, field="confidence")

        bounds = raw.get("range")
        prediction_range = None
        if bounds is not None:
            try:
                prediction_range = (
                    bounds if isinstance(bounds, PredictionRange) else PredictionRange.model_validate(bounds)
                )
            except ValidationError as exc:
                raise MalformedPointError(str(exc.errors()[0]["msg"]), series=series, index=index, field="range")
            if not prediction_range.low <= predicted <= prediction_range.high:
                raise MalformedPointError(
                    f"{predicted} outside [{prediction_range.low}, {prediction_range.high}]",
                    series=series,
                    index=index,
                    field="range",
                )

        return NormalizedPrediction(
            period=period,
            predicted_fail_count=predicted,
            confidence=confidence,
            range=prediction_range,
        )

    @staticmethod
    def period_key(value: Any, index: Optional[int] = None, series: Optional[str] = None) -> str:
        """Returns the chart key for a period value or raises MalformedPointError."""
        # datetime is a subclass of date, check it first
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if not isinstance(value, str) or not value.strip():
            raise MalformedPointError(
                f"unsupported period {value!r}", series=series, index=index, field="period"
            )

        text = value.strip()
        if "T" in text:
            try:
                datetime.fromisoformat(text)
            except ValueError:
                raise MalformedPointError(f"unparsable date-time {text!r}", series=series, index=index, field="period")
            return text.split("T", 1)[0]

        if SeriesNormalizer.period_sort_key(text) is None:
            raise MalformedPointError(f"unparsable period {text!r}", series=series, index=index, field="period")
        return text

    @staticmethod
    def period_sort_key(key: str) -> Optional[date]:
        """
        Maps a normalized key to the first day of its bucket, or None if the key
        is not a recognized day / week / month key.
        """
        if _DAY_KEY.match(key):
            try:
                return date.fromisoformat(key)
            except ValueError:
                return None
        week = _WEEK_KEY.match(key)
        if week:
            # %W weeks start on Monday; week 00 holds the days before the first Monday
            try:
                return datetime.strptime(f"{week.group(1)}-W{week.group(2)}-1", "%Y-W%W-%w").date()
            except ValueError:
                return None
        month = _MONTH_KEY.match(key)
        if month:
            try:
                return date(int(month.group(1)), int(month.group(2)), 1)
            except ValueError:
                return None
        return None

    def normalize_sparkline(self, values: Optional[Iterable[Any]]) -> List[SparklinePoint]:
        """
        Accepts plain numbers or point records (`fail_count`, then `value`) and
        returns indexed sparkline points. Records without either value plot as 0.
        """
        if not values:
            return []
        points = []
        for i, item in enumerate(values):
            if isinstance(item, bool):
                raise MalformedPointError("boolean is not a sparkline value", series="sparkline", index=i)
            if isinstance(item, (int, float)):
                value = self._number(item, "value", i, "sparkline")
                value = 0.0 if value is None else value
            else:
                raw = self._as_mapping(item, i, "sparkline")
                chosen = raw.get("fail_count")
                if chosen is None:
                    chosen = raw.get("value")
                value = self._number(chosen, "value", i, "sparkline")
                value = 0.0 if value is None else value
            points.append(SparklinePoint(index=i, value=value))
        return points

    @staticmethod
    def _as_mapping(point: Any, index: Optional[int], series: Optional[str]) -> Mapping:
        if isinstance(point, BaseModel):
            return point.model_dump()
        if isinstance(point, Mapping):
            return point
        raise MalformedPointError(f"expected a record, got {type(point).__name__}", series=series, index=index)

    @staticmethod
    def _number(value: Any, field: str, index: Optional[int], series: Optional[str]) -> Optional[float]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedPointError(f"expected a number, got {value!r}", series=series, index=index, field=field)
        if isinstance(value, float) and math.isnan(value):
            return None
        try:
            number = float(value)
        except OverflowError:
            raise MalformedPointError("out of range", series=series, index=index, field=field)
        if math.isinf(number):
            raise MalformedPointError("must be finite", series=series, index=index, field=field)
        return number

    @classmethod
    def _count(cls, value: Any, field: str, index: Optional[int], series: Optional[str]) -> Optional[int]:
        number = cls._number(value, field, index, series)
        if number is None:
            return None
        if not number.is_integer():
            raise MalformedPointError(f"expected a whole count, got {value!r}", series=series, index=index, field=field)
        if number < 0:
            raise MalformedPointError("must be non-negative", series=series, index=index, field=field)
        return int(number)

    @classmethod
    def _rate(cls, value: Any, index: Optional[int], series: Optional[str]) -> Optional[float]:
        rate = cls._number(value, "fail_rate", index, series)
        if rate is not None and not 0 <= rate <= 100:
            raise MalformedPointError(f"{rate} outside [0, 100]", series=series, index=index, field="fail_rate")
        return rate

    @staticmethod
    def _severity(value: Any, index: Optional[int], series: Optional[str]) -> Optional[SeverityBreakdown]:
        if value is None:
            return None
        if isinstance(value, SeverityBreakdown):
            return value
        try:
            return SeverityBreakdown.model_validate(value)
        except ValidationError as exc:
            raise MalformedPointError(str(exc.errors()[0]["msg"]), series=series, index=index, field="by_severity")
