from datetime import date, datetime

import pytest

from trendscope.domain.models import TimeSeriesPoint
from trendscope.exceptions import MalformedPointError


def test_datetime_string_truncated_to_date(normalizer):
    point = normalizer.normalize({"period": "2024-01-01T13:45:00Z", "fail_count": 10})
    assert point.period == "2024-01-01"
    assert point.fail_count == 10


def test_plain_and_bucket_keys_pass_through(normalizer):
    assert normalizer.period_key("2024-03-05") == "2024-03-05"
    assert normalizer.period_key("2024-W05") == "2024-W05"
    assert normalizer.period_key("2024-02") == "2024-02"


def test_date_objects_are_accepted(normalizer):
    assert normalizer.period_key(date(2024, 5, 1)) == "2024-05-01"
    assert normalizer.period_key(datetime(2024, 5, 1, 23, 59)) == "2024-05-01"


@pytest.mark.parametrize("period", [None, 20240101, "", "yesterday", "2024-13-01", "2024-01-01Tnoon"])
def test_unsupported_periods_raise(normalizer, period):
    with pytest.raises(MalformedPointError) as exc_info:
        normalizer.normalize({"period": period, "fail_count": 1}, index=3, series="historical")
    assert exc_info.value.index == 3
    assert exc_info.value.field == "period"


def test_missing_numeric_fields_stay_absent(normalizer):
    point = normalizer.normalize({"period": "2024-01-01"})
    assert point.fail_count is None
    assert point.pass_count is None
    assert point.fail_rate is None
    assert point.by_severity is None


def test_zero_is_kept_distinct_from_missing(normalizer):
    point = normalizer.normalize({"period": "2024-01-01", "fail_count": 0})
    assert point.fail_count == 0


@pytest.mark.parametrize(
    "field,value",
    [
        ("fail_count", -1),
        ("fail_count", "12"),
        ("fail_count", True),
        ("fail_count", 2.5),
        ("fail_rate", 140.0),
    ],
)
def test_invalid_numeric_fields_raise(normalizer, field, value):
    with pytest.raises(MalformedPointError) as exc_info:
        normalizer.normalize({"period": "2024-01-01", field: value})
    assert exc_info.value.field == field


def test_severity_breakdown_is_validated(normalizer):
    point = normalizer.normalize(
        {"period": "2024-01-01", "fail_count": 9, "by_severity": {"critical": 1, "high": 2, "medium": 3, "low": 3}}
    )
    assert point.by_severity.total == 9

    with pytest.raises(MalformedPointError):
        normalizer.normalize({"period": "2024-01-01", "by_severity": {"critical": -4}})


def test_accepts_pydantic_points(normalizer):
    point = normalizer.normalize(TimeSeriesPoint(period="2024-02-01T00:00:00", fail_count=4))
    assert point.period == "2024-02-01"
    assert point.fail_count == 4


def test_prediction_range_must_contain_value(normalizer):
    with pytest.raises(MalformedPointError) as exc_info:
        normalizer.normalize_prediction(
            {"period": "2024-01-08", "predicted_fail_count": 50, "confidence": 0.5, "range": {"low": 60, "high": 90}}
        )
    assert exc_info.value.field == "range"


def test_prediction_confidence_bounds(normalizer):
    with pytest.raises(MalformedPointError):
        normalizer.normalize_prediction({"period": "2024-01-08", "predicted_fail_count": 5, "confidence": 1.5})


def test_period_sort_key_orders_buckets(normalizer):
    assert normalizer.period_sort_key("2024-01-15") == date(2024, 1, 15)
    assert normalizer.period_sort_key("2024-03") == date(2024, 3, 1)
    # Week 01 starts on the first Monday of 2024
    assert normalizer.period_sort_key("2024-W01") == date(2024, 1, 1)
    assert normalizer.period_sort_key("not-a-key") is None


def test_sparkline_accepts_numbers_and_records(normalizer):
    points = normalizer.normalize_sparkline([3, {"fail_count": 5}, {"value": 7}, {"period": "2024-01-01"}])
    assert [p.value for p in points] == [3.0, 5.0, 7.0, 0.0]
    assert [p.index for p in points] == [0, 1, 2, 3]


def test_sparkline_empty_input(normalizer):
    assert normalizer.normalize_sparkline([]) == []
    assert normalizer.normalize_sparkline(None) == []


def test_count_too_large_for_float(normalizer):
    with pytest.raises(MalformedPointError) as exc_info:
        normalizer.normalize({"period": "2024-01-01", "fail_count": 10**400}, index=0, series="historical")
    assert exc_info.value.field == "fail_count"
    assert exc_info.value.reason == "out of range"


def test_sparkline_value_too_large_for_float(normalizer):
    with pytest.raises(MalformedPointError, match="out of range"):
        normalizer.normalize_sparkline([1, 10**400])
