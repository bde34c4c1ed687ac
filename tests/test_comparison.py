from datetime import date

import pytest

from trendscope.domain.models import PeriodAggregate
from trendscope.exceptions import IncomparablePeriodsError, InsufficientDataError
from trendscope.logic.comparison import PeriodComparator


@pytest.fixture
def comparator():
    return PeriodComparator()


def aggregate(total, rate=0.0, label="window", **kwargs):
    return PeriodAggregate(label=label, total_fail_count=total, avg_fail_rate=rate, **kwargs)


def test_worsening_period(comparator):
    delta = comparator.compare(aggregate(100, 5.0), aggregate(150, 7.5))
    assert delta.fail_count_change == 50
    assert delta.percent_change == 50.0
    assert delta.fail_rate_change == 2.5
    assert delta.trend == "worsening"


def test_improving_period(comparator):
    delta = comparator.compare(aggregate(200), aggregate(150))
    assert delta.fail_count_change == -50
    assert delta.percent_change == -25.0
    assert delta.trend == "improving"


def test_unchanged_period(comparator):
    delta = comparator.compare(aggregate(80), aggregate(80))
    assert delta.percent_change == 0.0
    assert delta.trend == "unchanged"


def test_small_changes_are_not_rounded_away(comparator):
    # Any increase in fails is worsening, however small
    delta = comparator.compare(aggregate(100000), aggregate(100001))
    assert delta.trend == "worsening"
    assert delta.percent_change > 0


def test_zero_to_zero(comparator):
    delta = comparator.compare(aggregate(0), aggregate(0))
    assert delta.percent_change == 0
    assert delta.trend == "unchanged"


def test_growth_from_zero_is_not_infinite(comparator):
    delta = comparator.compare(aggregate(0), aggregate(12))
    assert delta.percent_change is None
    assert delta.fail_count_change == 12
    assert delta.trend == "worsening"
    assert comparator.format_percent(delta) == "N/A"


@pytest.mark.parametrize("a,b", [(0, 0), (0, 5), (5, 0), (10, 10), (10, 11), (11, 10), (3, 300)])
def test_delta_sign_law(comparator, a, b):
    trend = comparator.compare(aggregate(a), aggregate(b)).trend
    if b > a:
        assert trend == "worsening"
    elif b < a:
        assert trend == "improving"
    else:
        assert trend == "unchanged"


def test_missing_aggregate_raises(comparator):
    with pytest.raises(InsufficientDataError, match="period2"):
        comparator.compare(aggregate(10), None)


def test_summarize_turns_missing_data_into_placeholder(comparator):
    result = comparator.summarize(None, aggregate(10))
    assert result.status == "insufficient_data"
    assert result.difference is None
    assert "period1" in result.message


def test_summarize_ok(comparator):
    result = comparator.summarize(aggregate(100, 5.0), aggregate(150, 7.5))
    assert result.status == "ok"
    assert result.difference.trend == "worsening"


def test_overlapping_windows_are_incomparable(comparator):
    first = aggregate(10, start=date(2024, 1, 1), end=date(2024, 1, 31))
    second = aggregate(20, start=date(2024, 1, 15), end=date(2024, 2, 15))
    with pytest.raises(IncomparablePeriodsError):
        comparator.compare(first, second)
    assert comparator.summarize(first, second).status == "insufficient_data"


def test_reversed_windows_are_incomparable(comparator):
    earlier = aggregate(10, start=date(2024, 1, 1), end=date(2024, 1, 31))
    later = aggregate(20, start=date(2024, 2, 1), end=date(2024, 2, 28))
    comparator.compare(earlier, later)
    with pytest.raises(IncomparablePeriodsError):
        comparator.compare(later, earlier)


def test_format_percent(comparator):
    assert comparator.format_percent(comparator.compare(aggregate(100), aggregate(150))) == "+50.0%"
    assert comparator.format_percent(comparator.compare(aggregate(80), aggregate(70))) == "-12.5%"
    assert comparator.format_percent(comparator.compare(aggregate(5), aggregate(5))) == "0.0%"
    assert comparator.format_percent(None) == "N/A"


def test_aggregate_from_points(comparator, weekly_history):
    result = comparator.aggregate("January", weekly_history, start=date(2024, 1, 8), end=date(2024, 1, 15))
    assert result.total_fail_count == 270
    assert result.total_pass_count == 1730
    assert result.avg_fail_rate == 13.5
    assert result.record_count == 2


def test_aggregate_skips_malformed_points(comparator, weekly_history):
    points = weekly_history + [{"period": "garbage", "fail_count": 1}, {"period": "2024-01-29", "fail_count": -3}]
    result = comparator.aggregate("January", points, start=date(2024, 1, 1), end=date(2024, 1, 31))
    assert result.total_fail_count == 540
    assert result.record_count == 4
    assert result.rejected_count == 2


def test_aggregate_then_compare(comparator, weekly_history):
    p1 = comparator.aggregate("early", weekly_history, start=date(2024, 1, 1), end=date(2024, 1, 8))
    p2 = comparator.aggregate("late", weekly_history, start=date(2024, 1, 15), end=date(2024, 1, 22))
    delta = comparator.compare(p1, p2)
    assert delta.fail_count_change == 100
    assert delta.trend == "worsening"
