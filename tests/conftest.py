import pytest

from trendscope.api import deps
from trendscope.config import settings
from trendscope.logic.merger import SeriesMerger
from trendscope.logic.normalizer import SeriesNormalizer


@pytest.fixture
def normalizer():
    return SeriesNormalizer()


@pytest.fixture
def merger():
    return SeriesMerger()


@pytest.fixture
def weekly_history():
    """Four weeks of rising fail counts, shaped like the metrics backend timeline."""
    return [
        {"period": "2024-01-01T00:00:00Z", "fail_count": 100, "pass_count": 900, "fail_rate": 10.0},
        {"period": "2024-01-08T00:00:00Z", "fail_count": 120, "pass_count": 880, "fail_rate": 12.0},
        {"period": "2024-01-15T00:00:00Z", "fail_count": 150, "pass_count": 850, "fail_rate": 15.0},
        {"period": "2024-01-22T00:00:00Z", "fail_count": 170, "pass_count": 830, "fail_rate": 17.0},
    ]


@pytest.fixture
def forecast():
    return [
        {"period": "2024-01-29", "predicted_fail_count": 190, "confidence": 0.8, "range": {"low": 170, "high": 210}},
        {"period": "2024-02-05", "predicted_fail_count": 205, "confidence": 0.7, "range": {"low": 180, "high": 230}},
    ]


@pytest.fixture
def ai_enabled(monkeypatch):
    """Turns on the offline AI provider and gives each test a fresh workflow."""
    monkeypatch.setattr(settings.ai, "enabled", True)
    monkeypatch.setattr(settings.ai, "provider", "offline")
    deps.reset_workflow()
    yield
    deps.reset_workflow()
