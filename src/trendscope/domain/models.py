from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Direction = Literal["increasing", "decreasing", "stable"]
Polarity = Literal["bad", "good", "neutral"]
Verdict = Literal["worsening", "improving", "unchanged"]
PointKind = Literal["historical", "connector", "prediction"]
PeriodValue = Union[datetime, date, str]


class SeverityBreakdown(BaseModel):
    critical: int = Field(default=0, ge=0)
    high: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    low: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low


class TimeSeriesPoint(BaseModel):
    """Observed fail/pass counts for one period, as supplied by the metrics backend."""
    period: PeriodValue
    fail_count: Optional[int] = Field(default=None, ge=0)
    pass_count: Optional[int] = Field(default=None, ge=0)
    fail_rate: Optional[float] = Field(default=None, ge=0, le=100)
    by_severity: Optional[SeverityBreakdown] = None


class PredictionRange(BaseModel):
    low: float
    high: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "PredictionRange":
        if self.low > self.high:
            raise ValueError(f"range low ({self.low}) exceeds high ({self.high})")
        return self


class PredictionPoint(BaseModel):
    period: PeriodValue
    predicted_fail_count: float = Field(ge=0)
    confidence: float = Field(ge=0, le=1)
    range: Optional[PredictionRange] = None

    @model_validator(mode="after")
    def _check_range_contains_prediction(self) -> "PredictionPoint":
        if self.range and not (self.range.low <= self.predicted_fail_count <= self.range.high):
            raise ValueError("predicted_fail_count must lie within range")
        return self


class NormalizedPoint(BaseModel):
    """Canonical point shape. Absent numeric fields stay None ("no data" is not zero)."""
    model_config = ConfigDict(frozen=True)

    period: str
    fail_count: Optional[int] = None
    pass_count: Optional[int] = None
    fail_rate: Optional[float] = None
    by_severity: Optional[SeverityBreakdown] = None


class NormalizedPrediction(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: str
    predicted_fail_count: float
    confidence: Optional[float] = None
    range: Optional[PredictionRange] = None


class MergedSeriesPoint(BaseModel):
    """
    One x-axis tick of the combined chart. Historical points carry `actual`,
    forecast points carry `predicted` (+ confidence/range); the single connector
    point carries both.
    """
    model_config = ConfigDict(frozen=True)

    period: str
    kind: PointKind
    actual: Optional[int] = None
    predicted: Optional[float] = None
    confidence: Optional[float] = None
    range: Optional[PredictionRange] = None

    def to_chart(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RejectedPoint(BaseModel):
    series: Literal["historical", "predicted"]
    index: int
    reason: str


class MergeReport(BaseModel):
    points: list[MergedSeriesPoint] = Field(default_factory=list)
    rejected: list[RejectedPoint] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def has_connector(self) -> bool:
        return any(p.kind == "connector" for p in self.points)


class SparklinePoint(BaseModel):
    index: int
    value: float


class PeriodAggregate(BaseModel):
    label: str
    total_fail_count: int = Field(ge=0)
    avg_fail_rate: float = Field(default=0.0, ge=0, le=100)
    start: Optional[date] = None
    end: Optional[date] = None
    total_pass_count: Optional[int] = Field(default=None, ge=0)
    record_count: Optional[int] = Field(default=None, ge=0)
    rejected_count: int = Field(default=0, ge=0)


class PeriodDelta(BaseModel):
    fail_count_change: int
    percent_change: Optional[float]  # None when the baseline is zero and the current period is not
    fail_rate_change: float = 0.0
    trend: Verdict


class PeriodComparison(BaseModel):
    period1: Optional[PeriodAggregate] = None
    period2: Optional[PeriodAggregate] = None
    difference: Optional[PeriodDelta] = None
    status: Literal["ok", "insufficient_data"] = "ok"
    message: Optional[str] = None


class TrendDescriptor(BaseModel):
    direction: Direction
    magnitude_percent: float


class TrendClassification(BaseModel):
    direction: Direction
    polarity: Polarity


class TrendAnalysis(BaseModel):
    direction: Direction = "stable"
    slope: float = 0.0
    rate_of_change: float = 0.0
    is_declining: bool = False  # quality declining == fail count increasing
    consecutive_increases: int = 0


class DeclineWarning(BaseModel):
    level: Literal["warning", "critical"]
    message: str
    details: str


class PredictionAnalysis(BaseModel):
    estimated_critical_date: Optional[str] = None
    estimated_resolution_date: Optional[str] = None
    key_insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class PredictionResponse(BaseModel):
    """
    Payload from the AI collaborator. Prediction points are kept raw so a single
    malformed forecast point is dropped by the merger instead of failing the payload.
    """
    predictions: list[dict[str, Any]] = Field(default_factory=list)
    analysis: PredictionAnalysis = Field(default_factory=PredictionAnalysis)
    metadata: dict[str, Any] = Field(default_factory=dict)


class KeyDates(BaseModel):
    critical_date: Optional[Union[datetime, date]] = None
    resolution_date: Optional[Union[datetime, date]] = None


class AssembledPrediction(BaseModel):
    series: list[MergedSeriesPoint] = Field(default_factory=list)
    key_dates: KeyDates = Field(default_factory=KeyDates)
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    rejected: list[RejectedPoint] = Field(default_factory=list)


class PredictionStatus(str, Enum):
    NOT_CONFIGURED = "not_configured"
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class PredictionState(BaseModel):
    """Immutable snapshot of the prediction workflow. Replaced whole on every transition."""
    model_config = ConfigDict(frozen=True)

    status: PredictionStatus
    sequence: int = 0
    result: Optional[AssembledPrediction] = None
    error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SeriesMetadata(BaseModel):
    period_type: Optional[str] = None
    total_periods: int = 0
    earliest_date: Optional[str] = None
    latest_date: Optional[str] = None


class TrendReport(BaseModel):
    """Everything the summary cards and decline banner need for one series."""
    analysis: TrendAnalysis
    descriptor: TrendDescriptor
    classification: TrendClassification
    warning: Optional[DeclineWarning] = None
    metadata: SeriesMetadata = Field(default_factory=SeriesMetadata)
    rejected: list[RejectedPoint] = Field(default_factory=list)
