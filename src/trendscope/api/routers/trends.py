from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trendscope.api.deps import get_merger, get_trend_service, require_auth
from trendscope.domain.models import PeriodAggregate, PeriodComparison, TrendReport
from trendscope.logic.merger import SeriesMerger
from trendscope.services.trends import TrendService

router = APIRouter(prefix="/trends", tags=["trends"], dependencies=[Depends(require_auth)])


class MergeRequest(BaseModel):
    historical: List[dict[str, Any]] = Field(default_factory=list)
    predicted: List[dict[str, Any]] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    data: List[dict[str, Any]] = Field(default_factory=list)
    period_type: Optional[str] = None


class CompareRequest(BaseModel):
    period1: Optional[PeriodAggregate] = None
    period2: Optional[PeriodAggregate] = None


class SparklineRequest(BaseModel):
    data: List[Any] = Field(default_factory=list)
    trend: Optional[Any] = None


@router.post("/merge")
def merge_series(body: MergeRequest, merger: SeriesMerger = Depends(get_merger)):
    """
    Historical + predicted series merged for charting.
    An empty `data` list means the client should render its "no data" state.
    """
    report = merger.merge_with_report(body.historical, body.predicted)
    return {
        "data": [p.to_chart() for p in report.points],
        "rejected": [r.model_dump() for r in report.rejected],
        "has_connector": report.has_connector,
        "empty": report.is_empty,
    }


@router.post("/analyze", response_model=TrendReport)
def analyze_series(body: AnalyzeRequest, service: TrendService = Depends(get_trend_service)):
    return service.analyze(body.data, period_type=body.period_type)


@router.post("/compare", response_model=PeriodComparison)
def compare_periods(body: CompareRequest, service: TrendService = Depends(get_trend_service)):
    return service.compare(body.period1, body.period2)


@router.post("/sparkline")
def sparkline(body: SparklineRequest, service: TrendService = Depends(get_trend_service)):
    return service.sparkline(body.data, trend=body.trend)
