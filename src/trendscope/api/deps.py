from __future__ import annotations

from typing import Generator, Optional

from fastapi import Header, HTTPException

from trendscope.ai import PredictionService, build_ai_client
from trendscope.config import settings
from trendscope.logic.merger import SeriesMerger
from trendscope.services.prediction import PredictionWorkflow
from trendscope.services.trends import TrendService

# Global/Cached instances
_workflow_instance: Optional[PredictionWorkflow] = None


def get_workflow() -> PredictionWorkflow:
    global _workflow_instance
    if _workflow_instance is None:
        _workflow_instance = PredictionWorkflow(configured=settings.ai.enabled)
    return _workflow_instance


def reset_workflow() -> None:
    global _workflow_instance
    _workflow_instance = None


def get_merger() -> Generator[SeriesMerger, None, None]:
    yield SeriesMerger()


def get_trend_service() -> Generator[TrendService, None, None]:
    yield TrendService()


def get_prediction_service() -> Generator[PredictionService, None, None]:
    ai_client = build_ai_client(settings)
    yield PredictionService(ai_client=ai_client)


def require_auth(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
):
    token = settings.security.api_token
    if not token:
        return

    if (
        authorization == f"Bearer {token}"
        or authorization == f"Token {token}"
        or x_api_key == token
    ):
        return

    raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
