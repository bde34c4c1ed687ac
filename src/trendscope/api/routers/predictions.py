from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trendscope.ai import PredictionService
from trendscope.api.deps import get_prediction_service, get_workflow, require_auth
from trendscope.domain.models import PredictionState
from trendscope.services.prediction import PredictionWorkflow

router = APIRouter(prefix="/predictions", tags=["predictions"], dependencies=[Depends(require_auth)])


class GenerateRequest(BaseModel):
    historical: List[dict[str, Any]] = Field(default_factory=list)
    object_name: Optional[str] = None


@router.get("/state", response_model=PredictionState)
def prediction_state(workflow: PredictionWorkflow = Depends(get_workflow)):
    return workflow.state


@router.post("/generate", response_model=PredictionState)
def generate_predictions(
    body: GenerateRequest,
    workflow: PredictionWorkflow = Depends(get_workflow),
    service: PredictionService = Depends(get_prediction_service),
):
    """
    Runs one prediction request. Returns 409 while another request is in flight.
    Provider failures come back as a FAILED state carrying the error message.
    """
    return service.run(workflow, body.historical, object_name=body.object_name)


@router.post("/cancel", response_model=PredictionState)
def cancel_prediction(workflow: PredictionWorkflow = Depends(get_workflow)):
    return workflow.cancel()
