from trendscope.ai.client import AIResult, BaseAIClient, HTTPAIClient, SimulatedAIClient, build_ai_client
from trendscope.ai.prediction_service import PredictionService

__all__ = [
    "AIResult",
    "BaseAIClient",
    "HTTPAIClient",
    "SimulatedAIClient",
    "build_ai_client",
    "PredictionService",
]
