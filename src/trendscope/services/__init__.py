from trendscope.services.prediction import PredictionAssembler, PredictionWorkflow
from trendscope.services.trends import TrendService

__all__ = ["PredictionAssembler", "PredictionWorkflow", "TrendService"]
