import json
import logging
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Sequence

from trendscope.ai.client import AIResult, BaseAIClient
from trendscope.config import AISettings, settings
from trendscope.domain.models import PredictionAnalysis, PredictionResponse, PredictionState
from trendscope.exceptions import MalformedPointError, UpstreamPredictionError
from trendscope.logic.normalizer import SeriesNormalizer
from trendscope.logic.trends import TrendAnalyzer
from trendscope.services.prediction import PredictionWorkflow

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a data migration quality analyst.
You analyze test rule execution data to identify trends and predict future data quality issues.

Context:
- "fail_count" represents records that failed validation rules
- "pass_count" represents records that passed validation
- Lower fail counts indicate better data quality

Your task is to:
1. Analyze the historical trend of fail counts
2. Predict future fail counts with confidence intervals
3. Estimate when the critical threshold will be reached (if trending up) or when issues will be resolved (if trending down)
4. Provide actionable recommendations for migration teams

Respond with valid JSON only. No markdown, no explanations, just the JSON object in this format:
{
  "predictions": [
    {"period": "YYYY-MM-DD", "predicted_fail_count": number, "confidence": number, "range": {"low": number, "high": number}}
  ],
  "estimated_critical_date": "YYYY-MM-DD" or null,
  "estimated_resolution_date": "YYYY-MM-DD" or null,
  "key_insights": ["insight 1", "insight 2"],
  "recommendations": ["recommendation 1", "recommendation 2"]
}"""


class PredictionService:
    """
    Requests fail-count forecasts from the configured AI provider and feeds the
    results into the prediction workflow.
    """

    def __init__(
        self,
        ai_client: BaseAIClient,
        analyzer: Optional[TrendAnalyzer] = None,
        config: Optional[AISettings] = None,
    ):
        self.ai_client = ai_client
        self.analyzer = analyzer or TrendAnalyzer()
        self.config = config or settings.ai
        self.normalizer = SeriesNormalizer()

    def request(self, historical: Sequence[Any], object_name: Optional[str] = None) -> PredictionResponse:
        history = self._history_records(historical)
        context = self.build_context(history, object_name=object_name)
        try:
            result: AIResult = self.ai_client.generate(prompt=SYSTEM_PROMPT, context=context)
        except UpstreamPredictionError:
            raise
        except Exception as exc:
            logger.exception("AI prediction request failed")
            raise UpstreamPredictionError(str(exc) or exc.__class__.__name__)

        response = self.parse_content(result.content)
        response.metadata.update(
            {
                "model_used": result.model,
                "source": result.source,
                "historical_data_points": len(history),
                "generated_at": datetime.now(UTC).isoformat(),
            }
        )
        return response

    def run(
        self,
        workflow: PredictionWorkflow,
        historical: Sequence[Any],
        object_name: Optional[str] = None,
    ) -> PredictionState:
        """Runs one request through the workflow: begin, then resolve or fail."""
        sequence = workflow.begin()
        try:
            response = self.request(historical, object_name=object_name)
        except UpstreamPredictionError as exc:
            workflow.fail(sequence, str(exc))
            return workflow.state
        workflow.resolve(sequence, historical, response)
        return workflow.state

    def build_context(self, history: List[Dict[str, Any]], object_name: Optional[str] = None) -> str:
        analysis = self.analyzer.calculate_trend(history)
        counts = [p.get("fail_count") or 0 for p in history]
        payload = {
            "object_name": object_name or "all objects",
            "period_type": self.config.period_type,
            "prediction_periods": self.config.prediction_periods,
            "critical_threshold": self.config.critical_threshold,
            "resolution_threshold": self.config.resolution_threshold,
            "statistics": {
                "latest_fail_count": counts[-1] if counts else 0,
                "average_fail_count": round(sum(counts) / len(counts)) if counts else 0,
                "data_points": len(history),
            },
            "trend": {
                "direction": analysis.direction,
                "slope": analysis.slope,
                "rate_of_change": analysis.rate_of_change,
                "consecutive_increases": analysis.consecutive_increases,
            },
            "history": history[-self.config.history_window:],
        }
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def parse_content(content: str) -> PredictionResponse:
        """Parses the model's JSON answer, tolerating a markdown code fence around it."""
        text = (content or "").strip()
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise UpstreamPredictionError(f"AI response is not valid JSON: {exc.msg}")
        if not isinstance(parsed, dict):
            raise UpstreamPredictionError("AI response must be a JSON object")
        predictions = parsed.get("predictions") or []
        if not isinstance(predictions, list) or not all(isinstance(p, dict) for p in predictions):
            raise UpstreamPredictionError("AI response 'predictions' must be a list of objects")

        try:
            analysis = PredictionAnalysis(
                estimated_critical_date=parsed.get("estimated_critical_date"),
                estimated_resolution_date=parsed.get("estimated_resolution_date"),
                key_insights=parsed.get("key_insights") or [],
                recommendations=parsed.get("recommendations") or [],
            )
        except ValueError as exc:
            raise UpstreamPredictionError(f"Malformed AI analysis: {exc}")
        return PredictionResponse(predictions=predictions, analysis=analysis)

    def _history_records(self, historical: Sequence[Any]) -> List[Dict[str, Any]]:
        records = []
        for i, point in enumerate(historical or []):
            try:
                records.append(self.normalizer.normalize(point, index=i, series="historical").model_dump(exclude_none=True))
            except MalformedPointError as exc:
                logger.warning(f"Leaving malformed point out of the prediction prompt: {exc}")
        return records
