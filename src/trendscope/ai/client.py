import json
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

import requests

from trendscope.exceptions import ConfigError, UpstreamPredictionError

MAX_PROJECTION_PERIODS = 1000


@dataclass
class AIResult:
    content: str
    source: str  # "remote" | "simulated"
    model: Optional[str] = None


class BaseAIClient:
    def generate(self, prompt: str, context: str) -> AIResult:  # pragma: no cover - interface
        raise NotImplementedError


class SimulatedAIClient(BaseAIClient):
    """
    Deterministic offline client for environments without external AI access.
    Extrapolates the trend slope found in the prompt context and answers in the
    same JSON shape the remote model is asked for.
    """

    def generate(self, prompt: str, context: str) -> AIResult:
        data = json.loads(context)
        history = data.get("history") or []
        periods = int(data.get("prediction_periods") or 7)
        slope = float((data.get("trend") or {}).get("slope") or 0.0)
        critical = data.get("critical_threshold")
        resolution = data.get("resolution_threshold")

        last_count = float(history[-1].get("fail_count") or 0) if history else 0.0
        last_day, step = self._cadence(history, data.get("period_type", "daily"))

        predictions = []
        for k in range(1, periods + 1):
            predicted = max(0.0, round(last_count + slope * k, 2))
            spread = round(predicted * (0.1 + 0.05 * k), 2)
            predictions.append(
                {
                    "period": (last_day + step * k).isoformat(),
                    "predicted_fail_count": predicted,
                    "confidence": round(max(0.5, 0.9 - 0.05 * k), 2),
                    "range": {"low": max(0.0, round(predicted - spread, 2)), "high": round(predicted + spread, 2)},
                }
            )

        critical_date = None
        resolution_date = None
        if slope > 0 and critical and last_count < critical:
            critical_date = self._project(last_day, step, (critical - last_count) / slope)
        elif slope < 0 and resolution is not None and last_count >= resolution:
            resolution_date = self._project(last_day, step, (last_count - resolution) / -slope)

        direction = (data.get("trend") or {}).get("direction", "stable")
        payload = {
            "predictions": predictions,
            "estimated_critical_date": critical_date,
            "estimated_resolution_date": resolution_date,
            "key_insights": [
                f"[SIMULATED] Fail counts are {direction} at {slope:+.2f} per period.",
                f"[SIMULATED] Latest observed fail count is {int(last_count)}.",
            ],
            "recommendations": [
                "[SIMULATED] Review the test rules with the highest fail counts first.",
            ],
        }
        return AIResult(content=json.dumps(payload), source="simulated", model="simulated")

    @staticmethod
    def _project(last_day: date, step: timedelta, periods: float) -> Optional[str]:
        # Near-flat trends never reach the threshold within a useful horizon
        if periods > MAX_PROJECTION_PERIODS:
            return None
        try:
            return (last_day + step * int(periods + 1)).isoformat()
        except OverflowError:
            return None

    @staticmethod
    def _cadence(history: list, period_type: str) -> tuple:
        defaults = {"weekly": timedelta(days=7), "monthly": timedelta(days=30)}
        step = defaults.get(period_type, timedelta(days=1))
        days = []
        for point in history[-2:]:
            try:
                days.append(date.fromisoformat(str(point.get("period"))))
            except ValueError:
                continue
        if len(days) == 2 and days[1] > days[0]:
            step = days[1] - days[0]
        last_day = days[-1] if days else date.today()
        return last_day, step


class HTTPAIClient(BaseAIClient):
    """
    Minimal HTTP client for chat-completion style APIs.
    Expects OpenAI-compatible payload shape but is generic enough for most providers.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
        timeout: int = 30,
    ):
        if not base_url:
            raise ConfigError("AI base_url must be configured for HTTP provider.")
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    def generate(self, prompt: str, context: str) -> AIResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": context},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        # Prefer strict JSON output for downstream structured rendering.
        # If a provider rejects response_format, retry once without it.
        payload["response_format"] = {"type": "json_object"}

        try:
            resp = requests.post(self.base_url, json=payload, headers=headers, timeout=self.timeout)
            if resp.status_code != 200 and "response_format" in payload:
                payload.pop("response_format", None)
                resp = requests.post(self.base_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamPredictionError(f"AI provider unreachable: {exc}")

        if resp.status_code != 200:
            raise UpstreamPredictionError(self._error_message(resp))

        try:
            data = resp.json()
            content = data.get("content") or data.get("choices", [{}])[0].get("message", {}).get("content")
        except (ValueError, AttributeError, IndexError) as exc:
            raise UpstreamPredictionError(f"Invalid AI response: {exc}")
        if not content:
            raise UpstreamPredictionError("No response from AI provider")

        return AIResult(content=content, source="remote", model=self.model)

    @staticmethod
    def _error_message(resp) -> str:
        try:
            detail = resp.json().get("error", {}).get("message")
        except (ValueError, AttributeError):
            detail = None
        return detail or f"AI provider error: {resp.status_code}"


def build_ai_client(settings) -> BaseAIClient:
    provider = settings.ai.provider
    if not settings.ai.enabled or provider == "offline":
        return SimulatedAIClient()
    if provider == "http":
        return HTTPAIClient(
            base_url=settings.ai.base_url,
            api_key=settings.ai.api_key,
            model=settings.ai.model,
            max_tokens=settings.ai.max_tokens,
            temperature=settings.ai.temperature,
            timeout=settings.ai.timeout_seconds,
        )
    raise ConfigError(f"Unknown AI provider: {provider}")
