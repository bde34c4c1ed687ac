from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError

from trendscope.domain.models import (
    AssembledPrediction,
    KeyDates,
    PredictionResponse,
    PredictionState,
    PredictionStatus,
)
from trendscope.exceptions import InvalidTransitionError, UpstreamPredictionError
from trendscope.logic.merger import SeriesMerger

logger = logging.getLogger(__name__)


class PredictionAssembler:
    """
    Turns a prediction payload plus the historical context into what the dashboard renders:
    merged chart series, key dates and the AI's insights/recommendations.
    """

    def __init__(self, merger: Optional[SeriesMerger] = None):
        self.merger = merger or SeriesMerger()

    def assemble(
        self,
        historical: Optional[Sequence[Any]],
        response: Union[PredictionResponse, Mapping, None],
    ) -> AssembledPrediction:
        payload = self.parse_response(response)
        report = self.merger.merge_with_report(historical, payload.predictions)
        analysis = payload.analysis
        return AssembledPrediction(
            series=report.points,
            key_dates=KeyDates(
                critical_date=self._parse_date(analysis.estimated_critical_date, "estimated_critical_date"),
                resolution_date=self._parse_date(analysis.estimated_resolution_date, "estimated_resolution_date"),
            ),
            insights=list(analysis.key_insights),
            recommendations=list(analysis.recommendations),
            rejected=report.rejected,
        )

    @staticmethod
    def parse_response(response: Union[PredictionResponse, Mapping, None]) -> PredictionResponse:
        if response is None:
            raise UpstreamPredictionError("No prediction response received")
        if isinstance(response, PredictionResponse):
            return response
        try:
            return PredictionResponse.model_validate(response)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise UpstreamPredictionError(f"Malformed prediction response at {location}: {first['msg']}")

    @staticmethod
    def _parse_date(value: Optional[str], field: str) -> Optional[Union[datetime, date]]:
        # Parsed only; timezone interpretation is left to the consumer
        if value is None or value == "":
            return None
        try:
            if "T" in value:
                return datetime.fromisoformat(value)
            return date.fromisoformat(value)
        except ValueError:
            raise UpstreamPredictionError(f"Unparsable {field}: {value!r}")


class PredictionWorkflow:
    """
    Explicit state machine for the prediction panel:

        NOT_CONFIGURED -> IDLE -> GENERATING -> READY | FAILED
        READY -> GENERATING, FAILED -> GENERATING (regenerate / retry)

    Each request gets a sequence number from `begin`. Responses are applied only
    if they carry the latest sequence number while the workflow is generating;
    anything else is a stale response and is discarded.
    """

    def __init__(self, configured: bool = True, assembler: Optional[PredictionAssembler] = None):
        self.assembler = assembler or PredictionAssembler()
        self._lock = threading.Lock()
        self._sequence = 0
        status = PredictionStatus.IDLE if configured else PredictionStatus.NOT_CONFIGURED
        self._state = PredictionState(status=status)
        self._settled = self._state

    @property
    def state(self) -> PredictionState:
        return self._state

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    def configure(self, enabled: bool) -> PredictionState:
        with self._lock:
            if self._state.status == PredictionStatus.GENERATING:
                raise InvalidTransitionError("Cannot change configuration while a prediction is generating")
            if not enabled:
                self._replace(PredictionState(status=PredictionStatus.NOT_CONFIGURED, sequence=self._sequence))
            elif self._state.status == PredictionStatus.NOT_CONFIGURED:
                self._replace(PredictionState(status=PredictionStatus.IDLE, sequence=self._sequence))
            return self._state

    def begin(self) -> int:
        """Starts a request and returns its sequence number."""
        with self._lock:
            status = self._state.status
            if status == PredictionStatus.NOT_CONFIGURED:
                raise InvalidTransitionError("AI predictions are not configured")
            if status == PredictionStatus.GENERATING:
                raise InvalidTransitionError("A prediction request is already in progress")

            self._sequence += 1
            self._settled = self._state
            # Previous result stays visible while regenerating
            self._replace(
                PredictionState(
                    status=PredictionStatus.GENERATING,
                    sequence=self._sequence,
                    result=self._state.result,
                )
            )
            logger.info(f"Prediction request {self._sequence} started")
            return self._sequence

    def resolve(
        self,
        sequence: int,
        historical: Optional[Sequence[Any]],
        response: Union[PredictionResponse, Mapping, None],
    ) -> bool:
        """
        Applies a response. Returns False when the response was stale and discarded.
        A malformed payload moves the workflow to FAILED.
        """
        try:
            result = self.assembler.assemble(historical, response)
        except UpstreamPredictionError as exc:
            return self.fail(sequence, str(exc))
        except Exception as exc:
            logger.exception(f"Assembling prediction request {sequence} failed")
            return self.fail(sequence, f"Could not assemble prediction response: {exc}")

        with self._lock:
            if not self._is_current(sequence):
                return False
            self._replace(PredictionState(status=PredictionStatus.READY, sequence=sequence, result=result))
            logger.info(f"Prediction request {sequence} ready ({len(result.series)} points)")
            return True

    def fail(self, sequence: int, message: str) -> bool:
        with self._lock:
            if not self._is_current(sequence):
                return False
            self._replace(PredictionState(status=PredictionStatus.FAILED, sequence=sequence, error=message))
            logger.warning(f"Prediction request {sequence} failed: {message}")
            return True

    def cancel(self) -> PredictionState:
        """
        Abandons the outstanding request (e.g. the view was torn down).
        Its response will be discarded on arrival.
        """
        with self._lock:
            if self._state.status == PredictionStatus.GENERATING:
                logger.info(f"Prediction request {self._sequence} cancelled")
                self._replace(self._settled.model_copy(update={"sequence": self._sequence, "updated_at": datetime.now(UTC)}))
            return self._state

    def _is_current(self, sequence: int) -> bool:
        if sequence != self._sequence or self._state.status != PredictionStatus.GENERATING:
            logger.info(f"Discarding stale prediction response {sequence} (latest is {self._sequence})")
            return False
        return True

    def _replace(self, state: PredictionState) -> None:
        self._state = state
