from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from trendscope.ai import PredictionService, build_ai_client
from trendscope.config import settings
from trendscope.data.loader import load_prediction_payload, load_timeline
from trendscope.domain.models import PredictionStatus
from trendscope.exceptions import TrendScopeError
from trendscope.logging_config import configure_logging
from trendscope.services.prediction import PredictionAssembler, PredictionWorkflow
from trendscope.services.trends import TrendService

cli = typer.Typer(help="TrendScope CLI (trend reconciliation for migration quality dashboards)")


@cli.callback()
def _setup() -> None:
    configure_logging()


def _fail(error: object) -> None:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"TrendScope {settings.app.version}")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the TrendScope API server."""
    uvicorn.run(
        "trendscope.api.main:app",
        host=host,
        port=port,
        reload=reload,
        app_dir="src",
    )


@cli.command()
def merge(
    timeline: Path = typer.Argument(..., help="Historical timeline (csv, xlsx or json)"),
    predictions: Optional[Path] = typer.Option(None, help="Saved prediction response (json)"),
) -> None:
    """Merge a historical timeline with a saved prediction response and print the chart series."""
    try:
        historical = load_timeline(timeline)
        payload = load_prediction_payload(predictions) if predictions else {"predictions": []}
        # Accept both the raw model answer and the {predictions, analysis} envelope
        if "analysis" not in payload:
            payload = PredictionService.parse_content(json.dumps(payload)).model_dump()
        result = PredictionAssembler().assemble(historical, payload)
    except TrendScopeError as exc:
        _fail(exc)
    if not result.series:
        typer.echo("No data available for prediction chart", err=True)
    typer.echo(result.model_dump_json(indent=2, exclude_none=True))


@cli.command()
def analyze(
    timeline: Path = typer.Argument(..., help="Historical timeline (csv, xlsx or json)"),
    period_type: str = typer.Option("daily", help="daily | weekly | monthly"),
) -> None:
    """Print trend direction, slope and any decline warning for a timeline."""
    try:
        report = TrendService().analyze(load_timeline(timeline), period_type=period_type)
    except TrendScopeError as exc:
        _fail(exc)
    typer.echo(report.model_dump_json(indent=2))


@cli.command()
def compare(
    timeline: Path = typer.Argument(..., help="Historical timeline (csv, xlsx or json)"),
    period1_start: datetime = typer.Option(..., formats=["%Y-%m-%d"]),
    period1_end: datetime = typer.Option(..., formats=["%Y-%m-%d"]),
    period2_start: datetime = typer.Option(..., formats=["%Y-%m-%d"]),
    period2_end: datetime = typer.Option(..., formats=["%Y-%m-%d"]),
) -> None:
    """Compare fail counts between two windows of the same timeline."""
    service = TrendService()
    comparator = service.comparator
    try:
        points = load_timeline(timeline)
        p1 = comparator.aggregate(
            f"{period1_start.date()} to {period1_end.date()}", points, period1_start.date(), period1_end.date()
        )
        p2 = comparator.aggregate(
            f"{period2_start.date()} to {period2_end.date()}", points, period2_start.date(), period2_end.date()
        )
    except TrendScopeError as exc:
        _fail(exc)
    result = service.compare(p1, p2)
    typer.echo(result.model_dump_json(indent=2))
    typer.echo(f"Change: {comparator.format_percent(result.difference)}", err=True)


@cli.command()
def predict(
    timeline: Path = typer.Argument(..., help="Historical timeline (csv, xlsx or json)"),
    object_name: Optional[str] = typer.Option(None, help="Object the timeline belongs to"),
) -> None:
    """Request a forecast from the configured AI provider and print the assembled result."""
    try:
        historical = load_timeline(timeline)
        workflow = PredictionWorkflow(configured=settings.ai.enabled)
        service = PredictionService(ai_client=build_ai_client(settings))
        state = service.run(workflow, historical, object_name=object_name)
    except TrendScopeError as exc:
        _fail(exc)
    if state.status == PredictionStatus.FAILED:
        _fail(state.error)
    typer.echo(state.model_dump_json(indent=2, exclude_none=True))


if __name__ == "__main__":
    cli()
