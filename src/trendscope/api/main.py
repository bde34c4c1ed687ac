import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trendscope.config import settings
from trendscope.exceptions import (
    DataSourceError,
    InvalidTransitionError,
    MalformedPointError,
    UpstreamPredictionError,
)
from trendscope.api.middleware import add_request_id, enforce_body_size, log_requests, require_json
from trendscope.logging_config import configure_logging

# Routers
from trendscope.api.routers import system, trends, predictions

configure_logging()
logger = logging.getLogger("trendscope.api")


def _error_payload(request: Request, error: str, detail: str) -> dict:
    payload = {"error": error, "detail": detail}
    rid = getattr(request.state, "request_id", None)
    if rid:
        payload["request_id"] = rid
    return payload


def create_app() -> FastAPI:
    """
    Factory to build the FastAPI application.
    """
    app = FastAPI(title="TrendScope API", version=settings.app.version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Custom Middleware
    app.middleware("http")(add_request_id)
    app.middleware("http")(enforce_body_size)
    app.middleware("http")(require_json)
    if settings.logging.log_requests:
        app.middleware("http")(log_requests)

    app.include_router(system.router)
    app.include_router(trends.router)
    app.include_router(predictions.router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if isinstance(exc, StarletteHTTPException):
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", extra={"path": str(request.url), "request_id": rid})
        return JSONResponse(status_code=500, content=_error_payload(request, "internal_error", "Unexpected server error"))

    @app.exception_handler(MalformedPointError)
    async def malformed_point_handler(request: Request, exc: MalformedPointError):
        return JSONResponse(status_code=422, content=_error_payload(request, "malformed_point", str(exc)))

    @app.exception_handler(DataSourceError)
    async def datasource_exception_handler(request: Request, exc: DataSourceError):
        return JSONResponse(status_code=422, content=_error_payload(request, "invalid_source", str(exc)))

    @app.exception_handler(UpstreamPredictionError)
    async def upstream_exception_handler(request: Request, exc: UpstreamPredictionError):
        return JSONResponse(status_code=502, content=_error_payload(request, "upstream_prediction_error", str(exc)))

    @app.exception_handler(InvalidTransitionError)
    async def transition_exception_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=409, content=_error_payload(request, "invalid_transition", str(exc)))

    return app

# Module-level app for uvicorn entrypoint
app = create_app()
