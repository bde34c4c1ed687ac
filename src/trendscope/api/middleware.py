import time
import logging
from uuid import uuid4
from fastapi import Request
from fastapi.responses import JSONResponse
from trendscope.config import settings

logger = logging.getLogger("trendscope.api")

REQUEST_ID_HEADER = "X-Request-ID"
# Endpoints that take a series payload in the request body
_JSON_PREFIXES = ("/trends", "/predictions")


async def add_request_id(request: Request, call_next):
    rid = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    request.state.request_id = rid
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = rid
    return response


async def enforce_body_size(request: Request, call_next):
    """Series payloads are posted whole; anything above max_body_mb is refused before parsing."""
    limit_bytes = settings.security.max_body_mb * 1024 * 1024
    try:
        declared = int(request.headers.get("content-length") or 0)
    except ValueError:
        declared = 0
    if declared > limit_bytes:
        logger.warning(f"Rejected {request.url.path}: body of {declared} bytes exceeds {limit_bytes}")
        return JSONResponse(
            status_code=413,
            content={
                "error": "request_too_large",
                "detail": f"Max request size is {settings.security.max_body_mb}MB",
            },
        )
    return await call_next(request)


async def require_json(request: Request, call_next):
    if request.method == "POST" and request.url.path.startswith(_JSON_PREFIXES):
        has_body = request.headers.get("content-length", "0") != "0"
        content_type = request.headers.get("content-type", "")
        if has_body and not content_type.startswith("application/json"):
            return JSONResponse(
                status_code=415,
                content={"error": "unsupported_media_type", "detail": "Series payloads must be sent as application/json"},
            )
    return await call_next(request)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        status = getattr(response, "status_code", "error")
        logger.info(
            f"{request.method} {request.url.path} -> {status} ({duration_ms}ms)",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": duration_ms,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
