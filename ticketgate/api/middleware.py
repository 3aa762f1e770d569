"""API layer — Request middleware.

- Request ID injection (X-Request-ID header)
- Structured access logging
- Global exception handler → clean ErrorResponse
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ticketgate.api.schemas import ErrorResponse
from ticketgate.exceptions import (
    AccessDeniedError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    RateLimitedError,
    ResourceError,
    TicketGateError,
    ValidationError,
)
from ticketgate.logging import get_logger

log = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log each request with timing information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)

        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=getattr(request.state, "request_id", None),
        )
        return response


def status_for(exc: TicketGateError) -> int:
    if isinstance(exc, AccessDeniedError):
        return 403
    if isinstance(exc, RateLimitedError):
        return 429
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ResourceError):
        return 502
    if isinstance(exc, ConfigurationError):
        return 503
    return 500


def build_error_handler() -> Any:
    """Return a FastAPI exception handler for TicketGateError subclasses."""

    async def handler(request: Request, exc: TicketGateError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        status_code = status_for(exc)
        if status_code >= 500:
            log.error("request_failed", error=exc.message, kind=exc.kind.value, request_id=request_id)

        body = ErrorResponse(
            error=exc.message,
            code=exc.kind.value,
            detail=exc.context or None,
            request_id=request_id,
        )
        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.reset_seconds)}
        return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)

    return handler
