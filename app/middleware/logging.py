"""Logging middleware for request tracking."""
import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = structlog.get_logger(__name__)

# Voting tokens travel in query strings (pixel URLs, vote links)
REDACTED_PARAMS = {"token"}


def redact_query_params(request: Request):
    """Query string for logging, with credential values masked."""
    if not request.query_params:
        return None
    return "&".join(
        f"{key}={'***' if key in REDACTED_PARAMS else value}"
        for key, value in request.query_params.multi_items()
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id to every log line and echo it back as X-Request-ID."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse an upstream id (load balancer, proxy) when one is supplied
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        start_time = time.time()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query_params=redact_query_params(request),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration = time.time() - start_time
            logger.error(
                "request_failed",
                exception=str(exc),
                exception_type=type(exc).__name__,
                duration_ms=round(duration * 1000, 2),
            )
            raise

        duration = time.time() - start_time
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        return response
