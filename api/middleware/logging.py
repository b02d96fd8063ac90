# api/middleware/logging.py
from __future__ import annotations

import time
import uuid
from typing import Dict, Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from api.core.logging import get_structlog_logger, set_request_id

logger = get_structlog_logger(__name__)

SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "x-api-key",
    "x-vapi-secret",
    "x-hub-signature",
    "secret",
    "token",
)

QUIET_PATHS = ("/api/health", "/metrics")


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """Reuse an upstream request id when present, else mint one."""
    request_id = headers.get("X-Request-ID") or headers.get("X-Correlation-ID")
    if request_id:
        return request_id

    # W3C trace context: 00-<32 hex trace id>-<span id>-<flags>
    traceparent = headers.get("traceparent")
    if traceparent and traceparent.startswith("00-") and len(traceparent) >= 35:
        return traceparent[3:35]

    return str(uuid.uuid4())


def filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {
        key: "[REDACTED]" if any(s in key.lower() for s in SENSITIVE_HEADERS) else value
        for key, value in headers.items()
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id into the log context and logs each request/response."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = resolve_request_id(request.headers)
        set_request_id(None)
        set_request_id(request_id)

        quiet = request.url.path in QUIET_PATHS
        if not quiet:
            logger.info(
                "request.received",
                method=request.method,
                path=request.url.path,
                query_params=dict(request.query_params) if request.query_params else None,
                client_ip=request.client.host if request.client else "unknown",
                headers=filter_headers(request.headers),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                method=request.method,
                path=request.url.path,
                response_time_ms=round((time.time() - start_time) * 1000, 2),
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        response_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{response_time:.3f}"

        if not quiet:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "response.sent",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                response_time_ms=round(response_time * 1000, 2),
            )

        return response
