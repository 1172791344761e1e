"""
Request ID middleware for log tracing.

Extracts or generates a per-request ID and exposes it through a context
variable so log records and problem responses can carry it.

This is unrelated to the stock ledger's correlation id, which groups the
ledger rows of one movement and is persisted with them.

Headers:
- X-Request-ID: Per-request unique identifier (echoed back on the response)
"""

import uuid
import logging
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Async-safe, isolated per request
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_id() -> str:
    """Generate a short unique ID suitable for logging."""
    return str(uuid.uuid4())[:12]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Sets request_id_ctx for the lifetime of the request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_id()

        token = request_id_ctx.set(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_ctx.get() or "unknown"


class RequestIdLogFilter(logging.Filter):
    """
    Logging filter that injects the request ID into log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(RequestIdLogFilter())
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(request_id)s] %(message)s'
        ))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True
