"""
Middleware modules for the stock API.

- Request ID tracking for log correlation
"""

from .request_id import RequestIdMiddleware, RequestIdLogFilter, request_id_ctx

__all__ = [
    "RequestIdMiddleware",
    "RequestIdLogFilter",
    "request_id_ctx",
]
