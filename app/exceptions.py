"""
RFC 7807 Problem Details exception handling.

Provides standardized error responses for the API in the
"Problem Details for HTTP APIs" format (RFC 7807), plus the stock ledger
error taxonomy:

- ValidationError, NotFoundError, InsufficientStockError and
  InvalidTransitionError are business errors. Their detail tells the caller
  how to correct the request.
- ConflictError is a concurrent write that survived the retry budget.
- LedgerIntegrityError means a balance and its ledger row disagree. It is
  never auto-corrected and is reported generically.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://api.fieldops.local/problems"


def _get_trace_id() -> str:
    """Get trace ID from the request context or generate a new one."""
    from app.middleware.request_id import get_request_id

    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the stock API."""

    # Authentication
    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"
    METHOD_NOT_ALLOWED = "RES_005"

    # Stock
    INSUFFICIENT_STOCK = "BIZ_004"
    INVALID_TRANSITION = "BIZ_005"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"
    LEDGER_INTEGRITY = "SRV_004"


class ProblemDetail(BaseModel):
    """
    RFC 7807 problem body.

    code is the machine-readable ErrorCode value, trace_id matches the
    X-Request-ID of the failing request, errors carries per-field detail
    (validation failures, the remaining quantity of an InsufficientStockError).
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "https://api.fieldops.local/problems/biz-004",
                "title": "Conflict",
                "status": 409,
                "detail": "Insufficient stock, remaining: 4",
                "instance": "/api/v2/inventory/buckets/8c1d.../transfer",
                "code": "BIZ_004",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
                "errors": [{"field": "on_hand", "remaining": 4, "requested": 6}],
            }
        }
    }


# Fallbacks for plain HTTPExceptions raised by FastAPI/Starlette themselves
_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def _problem_type(code: ErrorCode) -> str:
    return f"{PROBLEM_BASE_URI}/{code.value.lower().replace('_', '-')}"


class APIException(HTTPException):
    """
    Base exception for the API with RFC 7807 support.

    Usage:
        raise APIException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Inventory bucket not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or _TITLES.get(status_code, "Error")
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance or instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Stock error taxonomy

class NotFoundError(APIException):
    """Bucket, ledger row or reference record does not exist (404)."""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class ValidationError(APIException):
    """Malformed input (422). Raised before any storage is touched."""

    def __init__(self, detail: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class UnauthorizedError(APIException):
    """No usable bearer token, so no actor to record (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ConflictError(APIException):
    """Concurrent write on the same bucket that could not be retried away (409)."""

    def __init__(self, detail: str = "Stock was modified concurrently, please try again"):
        super().__init__(status_code=409, code=ErrorCode.CONFLICT, detail=detail)


class InsufficientStockError(APIException):
    """A delta would drive on_hand or on_loan below zero (409)."""

    def __init__(self, remaining: int, requested: int, field: str = "on_hand"):
        self.remaining = remaining
        self.requested = requested
        self.field = field
        super().__init__(
            status_code=409,
            code=ErrorCode.INSUFFICIENT_STOCK,
            detail=f"Insufficient stock, remaining: {remaining}",
            errors=[{
                "field": field,
                "message": f"Requested {requested}, only {remaining} available",
                "type": "insufficient_stock",
                "remaining": remaining,
                "requested": requested,
            }],
        )


class InvalidTransitionError(APIException):
    """Movement that would be a no-op or targets an impossible state (400)."""

    def __init__(self, detail: str):
        super().__init__(status_code=400, code=ErrorCode.INVALID_TRANSITION, detail=detail)


class LedgerIntegrityError(APIException):
    """
    A balance change and its ledger row disagree (500).

    The real detail is kept on the exception for logs only; callers get a
    generic message.
    """

    def __init__(self, reason: str, context: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.context = context or {}
        super().__init__(
            status_code=500,
            code=ErrorCode.LEDGER_INTEGRITY,
            detail="An internal error occurred",
        )

    def __str__(self) -> str:
        return f"Ledger integrity violation: {self.reason}"


# FastAPI exception handlers

def _problem_response(
    request: Request,
    problem: ProblemDetail,
    allowed_origins: Optional[List[str]],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    response = JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
    return response


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Build a problem+json response for errors that are not APIExceptions."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )
    return _problem_response(request, problem, allowed_origins)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(APIException, handlers["api"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
        if isinstance(exc, LedgerIntegrityError):
            # Already logged at CRITICAL by the unit of work with full context
            logger.error(
                f"LedgerIntegrityError surfaced to client: {exc.reason}",
                extra={"trace_id": exc.trace_id, "path": request.url.path},
            )
        else:
            logger.warning(
                f"APIException: {exc.code.value} - {exc.detail}",
                extra={"trace_id": exc.trace_id, "status_code": exc.status_code, "path": request.url.path},
            )
        problem = exc.to_problem_detail(instance=str(request.url.path))
        return _problem_response(request, problem, allowed_origins, headers=exc.headers)

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return create_problem_response(
            status_code=exc.status_code,
            code=_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Pydantic request errors, one entry per offending field."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        trace_id = _get_trace_id()
        logger.exception(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )

        from app.core.sentry import capture_exception
        capture_exception(
            exc,
            context={"trace_id": trace_id, "path": request.url.path, "method": request.method},
        )

        from app.config import settings
        detail = str(exc) if settings.DEBUG and not settings.is_production else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "api": handle_api_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
