"""
Sentry error tracking for the stock API.

Only initialised when SENTRY_DSN is configured. Ledger integrity failures
and unhandled exceptions are captured explicitly; business errors are not.
"""

import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

# Global flag to track initialization
_sentry_initialized = False


def init_sentry() -> None:
    """
    Initialize Sentry SDK with FastAPI integration.

    Called during application startup in main.py.
    """
    global _sentry_initialized

    from app.config import settings

    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=settings.VERSION,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.WARNING,
                event_level=logging.ERROR,
            ),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

    _sentry_initialized = True
    logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Strip credentials from request headers before sending."""
    if "request" in event and "headers" in event["request"]:
        headers = event["request"]["headers"]
        for header in ("authorization", "cookie", "x-api-key"):
            if header in headers:
                headers[header] = "[Filtered]"

    return event


def capture_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Sentry event ID if captured, None otherwise
    """
    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in (context or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)


def is_initialized() -> bool:
    return _sentry_initialized
