"""
Transaction scope and conflict retry for stock operations.

Every public engine call runs its reads and writes through
run_unit_of_work: one database transaction that either commits in full or
is rolled back in full. Write conflicts reported by the database are retried
a bounded number of times, business errors are not retried at all.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.sentry import capture_exception
from app.exceptions import APIException, ConflictError, LedgerIntegrityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available, unique_violation
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03", "23505"}
CHECK_VIOLATION_SQLSTATE = "23514"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def is_write_conflict(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    # SQLite has no SQLSTATE, a competing writer shows up as a locked database
    return "database is locked" in str(getattr(exc, "orig", exc)).lower()


def is_check_violation(exc: DBAPIError) -> bool:
    if _sqlstate(exc) == CHECK_VIOLATION_SQLSTATE:
        return True
    return "check constraint failed" in str(getattr(exc, "orig", exc)).lower()


def _report_integrity_failure(operation: str, exc: LedgerIntegrityError) -> None:
    logger.critical(
        f"LEDGER INTEGRITY FAILURE in {operation}: {exc.reason}",
        extra={"operation": operation, "trace_id": exc.trace_id, **exc.context},
    )
    capture_exception(exc, context={"operation": operation, **exc.context})


async def run_unit_of_work(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    max_retries: Optional[int] = None,
    backoff_ms: Optional[int] = None,
) -> T:
    """
    Run *work* in one transaction on *db* and commit it.

    The session must not carry uncommitted changes of its own when this is
    called: a rollback here discards everything since the last commit.

    Raises:
        ConflictError: the write kept conflicting after max_retries retries
        LedgerIntegrityError: balance and ledger disagree (never retried)
        APIException: business errors from *work*, unchanged
    """
    retries = settings.STOCK_CONFLICT_MAX_RETRIES if max_retries is None else max_retries
    backoff = (settings.STOCK_CONFLICT_BACKOFF_MS if backoff_ms is None else backoff_ms) / 1000
    attempt = 0

    while True:
        attempt += 1
        try:
            if settings.STOCK_TRANSACTION_ISOLATION and not db.in_transaction():
                await db.connection(
                    execution_options={"isolation_level": settings.STOCK_TRANSACTION_ISOLATION}
                )
            result = await work(db)
            await db.commit()
        except LedgerIntegrityError as exc:
            await db.rollback()
            _report_integrity_failure(operation, exc)
            raise
        except ConflictError:
            await db.rollback()
            if attempt > retries:
                raise
            logger.info(f"{operation}: conflict on attempt {attempt}, retrying")
            await asyncio.sleep(backoff * attempt)
            continue
        except APIException:
            await db.rollback()
            raise
        except DBAPIError as exc:
            await db.rollback()
            if is_check_violation(exc):
                integrity = LedgerIntegrityError(
                    "storage rejected a negative balance",
                    context={"db_error": type(exc.orig).__name__ if exc.orig is not None else "unknown"},
                )
                _report_integrity_failure(operation, integrity)
                raise integrity from exc
            if not is_write_conflict(exc):
                raise
            if attempt > retries:
                logger.warning(f"{operation}: giving up after {attempt} attempts on write conflict")
                raise ConflictError() from exc
            logger.info(f"{operation}: write conflict on attempt {attempt}, retrying")
            await asyncio.sleep(backoff * attempt)
            continue
        except Exception:
            await db.rollback()
            raise

        if attempt > 1:
            logger.info(f"{operation}: committed after {attempt} attempts")
        return result
