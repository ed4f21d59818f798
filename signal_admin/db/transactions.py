"""Retrying transaction runner and store error translation."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from signal_admin import metrics
from signal_admin.config import settings
from signal_admin.errors import ConnectivityError, SignalAdminError, TransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}

# SQLite reports write conflicts as OperationalError text
RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database table is locked")


def is_retryable(exc: BaseException) -> bool:
    """True if ``exc`` is a store conflict or dropped connection worth retrying."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True

    message = str(orig).lower()
    return any(text in message for text in RETRYABLE_SQLITE_MESSAGES)


def translate_store_error(
    exc: SQLAlchemyError,
    operation: str,
    target_id: Optional[str] = None,
) -> SignalAdminError:
    """Map a store exception outside a transaction to the error taxonomy."""
    if isinstance(exc, DBAPIError) and (exc.connection_invalidated or is_retryable(exc)):
        return ConnectivityError(
            f"Store unavailable: {exc.orig}", operation=operation, target_id=target_id
        )
    return TransactionError(
        f"Store operation failed: {exc}", operation=operation, target_id=target_id, attempts=1
    )


async def run_transaction(
    session: AsyncSession,
    body: Callable[[AsyncSession], Awaitable[T]],
    operation: str,
    target_id: Optional[str] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> T:
    """
    Run ``body`` inside one transaction, retrying the whole body on conflict.

    ``body`` must do all of its reads before its writes and must not touch
    anything outside the session; it is re-executed from scratch after a
    rollback. Domain errors raised by the body (NotFoundError, ...) roll back
    and propagate without retry.

    Args:
        session: Session with no pending changes; an open read-only
            transaction is rolled back first
        body: Coroutine function receiving the session
        operation: Operation name for logs and errors
        target_id: Id of the document the operation targets
        max_attempts: Attempts before giving up (defaults to settings)
        backoff_seconds: Linear backoff unit between attempts (defaults to settings)

    Returns:
        Whatever ``body`` returned on the committed attempt

    Raises:
        TransactionError: Retries exhausted or a non-retryable store failure
        RuntimeError: The session holds changes the caller has not committed
    """
    max_attempts = max_attempts or settings.transaction_max_attempts
    if backoff_seconds is None:
        backoff_seconds = settings.transaction_retry_backoff_seconds

    if session.new or session.dirty or session.deleted:
        raise RuntimeError(
            f"{operation} needs a session without pending changes; commit or roll back first"
        )
    if session.in_transaction():
        # Drop an autobegun read transaction so the first attempt reads fresh rows
        await session.rollback()

    for attempt in range(1, max_attempts + 1):
        try:
            async with session.begin():
                return await body(session)
        except SignalAdminError:
            raise
        except SQLAlchemyError as e:
            if is_retryable(e) and attempt < max_attempts:
                metrics.record_transaction_retry(operation)
                logger.warning(
                    f"{operation} conflict on {target_id} (attempt {attempt}/{max_attempts}): {e.__class__.__name__}"
                )
                await asyncio.sleep(backoff_seconds * attempt)
                continue

            logger.error(f"{operation} failed on {target_id} after {attempt} attempt(s): {e}")
            raise TransactionError(
                f"Transaction failed: {e.__class__.__name__}",
                operation=operation,
                target_id=target_id,
                attempts=attempt,
            ) from e

    # Unreachable: the final attempt either returns or raises
    raise TransactionError(
        "Transaction retries exhausted",
        operation=operation,
        target_id=target_id,
        attempts=max_attempts,
    )
