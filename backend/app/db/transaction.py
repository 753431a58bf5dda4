"""
Retryable transactions against the shared store.

Every mutating service call runs its unit of work through ``run_transaction``.
Each attempt gets a fresh session and a fresh transaction, so state is always
re-read from the store; a rolled-back attempt leaves nothing behind, which is
what makes re-running the same unit of work safe.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import Conflict, StoreUnavailable, TransientFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}
RETRYABLE_MESSAGES = ("database is locked", "database table is locked", "could not serialize", "deadlock")
UNIQUE_VIOLATION = "23505"
UNIQUE_MESSAGES = ("unique constraint", "duplicate key")


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: DBAPIError) -> bool:
    """True if the store rejected the transaction because of a concurrent writer."""
    message = str(exc.orig).lower()
    if isinstance(exc, IntegrityError):
        # Only a unique violation is a lost race; other integrity errors propagate
        return _sqlstate(exc) == UNIQUE_VIOLATION or any(fragment in message for fragment in UNIQUE_MESSAGES)
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def is_unavailable(exc: DBAPIError) -> bool:
    return exc.connection_invalidated or isinstance(exc, OperationalError)


async def run_transaction(
    session_maker: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    label: str = "transaction",
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run ``work`` inside a transaction, retrying it when it loses a race.

    Args:
        session_maker: Factory for sessions bound to the store
        work: Coroutine function receiving the session; its writes commit together
        label: Name used in log messages
        max_attempts: Override for TRANSACTION_MAX_ATTEMPTS

    Returns:
        Whatever ``work`` returns from the committed attempt

    Raises:
        TransientFailure: every attempt hit a conflict
        StoreUnavailable: the store could not be reached
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            async with session_maker() as session:
                async with session.begin():
                    result = await work(session)
            return result
        except Conflict as e:
            last_error = e
        except DBAPIError as e:
            if not is_conflict(e):
                if is_unavailable(e):
                    logger.error(f"{label}: store unavailable: {e.orig}")
                    raise StoreUnavailable() from e
                raise
            last_error = e
        except OSError as e:
            logger.error(f"{label}: cannot reach store: {e}")
            raise StoreUnavailable() from e

        logger.warning(f"{label}: conflict on attempt {attempt}/{attempts}: {last_error}")
        if attempt < attempts:
            await asyncio.sleep(settings.TRANSACTION_RETRY_DELAY * attempt * (1 + random.random()))

    logger.error(f"{label}: giving up after {attempts} attempts")
    raise TransientFailure() from last_error
