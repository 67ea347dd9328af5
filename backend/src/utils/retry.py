"""
Bounded retry for repository round trips.

Driver timeouts and dropped connections become TransientRepositoryError and are
retried with exponential backoff. Every other error rolls the session back and
propagates unchanged on the first attempt.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from core.config import REPOSITORY_MAX_RETRIES, REPOSITORY_RETRY_BACKOFF_SECONDS
from core.exceptions import TransientRepositoryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
    TimeoutError,
    ConnectionError,
)


def is_transient(error: BaseException) -> bool:
    """Whether ``error`` is a retryable repository failure."""
    if isinstance(error, TransientRepositoryError):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, TRANSIENT_ERRORS)


def run_with_retry(
    operation: Callable[[], T],
    db: Optional[Session] = None,
    description: str = "repository operation",
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` and retry it on transient repository failures.

    ``operation`` must contain the whole unit of work (reads, writes and commit)
    so that a retry starts again from a clean transaction.

    Args:
        operation: Zero-argument callable performing the unit of work
        db: Session to roll back between attempts and on failure
        description: Label used in log messages
        max_attempts: Total attempts (defaults to REPOSITORY_MAX_RETRIES)
        backoff_seconds: Base delay, doubled after each failed attempt
        sleep: Sleep function (injectable for tests)

    Returns:
        Whatever ``operation`` returns

    Raises:
        TransientRepositoryError: If every attempt failed transiently
        Exception: Any non-transient error from ``operation``, unchanged
    """
    attempts = max(1, max_attempts if max_attempts is not None else REPOSITORY_MAX_RETRIES)
    delay = backoff_seconds if backoff_seconds is not None else REPOSITORY_RETRY_BACKOFF_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as e:
            if db is not None:
                db.rollback()
            if not is_transient(e):
                raise
            if attempt == attempts:
                logger.warning(f"{description} failed after {attempts} attempts: {e}")
                if isinstance(e, TransientRepositoryError):
                    raise
                raise TransientRepositoryError() from e
            logger.info(f"{description} failed transiently (attempt {attempt}/{attempts}), retrying: {e}")
            sleep(delay * (2 ** (attempt - 1)))

    # range() always runs at least once
    raise TransientRepositoryError()
