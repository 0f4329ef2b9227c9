"""Bounded retry for transactions that lose a serialization race."""

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from .db import session_scope
from .errors import SerializationConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
_RETRYABLE_MESSAGES = ("could not serialize access", "deadlock detected", "database is locked")


def is_serialization_failure(exc: BaseException) -> bool:
    """Whether ``exc`` is a driver error worth retrying the whole transaction for."""
    if isinstance(exc, SerializationConflict):
        return True
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _RETRYABLE_SQLSTATES:
        return True

    message = str(orig).lower()
    return any(m in message for m in _RETRYABLE_MESSAGES)


def run_with_retry(
    func: Callable[[], T],
    max_attempts: int = 3,
    retryable: Callable[[BaseException], bool] = is_serialization_failure,
    backoff: float = 0.05,
    name: str = "transaction",
) -> T:
    """Call ``func`` until it succeeds, retrying only failures ``retryable`` accepts.

    Args:
        func: Zero-argument callable running one complete attempt.
        max_attempts: Total attempts, including the first.
        retryable: Predicate selecting which exceptions are retried.
        backoff: Base delay in seconds, doubled after each attempt.
        name: Label for log messages.

    Raises:
        SerializationConflict: When every attempt failed with a retryable error.
        Exception: Any non-retryable error, unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except Exception as e:
            if not retryable(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"{name} still conflicting after {attempt} attempts: {e}")
                raise SerializationConflict(f"{name} failed after {attempt} attempts: {e}", attempts=attempt) from e
            logger.warning(f"{name} conflicted (attempt {attempt}/{max_attempts}), retrying: {e}")
            if backoff > 0:
                time.sleep(backoff * (2 ** (attempt - 1)))


def in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    max_attempts: int = 3,
    retryable: Callable[[BaseException], bool] = is_serialization_failure,
    backoff: float = 0.05,
    name: Optional[str] = None,
) -> T:
    """Run ``work`` in its own transaction, starting a fresh one on each retry.

    Everything ``work`` writes commits together or not at all.
    """

    def attempt() -> T:
        with session_scope(session_factory) as session:
            return work(session)

    return run_with_retry(
        attempt,
        max_attempts=max_attempts,
        retryable=retryable,
        backoff=backoff,
        name=name or getattr(work, "__name__", "transaction"),
    )
