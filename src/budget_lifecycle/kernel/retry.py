"""
Retry with exponential backoff for SQLite lock contention.

Only "database is locked" style OperationalErrors are retried. Domain errors
(NotFound, InvalidState, Forbidden, ValidationError, ConflictRisk) are
terminal and pass straight through.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from budget_lifecycle.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_lock_contention(exc: BaseException) -> bool:
    """True for SQLite busy/locked errors."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds
        max_wait_ms: Maximum wait time in milliseconds

    Returns:
        Decorator that retries the wrapped store call

    Example:
        @retry_on_sqlite_lock()
        def save(self, plan, expected_revision):
            ...
    """
    return retry(
        retry=retry_if_exception(is_lock_contention),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
