"""
Novel Shelf - Database Retry Logic
Exponential backoff retry for database operations
"""

import time
import sqlite3
from typing import TypeVar, Callable
from functools import wraps

import config
from core.errors import StorageUnavailable
from core.logger import log_warning, log_error

T = TypeVar('T')

RETRYABLE_ERRORS = ("locked", "busy")


def _is_retryable(error: sqlite3.Error, retryable_errors: tuple) -> bool:
    if not isinstance(error, sqlite3.OperationalError):
        return False
    error_msg = str(error).lower()
    return any(err in error_msg for err in retryable_errors)


def db_retry(
    max_retries: int = config.DB_MAX_RETRIES,
    initial_delay: float = config.DB_RETRY_INITIAL_DELAY,
    backoff_multiplier: float = config.DB_RETRY_BACKOFF_MULTIPLIER,
    max_delay: float = config.DB_RETRY_MAX_DELAY,
    retryable_errors: tuple = RETRYABLE_ERRORS
):
    """
    Decorator for retrying database operations with exponential backoff.

    Lock/busy errors are retried. Any sqlite3 error that is not retryable,
    or that outlives the retry budget, is re-raised as StorageUnavailable.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        backoff_multiplier: Multiplier for each retry
        max_delay: Maximum delay between retries
        retryable_errors: Error message substrings that trigger retry
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except sqlite3.Error as e:
                    if not _is_retryable(e, retryable_errors) or attempt >= max_retries:
                        if attempt > 0:
                            log_error(
                                f"Database operation {func.__name__} failed after "
                                f"{attempt + 1} attempts: {e}"
                            )
                        else:
                            log_error(f"Database operation {func.__name__} failed: {e}")
                        raise StorageUnavailable(
                            f"{func.__name__}: {e}", operation=func.__name__
                        ) from e

                    log_warning(
                        f"Database locked (attempt {attempt + 1}/{max_retries + 1}), "
                        f"retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)
                    delay = min(delay * backoff_multiplier, max_delay)

            # Loop always returns or raises
            raise StorageUnavailable(
                f"{func.__name__}: retries exhausted", operation=func.__name__
            )

        return wrapper
    return decorator


class RetryConfig:
    """Configuration for database retry behavior."""

    def __init__(
        self,
        max_retries: int = config.DB_MAX_RETRIES,
        initial_delay: float = config.DB_RETRY_INITIAL_DELAY,
        backoff_multiplier: float = config.DB_RETRY_BACKOFF_MULTIPLIER,
        max_delay: float = config.DB_RETRY_MAX_DELAY
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "max_retries": self.max_retries,
            "initial_delay": f"{self.initial_delay}s",
            "backoff_multiplier": f"{self.backoff_multiplier}x",
            "max_delay": f"{self.max_delay}s"
        }


# Default retry configuration
DEFAULT_RETRY_CONFIG = RetryConfig()
