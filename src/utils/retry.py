"""
Retry decorators with exponential backoff for database operations

Provides resilient retry logic for transient failures with:
- Exponential backoff (base 2.0)
- Jitter to prevent thundering herd
- Database-aware filtering of retryable errors

Usage:
    from src.utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def fetch_page(cursor, sql):
        cursor.execute(sql)
        return cursor.fetchall()
"""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

# SQLSTATE classes reported by ODBC and libpq for lost or refused connections,
# query timeouts and serialization failures
RETRYABLE_SQLSTATES = ("08", "HYT00", "HYT01", "40001", "40P01", "57P01")

RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "deadlock",
    "lock wait timeout",
    "server has gone away",
    "can't connect",
    "unable to connect",
    "broken pipe",
    "network error",
    "communication link failure",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
    "poolexhaustederror",
)


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before retry number `attempt` (0-based)

    Args:
        attempt: Retry number, starting at 0
        base_delay: Initial delay in seconds
        max_delay: Upper bound before jitter
        exponential_base: Growth factor per attempt
        jitter: Add up to +/-25% random jitter

    Returns:
        Delay in seconds, never below 0.1 when jitter is enabled
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        jitter_amount = delay * 0.25
        delay = max(0.1, delay + random.uniform(-jitter_amount, jitter_amount))
    return delay


def _sqlstate(exception: Exception) -> Optional[str]:
    # pyodbc puts the SQLSTATE first in args; psycopg2 exposes pgcode
    pgcode = getattr(exception, "pgcode", None)
    if pgcode:
        return pgcode
    args = getattr(exception, "args", ())
    if args and isinstance(args[0], str) and len(args[0]) == 5:
        return args[0]
    return None


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a database exception is retryable

    Checks the SQLSTATE when the driver provides one, then falls back to the
    exception type and message.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    sqlstate = _sqlstate(exception)
    if sqlstate and sqlstate.upper().startswith(RETRYABLE_SQLSTATES):
        return True

    exception_type = type(exception).__name__.lower()
    if exception_type in RETRYABLE_EXCEPTION_NAMES:
        return True

    message = str(exception).lower()
    return any(pattern in message for pattern in RETRYABLE_PATTERNS)


def _retrying(
    func: Callable,
    should_retry: Callable[[Exception], bool],
    max_retries: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
    on_retry: Optional[Callable[[int, Exception, float], None]],
) -> Callable:
    func_name = getattr(func, "__name__", "function")

    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        for attempt in range(max_retries + 1):
            try:
                return func(*args, **kwargs)

            except Exception as e:
                if not should_retry(e):
                    logger.error(
                        f"Non-retryable error in {func_name}: {type(e).__name__}: {e}"
                    )
                    raise

                if attempt == max_retries:
                    logger.error(
                        f"Max retries ({max_retries}) exceeded for {func_name}: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                logger.warning(
                    f"Attempt {attempt + 1}/{max_retries} failed for {func_name}: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )

                if on_retry:
                    try:
                        on_retry(attempt + 1, e, delay)
                    except Exception as callback_error:
                        logger.error(f"Error in retry callback: {callback_error}")

                time.sleep(delay)

        raise RuntimeError(f"Unexpected error in retry logic for {func_name}")

    return wrapper


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_exceptions: Tuple of exception types to retry (default: all exceptions)
        on_retry: Callback function(attempt, exception, delay) called on each retry

    Returns:
        Decorated function with retry logic
    """
    def should_retry(e: Exception) -> bool:
        return retryable_exceptions is None or isinstance(e, retryable_exceptions)

    def decorator(func: Callable) -> Callable:
        return _retrying(
            func, should_retry, max_retries, base_delay, max_delay,
            exponential_base, jitter, on_retry,
        )
    return decorator


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator for database operations that only retries transient errors

    Non-retryable errors (syntax errors, constraint violations) fail immediately.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        on_retry: Callback function(attempt, exception, delay) called on each retry

    Example:
        @retry_database_operation(max_retries=5)
        def execute_query(cursor, query):
            cursor.execute(query)
            return cursor.fetchall()
    """
    def decorator(func: Callable) -> Callable:
        return _retrying(
            func, is_retryable_db_exception, max_retries, base_delay, 60.0,
            2.0, True, on_retry,
        )
    return decorator
