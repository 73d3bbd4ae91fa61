"""
Retry logic with backoff for handling transient store failures.

Provides a decorator for retrying connect attempts and a classifier that
tells connection-class database errors apart from everything else.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional

from sqlalchemy import exc as sa_exc


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base);
            1.0 gives a fixed delay between attempts
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=3, base_delay=1.0, exponential_base=1.0)
        def ping(engine):
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        current_delay = min(delay, max_delay)

                        if on_retry:
                            on_retry(attempt + 1, e, current_delay)

                        if current_delay > 0:
                            time.sleep(current_delay)
                        delay *= exponential_base
                    else:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {str(e)}"
                        ) from e

            raise RetryError(
                f"Unexpected retry exhaustion: {str(last_exception)}"
            ) from last_exception

        return wrapper
    return decorator


CONNECTION_ERROR_TYPES: Tuple[Type[Exception], ...] = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    ConnectionError,
    TimeoutError,
)


def is_connection_error(exception: Exception) -> bool:
    """
    Determine if an exception means the store connection is unusable.

    Args:
        exception: Exception to check

    Returns:
        True for network and invalidated-connection errors. A pool checkout
        timeout is not one: the store is busy, not gone.
    """
    if isinstance(exception, sa_exc.TimeoutError):
        return False
    if isinstance(exception, sa_exc.DBAPIError) and exception.connection_invalidated:
        return True
    if isinstance(exception, CONNECTION_ERROR_TYPES):
        return True

    error_str = str(exception).lower()
    transient_keywords = [
        'timeout',
        'connection refused',
        'connection reset',
        'server closed the connection',
        'could not connect',
    ]
    return any(keyword in error_str for keyword in transient_keywords)
