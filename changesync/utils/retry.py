"""Retry of whole replication passes with exponential backoff."""

import time
from functools import wraps
from typing import Callable, Tuple, Type

import structlog

from changesync.sync.errors import SequencerError, StoreReadError, StoreWriteError

log = structlog.stdlib.get_logger()

TRANSIENT_ERRORS: Tuple[Type[Exception], ...] = (StoreReadError, StoreWriteError, SequencerError)


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """
    Decorator that re-runs a function with exponential backoff.

    The engine never retries inside a pass; wrap the caller's pass function
    with this instead, so each attempt starts over from its own ``since``.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Exception types that trigger a retry
        sleep: Function used to wait between attempts

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        log.error(
                            "max_retries_reached",
                            function=func.__name__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)

                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                    sleep(delay)

        return wrapper

    return decorator
