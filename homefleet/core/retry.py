"""Retry decorator for contended or flaky operations."""
import time
import functools
from typing import Tuple, Type
from homefleet.core.logger import get_logger

logger = get_logger(__name__)


def retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
):
    """Retry decorator with optional backoff.

    Args:
        max_attempts: Maximum number of attempts (0 = retry until success)
        delay: Initial delay in seconds between retries
        backoff: Multiplier applied to the delay after each retry (1.0 = fixed interval)
        exceptions: Tuple of exception types to catch and retry

    Example:
        @retry(max_attempts=0, delay=30, backoff=1.0, exceptions=(PackageLockError,))
        def install(packages):
            # apt call that may hit the dpkg lock
            ...
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            attempt = 0
            limit = f"/{max_attempts}" if max_attempts else ""

            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if max_attempts and attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: {e}"
                        )
                        raise

                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}{limit}): {e}"
                    )
                    logger.info(f"Retrying in {current_delay:.1f}s...")
                    time.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
