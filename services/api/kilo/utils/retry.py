"""Retry utility with exponential backoff."""

import logging
import random
import time
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retrying after `attempt` failures, with 0-25% jitter."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay + delay * random.uniform(0, 0.25)


def with_retry(
    func: Callable[..., T],
    *args: Any,
    retry_if: Callable[[Exception], bool],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    **kwargs: Any,
) -> T:
    """
    Call a blocking provider function, retrying transient failures.

    Args:
        func: The function to execute
        *args: Positional arguments to pass to func
        retry_if: Decides whether an exception is transient; anything it
            rejects is raised immediately
        max_attempts: Maximum number of attempts (default 3)
        base_delay: Initial delay in seconds (default 1.0)
        max_delay: Maximum delay between retries (default 30.0)
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of the function call

    Raises:
        The last exception if all retries fail
    """
    name = getattr(func, "__name__", repr(func))
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not retry_if(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed for {name}: {e}")
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for {name}: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            time.sleep(delay)
            attempt += 1
