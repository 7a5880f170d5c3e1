"""
Timing utilities.

Uptime formatting for the health endpoint and retry with backoff for
startup calls to the backend.
"""

import time
from typing import Callable, Tuple, Type, TypeVar
from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


def format_uptime(seconds: float) -> str:
    """
    Format uptime in human-readable format.

    Args:
        seconds: Uptime in seconds

    Returns:
        Formatted string (e.g., "1d 2h 30m 45s")
    """
    seconds = int(seconds)

    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    parts = []
    if days > 0:
        parts.append(f'{days}d')
    if hours > 0:
        parts.append(f'{hours}h')
    if minutes > 0:
        parts.append(f'{minutes}m')
    parts.append(f'{secs}s')

    return ' '.join(parts)


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Retry function with exponential backoff.

    Args:
        func: Function to retry
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Backoff multiplier
        retry_on: Exception types that trigger a retry
        sleep: Sleep function (injectable for tests)

    Returns:
        Function result

    Raises:
        Last exception if all attempts fail
    """
    if max_attempts < 1:
        raise ValueError('max_attempts must be at least 1')

    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == max_attempts:
                raise
            logger.warning(
                f'Attempt {attempt}/{max_attempts} failed: {e}; retrying in {delay:.1f}s'
            )
            sleep(delay)
            delay *= backoff_factor

    raise RuntimeError('Retry failed with no exception')
