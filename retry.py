"""
RETRY LOGIC
===========
Exponential backoff with jitter for network calls.
"""

import time
import random
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Any, Optional, Type, Tuple

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.1


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(config.initial_delay * (config.exponential_base ** attempt), config.max_delay)
    if config.jitter:
        spread = delay * config.jitter_range
        delay += random.uniform(-spread, spread)
    return max(0.0, delay)


def retry(
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Decorator retrying ``exceptions`` with exponential backoff.

    The last exception is re-raised once attempts are exhausted.
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        max_delay=max_delay,
        jitter=jitter,
    )

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(config.max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == config.max_attempts - 1:
                        logger.error(
                            f"All {config.max_attempts} attempts exhausted for {func.__name__}"
                        )
                        raise
                    delay = calculate_backoff(attempt, config)
                    logger.warning(
                        f"Retry {attempt + 1}/{config.max_attempts} for {func.__name__}: "
                        f"{e.__class__.__name__}: {e} (waiting {delay:.2f}s)"
                    )
                    if on_retry:
                        on_retry(attempt, e, delay)
                    (sleep or time.sleep)(delay)

        return wrapper
    return decorator
