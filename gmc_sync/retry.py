"""
Retry with exponential backoff and jitter.

Two shapes are offered: ``retry_with_backoff`` wraps a whole call (S3 feed
download, EventBridge publishing), ``RetryableOperation`` drives a loop whose
body decides itself what counts as success (taxonomy re-lookup after create).
"""

import functools
import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from .exceptions import FeedSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """Attempt budget, delay curve and which exceptions are worth another try."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: Tuple[float, float] = (0.5, 1.5),
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        non_retryable_exceptions: Tuple[Type[Exception], ...] = (),
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt``: ``base * exp_base**attempt``, capped, jittered."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(*self.jitter_range)
        return delay

    def is_retryable(self, exception: Exception) -> bool:
        """
        Non-retryable types always lose; a FeedSyncError is trusted on its own
        ``retryable`` flag; anything else must match ``retryable_exceptions``.
        """
        if isinstance(exception, self.non_retryable_exceptions):
            return False
        if isinstance(exception, FeedSyncError) and not exception.retryable:
            return False
        return isinstance(exception, self.retryable_exceptions)


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator re-invoking the wrapped function while it raises retryable errors.

    Args:
        config: RetryConfig instance (overrides the other params if provided)
        max_attempts: Maximum number of calls
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        retryable_exceptions: Exception types worth another call
        on_retry: Called with (exception, attempt number) before each retry

    The last exception is re-raised once the attempts are used up.
    """
    if config is None:
        config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            retryable_exceptions=retryable_exceptions,
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    attempt += 1
                    if not config.is_retryable(e):
                        logger.warning(f"{func.__name__} raised non-retryable {type(e).__name__}: {e}")
                        raise
                    if attempt >= config.max_attempts:
                        logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise

                    delay = config.calculate_delay(attempt - 1)
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{config.max_attempts} failed: {e}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    if on_retry:
                        on_retry(e, attempt)
                    time.sleep(delay)

        return wrapper
    return decorator


class RetryableOperation:
    """
    Iterator yielding zero-based attempt numbers, sleeping before each one but
    the first.

    Iteration ends after ``max_attempts``; what exhaustion means is up to
    the caller.

    Example:
        for attempt in RetryableOperation(config):
            node = lookup()
            if node:
                return node
            create()
        raise TaxonomyResolutionError(...)
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()
        self.attempt = 0

    def __iter__(self):
        return self

    def __next__(self) -> int:
        if self.attempt >= self.config.max_attempts:
            raise StopIteration

        if self.attempt:
            delay = self.config.calculate_delay(self.attempt - 1)
            logger.info(f"Waiting {delay:.2f}s before attempt {self.attempt + 1}")
            time.sleep(delay)

        self.attempt += 1
        return self.attempt - 1
