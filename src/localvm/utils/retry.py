"""Retry utilities with exponential backoff.

This module provides a decorator for retrying operations that fail with
a retriable classification (transient SSH failures, auth configuration
errors), and a context manager for polling a machine until it reaches a
desired state.
"""

from __future__ import annotations

import functools
import random
import time
from collections.abc import Callable
from typing import Any, ParamSpec, TypeVar

from localvm.utils.logging import get_logger

logger = get_logger("retry")

P = ParamSpec("P")
T = TypeVar("T")


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before the next attempt, capped at max_delay.

    Jitter adds up to 50% on top of the capped delay.
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay = delay * (1 + random.random() * 0.5)
    return delay


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[Exception, int], None] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for retrying functions with exponential backoff.

    Only the listed exception types are retried; anything else
    propagates on the first failure.

    Args:
        max_attempts: Maximum number of attempts (including first try).
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay in seconds (caps exponential growth).
        exponential_base: Base for exponential calculation (default 2).
        jitter: Add random jitter to delays.
        exceptions: Tuple of exception types to catch and retry.
        on_retry: Optional callback called on each retry with (exception, attempt).

    Returns:
        Decorated function with retry logic.

    Example:
        >>> @retry_with_backoff(max_attempts=5, exceptions=(RetriableError,))
        ... def start():
        ...     return manager.start_host(config)
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {e}")
                        raise

                    delay = compute_delay(
                        attempt, base_delay, max_delay, exponential_base, jitter
                    )
                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for "
                        f"{func.__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        on_retry(e, attempt)

                    time.sleep(delay)

            raise RuntimeError("Unexpected retry loop exit")

        return wrapper

    return decorator


class RetryContext:
    """Context manager for manual retry control.

    Used where the loop body decides for itself whether an attempt
    succeeded, such as polling a driver until a state is reached.

    Args:
        max_attempts: Maximum number of attempts.
        base_delay: Initial delay between retries.
        max_delay: Maximum delay cap.
        jitter: Whether to add random jitter.

    Example:
        >>> with RetryContext(max_attempts=10) as retry:
        ...     while retry.should_continue():
        ...         if driver.get_state() == MachineState.STOPPED:
        ...             break
        ...         retry.record_failure(TimeoutError("still running"))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: bool = True,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.attempt = 0
        self.last_exception: Exception | None = None

    def __enter__(self) -> RetryContext:
        return self

    def __exit__(self, *args: Any) -> None:
        pass

    def should_continue(self) -> bool:
        """Check if another attempt should be made."""
        return self.attempt < self.max_attempts

    def record_failure(self, exception: Exception) -> None:
        """Record a failed attempt and sleep before next try.

        Args:
            exception: The exception describing the failure.

        Raises:
            The exception if max attempts reached.
        """
        self.attempt += 1
        self.last_exception = exception

        if self.attempt >= self.max_attempts:
            raise exception

        delay = compute_delay(self.attempt, self.base_delay, self.max_delay, jitter=self.jitter)
        logger.debug(
            f"Attempt {self.attempt}/{self.max_attempts} failed: {exception}. "
            f"Waiting {delay:.2f}s..."
        )
        time.sleep(delay)

    @property
    def attempts_remaining(self) -> int:
        """Number of attempts remaining."""
        return self.max_attempts - self.attempt
