"""Retry strategy for inference calls.

The agent loop never retries. Retrying belongs to the inference side: the
Gateway can be given a RetryStrategy, which by default retries only
InferenceErrors marked transient.
"""

import asyncio
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Type

from ..exceptions import InferenceError, RetryExhaustedError

logger = logging.getLogger(__name__)


def retry_transient(error: Exception) -> bool:
    """Default predicate: retry only transient inference failures."""
    return isinstance(error, InferenceError) and error.transient


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True

    # Errors that are never retried, even if the predicate says so
    fail_fast_errors: list[Type[Exception]] = field(default_factory=list)

    retry_if: Callable[[Exception], bool] = retry_transient


class RetryStrategy:
    """Retries an async operation with exponential backoff.

    Example:
        strategy = RetryStrategy(RetryConfig(max_attempts=4, initial_delay=0.5))
        response = await strategy.execute(provider.infer, request)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize retry strategy.

        Args:
            config: Retry configuration.
            on_retry: Callback before each retry (attempt, error, delay).
            sleep: Awaitable used to wait between attempts.
        """
        self._config = config or RetryConfig()
        if self._config.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._on_retry = on_retry
        self._sleep = sleep
        self._lock = threading.Lock()
        self._stats = {"total_attempts": 0, "successful_retries": 0, "failed_retries": 0}

    @property
    def config(self) -> RetryConfig:
        return self._config

    def should_retry(self, error: Exception) -> bool:
        if any(isinstance(error, t) for t in self._config.fail_fast_errors):
            return False
        return self._config.retry_if(error)

    def calculate_delay(self, attempt: int) -> float:
        """Delay before the attempt after ``attempt`` (1-based)."""
        delay = self._config.initial_delay * (self._config.exponential_base ** (attempt - 1))
        delay = min(delay, self._config.max_delay)
        if self._config.jitter:
            delay = delay * (0.5 + random.random())
        return delay

    async def execute(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Call ``func`` until it succeeds or retries run out.

        Non-retryable errors propagate unchanged.

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error.
        """
        for attempt in range(1, self._config.max_attempts + 1):
            with self._lock:
                self._stats["total_attempts"] += 1

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e):
                    raise

                if attempt >= self._config.max_attempts:
                    with self._lock:
                        self._stats["failed_retries"] += 1
                    logger.error(f"Giving up after {attempt} attempts: {e}")
                    raise RetryExhaustedError(attempt, e) from e

                delay = self.calculate_delay(attempt)
                logger.info(
                    f"Attempt {attempt} failed ({e}); retrying in {delay:.2f}s "
                    f"({attempt + 1}/{self._config.max_attempts})"
                )
                if self._on_retry:
                    self._on_retry(attempt, e, delay)
                await self._sleep(delay)
            else:
                if attempt > 1:
                    with self._lock:
                        self._stats["successful_retries"] += 1
                return result

        raise RetryExhaustedError(self._config.max_attempts, None)

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = {"total_attempts": 0, "successful_retries": 0, "failed_retries": 0}
