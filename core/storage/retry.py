"""
Retry policy for backend calls.

Transient transport failures are retried with exponential backoff and
jitter; anything else is raised on the first attempt.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from ..exceptions import DocumentTooLargeError
from ..models.config import StoreSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP statuses worth retrying: rate limiting and server side failures
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class RetryConfig:
    """Retry configuration for backend calls"""

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: bool = True
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> 'RetryConfig':
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt number"""
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Up to 20% jitter
            delay += delay * 0.2 * random.random()

        return delay


def is_transient(error: BaseException) -> bool:
    """Whether a failed call may succeed when repeated"""
    if isinstance(error, DocumentTooLargeError):
        return False
    if isinstance(error, UnexpectedResponse):
        return error.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, (ResponseHandlingException, asyncio.TimeoutError, TimeoutError, ConnectionError, OSError))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    retry: RetryConfig,
    description: str,
    should_retry: Optional[Callable[[BaseException], bool]] = None
) -> T:
    """
    Await operation, retrying transient failures.

    The last error is re-raised unchanged once attempts are exhausted.
    """
    should_retry = should_retry or is_transient
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e) or attempt >= retry.max_retries:
                raise
            delay = retry.get_delay(attempt)
            attempt += 1
            logger.warning(
                f"{description} failed (attempt {attempt}/{retry.max_attempts}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
