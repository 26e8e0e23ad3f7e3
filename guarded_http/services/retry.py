"""
RetryPolicy - Bounded retries with exponential backoff.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from guarded_http.services.cancellation import CancelToken
from guarded_http.services.errors import (
    HttpClientError,
    HttpStatusError,
    RequestTimeoutError,
    TransportError,
)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({408, 429})


@dataclass
class RetryPolicy:
    """
    Retries transient failures of a single logical request.

    Usage:
        policy = RetryPolicy(retries=3)
        response = await policy.run(lambda: transport.send(request))
    """

    retries: int = 3  # Additional attempts after the first
    base_delay: float = 0.1  # Seconds, doubled per retry
    jitter: float = 0.2  # Up to 20% random extra delay

    def compute_delay(self, retry_number: int) -> float:
        """Backoff before the given retry (1-based)."""
        delay = self.base_delay * 2**retry_number
        return delay + delay * self.jitter * random.random()

    def is_retryable(self, error: HttpClientError, idempotent: bool = True) -> bool:
        """Whether a failed attempt may be retried."""
        if isinstance(error, TransportError):
            return error.retryable
        if not idempotent:
            return False
        if isinstance(error, RequestTimeoutError):
            return True
        if isinstance(error, HttpStatusError) and error.status is not None:
            return error.status >= 500 or error.status in RETRYABLE_STATUSES
        return False

    async def run(
        self,
        attempt_fn: Callable[[], Awaitable[T]],
        *,
        idempotent: bool = True,
        cancel_token: CancelToken | None = None,
        label: str = "request",
    ) -> T:
        """
        Run attempt_fn, retrying transient failures.

        Raises:
            HttpClientError: The last attempt's error once retries are exhausted,
                or immediately for non-retryable errors
        """
        max_attempts = self.retries + 1

        for attempt in range(max_attempts):
            try:
                return await attempt_fn()
            except HttpClientError as e:
                if attempt >= self.retries or not self.is_retryable(e, idempotent):
                    raise

                delay = self.compute_delay(attempt + 1)
                logger.warning(
                    f"[Retry] {label} failed: {e.message} "
                    f"(attempt {attempt + 1}/{max_attempts}), retrying in {delay:.2f}s"
                )
                if cancel_token is not None:
                    await cancel_token.run(asyncio.sleep(delay))
                else:
                    await asyncio.sleep(delay)

        # unreachable: the last attempt either returns or raises
        raise RuntimeError("retry loop exited without a result")
