"""retry policy for registry requests, built on tenacity."""
import logging
from typing import FrozenSet

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .breaker import CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class RetryableStatus(Exception):
    """carries a response whose status is worth another attempt."""
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"retryable status {response.status_code} from {response.request.url}")


class RetryStrategy(BaseModel):
    """how many times, and how patiently, a failed request is re-sent."""
    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.5
    retryable_statuses: FrozenSet[int] = DEFAULT_RETRYABLE_STATUSES

    @classmethod
    def none(cls) -> "RetryStrategy":
        return cls(max_attempts=1)

    def is_retryable_status(self, status: int) -> bool:
        return status in self.retryable_statuses

    def build(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential_jitter(
                multiplier=self.initial_delay, max=self.max_delay, jitter=self.jitter
            ),
            retry=retry_if_exception(is_retryable_exception),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )


def is_retryable_exception(exc: BaseException) -> bool:
    # an open breaker must fail fast, never be retried into
    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, RetryableStatus):
        return True
    return isinstance(exc, httpx.TransportError)
