"""async circuit breaker guarding requests to a single registry host."""
import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """raised when the breaker rejects a call without sending it."""
    def __init__(self, host: str, retry_after: float):
        self.host = host
        self.retry_after = retry_after
        super().__init__(f"circuit breaker for '{host}' is open, retry after {retry_after:.1f}s")


class CircuitBreakerStrategy(BaseModel):
    """breaker configuration; `enabled=False` makes the breaker transparent."""
    enabled: bool = True
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1

    @classmethod
    def none(cls) -> "CircuitBreakerStrategy":
        return cls(enabled=False)


class CircuitBreaker:
    """
    closed -> open after `failure_threshold` consecutive failures,
    open -> half-open once `recovery_timeout` has elapsed,
    half-open -> closed on a successful probe, back to open on a failed one.

    `is_failure` decides which exceptions count against the breaker; anything
    else passes through without touching the counters.
    """

    def __init__(
        self,
        host: str,
        strategy: CircuitBreakerStrategy,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.host = host
        self.strategy = strategy
        self.is_failure = is_failure or (lambda exc: True)
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        if not self.strategy.enabled:
            return await fn()

        async with self._lock:
            self._maybe_half_open()
            if self._state == CircuitState.OPEN:
                raise CircuitOpenError(self.host, self._retry_after())
            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.strategy.half_open_max_calls:
                    raise CircuitOpenError(self.host, 0.0)
                self._half_open_calls += 1

        try:
            result = await fn()
        except Exception as e:
            if self.is_failure(e):
                await self._on_failure()
            else:
                await self._on_success()
            raise
        except BaseException:
            # cancelled without an outcome; hand the probe slot back
            self._release_half_open_slot()
            raise
        await self._on_success()
        return result

    def _release_half_open_slot(self):
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    async def _on_success(self):
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(f"circuit breaker for {self.host} closed after successful probe")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._half_open_calls = 0

    async def _on_failure(self):
        async with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"circuit breaker probe for {self.host} failed, re-opening")
                self._open()
            elif self._failure_count >= self.strategy.failure_threshold:
                logger.warning(
                    f"circuit breaker for {self.host} opened after {self._failure_count} failures"
                )
                self._open()

    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_calls = 0

    def _maybe_half_open(self):
        # caller holds the lock
        if self._state != CircuitState.OPEN:
            return
        if self._clock() - self._opened_at >= self.strategy.recovery_timeout:
            logger.debug(f"circuit breaker for {self.host} entering half-open state")
            self._state = CircuitState.HALF_OPEN
            self._half_open_calls = 0

    def _retry_after(self) -> float:
        elapsed = self._clock() - self._opened_at
        return max(0.0, self.strategy.recovery_timeout - elapsed)
