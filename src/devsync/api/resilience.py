#!/usr/bin/env python3
"""Retry and circuit breaker helpers shared by the HTTP and LDAP layers.

Graph throttles, the helpdesk API has maintenance windows and domain
controllers drop binds. Those failures are retried with exponential backoff;
once a service keeps failing after retries, its circuit opens and the rest
of the run fails fast instead of hammering it.

Example:
    @retry(max_attempts=3)
    async def fetch_rooms():
        return await client.get("/v1/rooms")

    breaker = CircuitBreaker(failure_threshold=5, timeout=60, name="helpdesk_api")
    if not breaker.allow_request():
        raise breaker.open_error()
    try:
        rooms = await fetch_rooms()
    except ServerError as e:
        await breaker.record_failure(e)
        raise
    await breaker.record_success()
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import (
    CircuitOpenError,
    NetworkError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_EXCEPTIONS = (
    NetworkError,
    RateLimitError,
    ServerError,
    asyncio.TimeoutError,
    OSError,
)


# ============================================
# Retry
# ============================================

@dataclass(frozen=True)
class Backoff:
    """Delay schedule between attempts.

    A throttled response with Retry-After overrides the schedule; the
    server's value is used as is, without jitter.
    """
    initial: float = 1.0
    factor: float = 2.0
    maximum: float = 60.0
    jitter: bool = True

    def delay(self, attempt: int, error: Exception) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(float(error.retry_after), self.maximum)

        delay = min(self.initial * self.factor ** (attempt - 1), self.maximum)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    **kwargs,
) -> T:
    """Await func(*args, **kwargs), retrying retryable failures.

    Blocking calls are retried by passing asyncio.to_thread as func:

        conn = await retry_async(asyncio.to_thread, self._bind, max_attempts=3)

    Raises:
        The last exception once max_attempts is used up, or any
        non-retryable exception immediately.
    """
    backoff = Backoff(initial_delay, backoff_factor, max_delay, jitter)
    attempt = 1

    while True:
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"Giving up after {max_attempts} attempts: {e}")
                raise

            wait = backoff.delay(attempt, e)
            if on_retry:
                on_retry(e, attempt)
            logger.warning(f"Attempt {attempt}/{max_attempts} failed ({e}); retrying in {wait:.1f}s")
            await asyncio.sleep(wait)
            attempt += 1


def retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """Decorator form of retry_async."""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(
                func,
                *args,
                max_attempts=max_attempts,
                backoff_factor=backoff_factor,
                initial_delay=initial_delay,
                max_delay=max_delay,
                jitter=jitter,
                retryable_exceptions=retryable_exceptions,
                on_retry=on_retry,
                **kwargs,
            )
        return wrapper
    return decorator


# ============================================
# Circuit Breaker
# ============================================

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast once a service has failed failure_threshold times in a row.

    After `timeout` seconds an open circuit lets requests through again
    (HALF_OPEN). success_threshold consecutive successes close it; one
    failure reopens it.

    The HTTP clients drive the breaker themselves through allow_request(),
    record_success() and record_failure() because only failures that
    survive their own retries should count. call() wraps a coroutine for
    everything else.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        success_threshold: int = 2,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def reset_at(self) -> Optional[datetime]:
        if self._last_failure_time is None:
            return None
        return self._last_failure_time + timedelta(seconds=self.timeout)

    def allow_request(self) -> bool:
        """True unless the circuit is open and its timeout has not passed.

        An open circuit whose timeout has passed moves to HALF_OPEN here.
        """
        if self._state != CircuitState.OPEN:
            return True

        reset_at = self.reset_at
        if reset_at is None or datetime.now(timezone.utc) < reset_at:
            return False

        logger.info(f"Circuit '{self.name}' half-open, letting a test request through")
        self._state = CircuitState.HALF_OPEN
        self._success_count = 0
        return True

    def open_error(self) -> CircuitOpenError:
        return CircuitOpenError(
            f"Circuit breaker '{self.name}' is open",
            reset_at=self.reset_at,
            failure_count=self._failure_count,
        )

    async def record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state != CircuitState.HALF_OPEN:
                return

            self._success_count += 1
            if self._success_count >= self.success_threshold:
                logger.info(f"Circuit '{self.name}' closed after {self._success_count} successes")
                self._state = CircuitState.CLOSED
                self._success_count = 0

    async def record_failure(self, error: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now(timezone.utc)

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' reopened: {error}")
                self._state = CircuitState.OPEN
            elif self._failure_count >= self.failure_threshold:
                logger.warning(f"Circuit '{self.name}' opened after {self._failure_count} failures: {error}")
                self._state = CircuitState.OPEN

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }
