#!/usr/bin/env python3
"""Tests for the retry and circuit breaker helpers.

Tests cover:
    - Circuit breaker state transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
    - Retry with exponential backoff, Retry-After and non-retryable errors
    - Inline retry of blocking calls run in a worker thread (LDAP bind)
"""
import asyncio
import sys
import time

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.devsync.api.exceptions import (
    CircuitOpenError,
    ConnectionError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from src.devsync.api.resilience import CircuitBreaker, CircuitState, retry, retry_async


OUTAGE = ServerError("Service unavailable", status_code=503)


# ============================================
# Circuit Breaker State Transition Tests
# ============================================

class TestCircuitBreaker:
    """Test circuit breaker state machine transitions."""

    def test_initial_state_is_closed(self):
        circuit = CircuitBreaker(failure_threshold=3, name="graph")
        assert circuit.state == CircuitState.CLOSED
        assert circuit.allow_request()
        assert circuit.get_status()["name"] == "graph"
        assert circuit.get_status()["reset_at"] is None

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        circuit = CircuitBreaker(failure_threshold=3, timeout=60.0)

        for expected_failures in (1, 2):
            await circuit.record_failure(OUTAGE)
            assert circuit.state == CircuitState.CLOSED
            assert circuit.failure_count == expected_failures

        await circuit.record_failure(OUTAGE)

        assert circuit.is_open
        assert not circuit.allow_request()

    @pytest.mark.asyncio
    async def test_success_clears_failure_count(self):
        circuit = CircuitBreaker(failure_threshold=3)

        await circuit.record_failure(OUTAGE)
        await circuit.record_failure(OUTAGE)
        await circuit.record_success()

        assert circuit.failure_count == 0
        assert circuit.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_error_carries_reset_time(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=60.0, name="helpdesk_api")
        await circuit.record_failure(OUTAGE)

        error = circuit.open_error()

        assert isinstance(error, CircuitOpenError)
        assert error.reset_at == circuit.reset_at
        assert error.failure_count == 1
        assert "helpdesk_api" in error.message

    @pytest.mark.asyncio
    async def test_half_open_closes_after_successes(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=0.1, success_threshold=2)

        await circuit.record_failure(OUTAGE)
        assert not circuit.allow_request()
        await asyncio.sleep(0.15)

        assert circuit.allow_request()
        assert circuit.state == CircuitState.HALF_OPEN
        await circuit.record_success()
        assert circuit.state == CircuitState.HALF_OPEN
        await circuit.record_success()
        assert circuit.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_reopens_on_failure(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=0.1)

        await circuit.record_failure(OUTAGE)
        await asyncio.sleep(0.15)
        assert circuit.allow_request()

        await circuit.record_failure(OUTAGE)

        assert circuit.state == CircuitState.OPEN


# ============================================
# Retry Behavior Tests
# ============================================

class TestRetry:
    """Test retry decorator and inline retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        calls = 0

        @retry(max_attempts=3, initial_delay=0.01)
        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise NetworkError("Connection reset")
            return "ok"

        assert await flaky() == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_exhausts_attempts(self):
        calls = 0

        @retry(max_attempts=3, initial_delay=0.01)
        async def down():
            nonlocal calls
            calls += 1
            raise NetworkError("Down")

        with pytest.raises(NetworkError):
            await down()
        assert calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self):
        calls = 0

        @retry(max_attempts=3, retryable_exceptions=(NetworkError,))
        async def bad_input():
            nonlocal calls
            calls += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            await bad_input()
        assert calls == 1

    @pytest.mark.asyncio
    async def test_rate_limit_waits_for_retry_after(self):
        calls = 0
        start = time.time()

        @retry(max_attempts=2, initial_delay=0.01, jitter=False)
        async def throttled():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RateLimitError("Too many requests", retry_after=0.1, endpoint="/v1.0/groups")
            return "ok"

        assert await throttled() == "ok"
        assert time.time() - start >= 0.09

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        attempts: list[int] = []

        @retry(max_attempts=3, initial_delay=0.01, on_retry=lambda e, n: attempts.append(n))
        async def fails_twice():
            if len(attempts) < 2:
                raise NetworkError("Fail")
            return "ok"

        await fails_twice()
        assert attempts == [1, 2]

    @pytest.mark.asyncio
    async def test_retry_async_with_worker_thread(self):
        calls = 0

        def blocking_bind(server: str) -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("Cannot reach domain controller", host=server)
            return f"bound:{server}"

        result = await retry_async(
            asyncio.to_thread,
            blocking_bind,
            "dc01",
            max_attempts=3,
            initial_delay=0.01,
            retryable_exceptions=(ConnectionError,),
        )

        assert result == "bound:dc01"
        assert calls == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
