"""Reliability policies for outbound calls: rate limit, circuit breaker, retry.

``deliver`` composes them around any zero-argument coroutine factory:

1. rate-limit admission, once per call (:class:`RateLimitedError`);
2. circuit-breaker admission, once per call (:class:`CircuitOpenError`);
3. the attempt itself; failures are recorded on the breaker and retried
   with capped exponential backoff until the retry budget is spent.

Usage::

    result = await deliver(
        lambda: client.post(url, json=payload),
        rate_limiter=RateLimiter(10),
        breaker=CircuitBreaker(5, 30.0),
        retry=RetryPolicy(3),
    )

All state lives in the objects passed in; nothing is shared between hook
invocations.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from permission_hook.errors import CircuitOpenError, DeliveryError, RateLimitedError
from permission_hook.utils.telemetry import (
    ATTR_ATTEMPT,
    ATTR_CHANNEL,
    ATTR_MAX_ATTEMPTS,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Token bucket that starts full and refills continuously."""

    def __init__(self, tokens_per_minute: float, clock: Clock = time.monotonic) -> None:
        self.max_tokens = max(float(tokens_per_minute), 0.0)
        self.refill_rate = self.max_tokens / 60.0
        self.tokens = self.max_tokens
        self._clock = clock
        self.last_refill_time = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self.last_refill_time, 0.0)
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill_time = now

    def try_acquire(self) -> bool:
        """Consume one token if available; never blocks."""
        self._refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


class CircuitBreaker:
    """Opens after *threshold* consecutive failures; closes again by timeout."""

    def __init__(self, threshold: int, recovery_timeout: float, clock: Clock = time.monotonic) -> None:
        self.threshold = max(threshold, 1)
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.open = False
        self._clock = clock

    def is_open(self) -> bool:
        if self.open and self._clock() - self.last_failure_time >= self.recovery_timeout:
            logger.debug("Circuit breaker recovered after %.1fs", self.recovery_timeout)
            self.open = False
            self.failure_count = 0
        return self.open

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.failure_count >= self.threshold:
            if not self.open:
                logger.warning("Circuit breaker opened after %d failures", self.failure_count)
            self.open = True

    def record_success(self) -> None:
        self.failure_count = 0
        self.open = False


class RetryPolicy:
    """How many attempts to make and how long to wait between them."""

    def __init__(self, max_attempts: int = 3, backoff_cap: float = 10.0) -> None:
        self.max_attempts = max(max_attempts, 1)
        self.backoff_cap = backoff_cap

    def delay(self, attempt: int) -> float:
        """Seconds to wait before 0-based *attempt* (``attempt >= 1``)."""
        return float(min(2**attempt, self.backoff_cap))


async def deliver(
    call: Callable[[], Awaitable[T]],
    *,
    rate_limiter: RateLimiter | None = None,
    breaker: CircuitBreaker | None = None,
    retry: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    channel: str = "webhook",
) -> T:
    """Run *call* under the given policies and return its result.

    Each attempt runs in its own ``delivery.attempt`` child span.

    Raises
    ------
    RateLimitedError
        No token was available.
    CircuitOpenError
        The breaker was already open when the call started.
    DeliveryError
        Every attempt failed; the last error is chained as ``__cause__``.
    """
    retry = retry or RetryPolicy(1)

    with _tracer.start_as_current_span("delivery.deliver") as span:
        span.set_attribute(ATTR_CHANNEL, channel)
        span.set_attribute(ATTR_MAX_ATTEMPTS, retry.max_attempts)

        if rate_limiter is not None and not rate_limiter.try_acquire():
            span.add_event("delivery.rate_limited")
            raise RateLimitedError()

        if breaker is not None and breaker.is_open():
            span.add_event("delivery.circuit_open")
            raise CircuitOpenError()

        last_error: Exception | None = None
        for attempt in range(retry.max_attempts):
            if attempt > 0:
                await sleep(retry.delay(attempt))

            with _tracer.start_as_current_span("delivery.attempt") as attempt_span:
                attempt_span.set_attribute(ATTR_ATTEMPT, attempt)
                try:
                    result = await call()
                except Exception as exc:
                    last_error = exc
                    if breaker is not None:
                        breaker.record_failure()
                    attempt_span.record_exception(exc)
                    logger.debug("%s attempt %d failed: %s", channel, attempt + 1, exc)
                    continue

            if breaker is not None:
                breaker.record_success()
            return result

        span.add_event("delivery.exhausted")
        raise DeliveryError(str(last_error), attempts=retry.max_attempts) from last_error
