"""
Rate-limited, retrying delivery of payloads to a sink.

This module provides:
- A throughput ceiling shared by every caller of one limiter
- Retry of transient failures with bounded exponential backoff and jitter
- Server-directed waits for HTTP 429 (Retry-After)
- Dry-run previews that never touch the sink
"""

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Optional
import logging

from ingestion.base import Sink
from models.base import SendStatus
from schemas.results import SendResult
from core.exceptions import RateLimitSignal, RetryableError, SinkError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 30.0
DEFAULT_JITTER = 0.25
DEFAULT_RETRY_AFTER = 60.0


def is_retryable(error: Exception) -> bool:
    """Default retry classification: RetryableError subclasses are retried"""
    return isinstance(error, RetryableError)


class RateLimiter:
    """
    Minimum spacing of ``1 / requests_per_second`` between calls.

    ``wait()`` is called after every call. Each waiter reserves the next
    free slot under a lock, so any number of concurrent workers sharing one
    limiter stay under the ceiling together.
    """

    def __init__(
        self,
        requests_per_second: float,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.min_interval = 1.0 / requests_per_second
        self._sleep = sleep
        self._clock = clock
        self._last_slot: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Sleep until this caller's next slot; returns the delay slept"""
        async with self._lock:
            now = self._clock()
            base = now if self._last_slot is None else max(now, self._last_slot)
            slot = base + self.min_interval
            self._last_slot = slot
        delay = slot - now
        if delay > 0:
            await self._sleep(delay)
        return delay


class ResilientSender:
    """
    Deliver one payload at a time through a sink.

    Policy:
    - HTTP 429 (RateLimitSignal): wait Retry-After (default 60s), retry
    - Other retryable errors: wait min(max_delay, base * 2**(attempt-1))
      plus uniform(0, jitter), retry
    - Non-retryable errors: fail immediately
    - All retry paths share one attempt limit; exhaustion is a permanent
      failure
    - The limiter runs after every attempt, successful or not

    ``send`` returns a SendResult for every outcome and does not raise for
    sink errors.
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        limiter: Optional[RateLimiter] = None,
        should_retry: Callable[[Exception], bool] = is_retryable,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        default_retry_after: float = DEFAULT_RETRY_AFTER,
        dry_run: bool = False,
        sleep: Sleep = asyncio.sleep,
        uniform: Callable[[float, float], float] = random.uniform,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.sink = sink
        self.limiter = limiter
        self.should_retry = should_retry
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.default_retry_after = default_retry_after
        self.dry_run = dry_run
        self._sleep = sleep
        self._uniform = uniform

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)"""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return delay + self._uniform(0, self.jitter)

    def retry_delay(self, error: SinkError, attempt: int) -> float:
        if isinstance(error, RateLimitSignal):
            return error.retry_after if error.retry_after is not None else self.default_retry_after
        return self.backoff_delay(attempt)

    async def throttle(self) -> None:
        if self.limiter is not None:
            await self.limiter.wait()

    async def send(self, payload: Any, sink: Optional[Sink] = None) -> SendResult:
        """
        Deliver ``payload`` to ``sink`` (or the default sink).

        Returns:
            SendResult with SUCCESS or PERMANENT status
        """
        sink = sink or self.sink
        if sink is None:
            raise ValueError("No sink configured")

        if self.dry_run:
            logger.info(f"[DRY_RUN] {sink.preview(payload)}")
            await self.throttle()
            return SendResult(status=SendStatus.SUCCESS, body="DRY_RUN", dry_run=True)

        attempt = 0
        while True:
            attempt += 1
            try:
                result = await sink.deliver(payload)
            except SinkError as e:
                await self.throttle()

                if not self.should_retry(e):
                    logger.debug(f"Permanent failure from {sink.target}: {e.message}")
                    return self._failure(e, attempt)

                if attempt >= self.max_attempts:
                    logger.error(
                        f"Giving up on {sink.target} after {attempt} attempts: {e.message}"
                    )
                    return self._failure(e, attempt, exhausted=True)

                delay = self.retry_delay(e, attempt)
                logger.warning(
                    f"{e.message} from {sink.target}. Retrying in {delay:.2f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                await self._sleep(delay)
                continue

            await self.throttle()
            return result.model_copy(update={"attempts": attempt})

    def _failure(self, error: SinkError, attempts: int, exhausted: bool = False) -> SendResult:
        message = error.message
        if error.response_body:
            message = f"{message}: {error.response_body}"
        if exhausted:
            message = f"Retries exhausted after {attempts} attempts: {message}"
        return SendResult(
            status=SendStatus.PERMANENT,
            status_code=error.status_code,
            body=error.response_body,
            error=message,
            attempts=attempts,
            retry_after=getattr(error, "retry_after", None),
        )
