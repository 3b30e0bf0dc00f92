"""
Outbound call protection for the Gemini narrative client and the Xano
extraction queue.

retry_with_backoff retries transport failures with doubling delays.
CircuitBreaker stops calling a collaborator after consecutive failures
and lets one trial call through once the cool-down has elapsed.
"""

import asyncio
import random
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

from covenantwatch.exceptions import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Call fn, retrying up to max_retries times on `retry_on` errors.

    The n-th retry waits base_delay * 2**n, capped at max_delay and scaled
    by a random factor in [0.5, 1.0]. Other errors propagate at once.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = min(base_delay * 2 ** attempt, max_delay) * random.uniform(0.5, 1.0)
            attempt += 1
            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure breaker for one outbound collaborator.

    `failure_threshold` failures in a row open the circuit; calls are then
    rejected with CircuitOpenError for `recovery_timeout` seconds. The next
    call after that is a trial: success closes the circuit, failure opens
    it again for another full timeout.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._clock = clock
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._consecutive_failures = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        if self.state == CircuitState.OPEN:
            logger.warning("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(self.name)

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        if self._opened_at is not None:
            logger.info("circuit_closed", breaker=self.name)
        self._consecutive_failures = 0
        self._opened_at = None
        return result

    def _record_failure(self) -> None:
        trial_failed = self._opened_at is not None
        self._consecutive_failures += 1
        if trial_failed or self._consecutive_failures >= self.failure_threshold:
            self._opened_at = self._clock()
            logger.warning(
                "circuit_opened",
                breaker=self.name,
                consecutive_failures=self._consecutive_failures,
                trial=trial_failed,
            )
