"""Retrying request execution shared by every provider call.

A unit of work is a zero-argument coroutine function that performs one
network call. Returning is success; raising is a failure that the
policy classifies as retryable (transient) or terminal.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from talkloop.logging_config import get_logger
from talkloop.observability.metrics import PROVIDER_ATTEMPTS
from talkloop.services.exceptions import TransientServiceError

logger: Any = get_logger(__name__)

T = TypeVar("T")


def default_is_retryable(error: BaseException) -> bool:
    """Transient conditions that may succeed on a later attempt."""
    return isinstance(
        error,
        TransientServiceError | httpx.TimeoutException | httpx.TransportError | TimeoutError,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait, and what is worth retrying."""

    max_attempts: int = 3
    base_delay: float = 1.0
    attempt_timeout: float | None = 30.0
    is_retryable: Callable[[BaseException], bool] = default_is_retryable

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_before(self, attempt: int) -> float:
        """Backoff before ``attempt`` (1-based): 0, base, 2*base, 4*base..."""
        if attempt < 2:
            return 0.0
        return self.base_delay * (2 ** (attempt - 2))


@dataclass
class RequestExecutor:
    """Runs a unit of work with per-attempt timeout and exponential backoff."""

    policy: RetryPolicy = field(default_factory=RetryPolicy)
    stage: str = ""
    provider: str = ""
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    # Attempts made by the most recent run (for monitoring and tests)
    last_attempts: int = field(default=0, init=False)

    async def run(self, work: Callable[[], Awaitable[T]]) -> T:
        """Execute ``work`` until it succeeds, fails terminally, or attempts run out.

        Raises:
            The terminal failure as soon as it happens, or the last
            retryable failure once ``max_attempts`` is exhausted.
        """
        policy = self.policy
        self.last_attempts = 0

        for attempt in range(1, policy.max_attempts + 1):
            delay = policy.delay_before(attempt)
            if delay > 0:
                logger.warning(
                    f"{self._label} retry {attempt - 1}/{policy.max_attempts - 1} "
                    f"in {delay:.2f}s"
                )
                await self.sleep(delay)

            self.last_attempts = attempt
            start = time.perf_counter()
            try:
                result = await self._attempt(work)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start) * 1000
                if not policy.is_retryable(e):
                    self._record("terminal")
                    logger.error(f"{self._label} failed terminally after {elapsed_ms:.0f}ms: {e}")
                    raise
                self._record("retryable")
                if attempt == policy.max_attempts:
                    logger.error(
                        f"{self._label} giving up after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(f"{self._label} attempt {attempt} failed: {e}")
                continue

            self._record("success")
            return result

        # max_attempts >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")

    async def _attempt(self, work: Callable[[], Awaitable[T]]) -> T:
        timeout = self.policy.attempt_timeout
        if timeout is None:
            return await work()
        try:
            return await asyncio.wait_for(work(), timeout=timeout)
        except TimeoutError as e:
            raise TransientServiceError(
                f"Request timed out after {timeout:.1f}s", stage=self.stage
            ) from e

    @property
    def _label(self) -> str:
        return f"{self.stage or 'request'}/{self.provider or '?'}"

    def _record(self, result: str) -> None:
        PROVIDER_ATTEMPTS.labels(
            stage=self.stage or "unknown",
            provider=self.provider or "unknown",
            result=result,
        ).inc()


def executor_from_settings(
    provider_settings: Any,
    *,
    stage: str,
    provider: str,
    is_retryable: Callable[[BaseException], bool] = default_is_retryable,
) -> RequestExecutor:
    """Build an executor from a ``ProviderSettings`` object."""
    policy = RetryPolicy(
        max_attempts=provider_settings.max_retries,
        base_delay=provider_settings.retry_base_delay,
        attempt_timeout=provider_settings.request_timeout,
        is_retryable=is_retryable,
    )
    return RequestExecutor(policy=policy, stage=stage, provider=provider)
