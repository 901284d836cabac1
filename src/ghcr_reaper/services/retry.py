"""Retry and backoff policy shared by version listing and deletion."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Self

import structlog
from structlog.stdlib import BoundLogger

from ..config import RetryConfig
from ..exceptions import (
    CancelledRunError,
    RateLimitedError,
    ServerError,
    TransientError,
)

__all__ = ["RetryPolicy"]

type Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """Decide whether and how long to wait before retrying a registry call.

    Only `RateLimitedError` and `ServerError` are retried.  Everything
    else (authentication failures, missing packages, bad responses)
    propagates from the first attempt.

    A rate-limited call waits for the hint the registry supplied (capped at
    ``max_wait``); a server error, or a rate limit without a hint, waits
    ``backoff_base * 2 ** (attempt - 1)`` seconds, capped at
    ``backoff_max``.

    Parameters
    ----------
    max_attempts
        Total attempts, including the first.
    backoff_base
        Wait after the first failed attempt.
    backoff_max
        Longest exponential wait.
    max_wait
        Longest wait honored from a rate-limit hint.
    sleep
        Coroutine used to wait; tests substitute one that returns at once.
    logger
        Logger for retry warnings.
    """

    max_attempts: int = 5
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    max_wait: float = 300.0
    sleep: Sleeper = field(default=asyncio.sleep, repr=False)
    logger: BoundLogger = field(
        default_factory=lambda: structlog.get_logger(__name__), repr=False
    )

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> Self:
        return cls(
            max_attempts=cfg.max_attempts,
            backoff_base=cfg.backoff_base,
            backoff_max=cfg.backoff_max,
            max_wait=cfg.max_wait,
        )

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> Self:
        """Policy that never actually waits."""

        async def _no_sleep(_: float) -> None:
            return None

        return cls(
            max_attempts=max_attempts,
            backoff_base=0.0,
            backoff_max=0.0,
            max_wait=0.0,
            sleep=_no_sleep,
        )

    def backoff(self, attempt: int) -> float:
        """Exponential wait after failed attempt number ``attempt``."""
        return min(self.backoff_max, self.backoff_base * 2 ** (attempt - 1))

    def delay(
        self, error: RateLimitedError | ServerError, attempt: int
    ) -> float:
        """Seconds to wait after ``error`` on attempt number ``attempt``."""
        hint = None
        if isinstance(error, RateLimitedError):
            hint = error.retry_after
        if hint is not None:
            return max(0.0, min(self.max_wait, hint))
        return self.backoff(attempt)

    async def run[T](
        self,
        call: Callable[[], Awaitable[T]],
        *,
        package: str | None = None,
        version_id: int | str | None = None,
        cancelled: asyncio.Event | None = None,
    ) -> T:
        """Await ``call()`` until it succeeds or attempts run out.

        If ``cancelled`` is set while waiting between attempts, the wait
        ends early and no further attempt is made.

        Raises
        ------
        CancelledRunError
            Raised if ``cancelled`` was set before a retry was started.
        TransientError
            Raised if every attempt failed with a retryable error.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except (RateLimitedError, ServerError) as e:
                if attempt >= self.max_attempts:
                    raise TransientError(
                        f"Giving up after {attempt} attempts: {e.message}",
                        package=package,
                        version_id=version_id,
                    ) from e
                wait = self.delay(e, attempt)
                self._log_retry(e, attempt, wait, package, version_id)
                await self._wait(wait, cancelled)
                if cancelled is not None and cancelled.is_set():
                    raise CancelledRunError(
                        f"Cancelled while waiting to retry: {e.message}",
                        package=package,
                        version_id=version_id,
                    ) from e

    async def _wait(
        self, seconds: float, cancelled: asyncio.Event | None
    ) -> None:
        if cancelled is None:
            await self.sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self.sleep(seconds))
        waiter = asyncio.ensure_future(cancelled.wait())
        try:
            await asyncio.wait(
                {sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            sleeper.cancel()
            waiter.cancel()

    def _log_retry(
        self,
        error: RateLimitedError | ServerError,
        attempt: int,
        wait: float,
        package: str | None,
        version_id: int | str | None,
    ) -> None:
        kind = "Registry error"
        if isinstance(error, RateLimitedError):
            kind = "Rate limited"
        self.logger.warning(
            f"{kind}; retrying in {wait:.1f}s",
            package=package,
            version_id=version_id,
            attempt=attempt,
            max_attempts=self.max_attempts,
            error=error.message,
        )
