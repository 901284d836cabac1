"""Tests for the retry and backoff policy."""

import asyncio

import pytest

from ghcr_reaper.config import RetryConfig
from ghcr_reaper.exceptions import (
    AuthError,
    CancelledRunError,
    PackageNotFoundError,
    RateLimitedError,
    ServerError,
    TransientError,
)
from ghcr_reaper.services.retry import RetryPolicy


class Flaky:
    """Fail with the given errors, in order, then return "ok"."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def _recording_policy(**kwargs: float) -> tuple[RetryPolicy, list[float]]:
    waits: list[float] = []

    async def sleep(delay: float) -> None:
        waits.append(delay)

    return RetryPolicy(sleep=sleep, **kwargs), waits  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_succeeds_on_kth_attempt() -> None:
    policy, waits = _recording_policy(max_attempts=4)
    call = Flaky(
        RateLimitedError("slow down", retry_after=2),
        ServerError("oops", status=502),
        RateLimitedError("slow down", retry_after=1),
    )
    assert await policy.run(call) == "ok"
    assert call.calls == 4
    assert waits == [2.0, 2.0, 1.0]


@pytest.mark.asyncio
async def test_exhausted() -> None:
    policy, waits = _recording_policy(max_attempts=3)
    call = Flaky(*[RateLimitedError("slow down") for _ in range(5)])
    with pytest.raises(TransientError) as excinfo:
        await policy.run(call, package="app", version_id=3)
    assert call.calls == 3
    assert len(waits) == 2
    assert excinfo.value.package == "app"
    assert excinfo.value.version_id == 3
    assert isinstance(excinfo.value.__cause__, RateLimitedError)


@pytest.mark.asyncio
async def test_permanent_errors_not_retried() -> None:
    policy, waits = _recording_policy(max_attempts=5)
    for error in (AuthError("bad token"), PackageNotFoundError("no")):
        call = Flaky(error)
        with pytest.raises(type(error)):
            await policy.run(call)
        assert call.calls == 1
    assert waits == []


def test_delays() -> None:
    policy = RetryPolicy(backoff_base=1.0, backoff_max=5.0, max_wait=60.0)
    server = ServerError("oops", status=500)
    assert [policy.delay(server, n) for n in range(1, 6)] == [
        1.0,
        2.0,
        4.0,
        5.0,
        5.0,
    ]
    assert policy.delay(RateLimitedError("x", retry_after=30), 1) == 30.0
    assert policy.delay(RateLimitedError("x", retry_after=600), 1) == 60.0
    assert policy.delay(RateLimitedError("x", retry_after=-4), 1) == 0.0
    assert policy.delay(RateLimitedError("x"), 3) == 4.0


def test_from_config() -> None:
    cfg = RetryConfig(max_attempts=2, backoff_base=0.25, max_wait=10)
    policy = RetryPolicy.from_config(cfg)
    assert policy.max_attempts == 2
    assert policy.backoff_base == 0.25
    assert policy.backoff_max == 30.0
    assert policy.max_wait == 10.0


@pytest.mark.asyncio
async def test_cancelled_while_waiting() -> None:
    cancelled = asyncio.Event()

    async def sleep(delay: float) -> None:
        cancelled.set()

    policy = RetryPolicy(max_attempts=5, sleep=sleep)
    call = Flaky(*[ServerError("oops", status=503) for _ in range(5)])
    with pytest.raises(CancelledRunError) as excinfo:
        await policy.run(call, package="app", cancelled=cancelled)
    assert call.calls == 1
    assert excinfo.value.package == "app"


@pytest.mark.asyncio
async def test_cancel_cuts_wait_short() -> None:
    """A long rate-limit wait ends as soon as the run is cancelled."""
    cancelled = asyncio.Event()
    policy = RetryPolicy(max_attempts=5, max_wait=300.0)
    call = Flaky(*[RateLimitedError("slow down", retry_after=300)] * 5)
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, cancelled.set)
    async with asyncio.timeout(5):
        with pytest.raises(CancelledRunError):
            await policy.run(call, cancelled=cancelled)
    assert call.calls == 1
