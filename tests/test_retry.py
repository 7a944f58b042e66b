"""Tests for the bounded retry utility."""

import asyncio
from typing import List

import httpx
import pytest

from cortex.models.errors import RateLimited, SourceFetchError
from cortex.services.retry import RetryPolicy, check_response, fetch, parse_retry_after, with_retry


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures() -> None:
    """Transient errors are retried until the call succeeds."""
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("boom")
        return "ok"

    sleep = SleepRecorder()
    result = await with_retry(flaky, RetryPolicy(attempts=3, timeout=None, backoff=1.0), sleep=sleep)

    assert result == "ok"
    assert len(attempts) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    """The last error is re-raised once attempts are spent."""
    calls = []

    async def always_fails():
        calls.append(1)
        raise httpx.ConnectError("down")

    with pytest.raises(httpx.ConnectError):
        await with_retry(always_fails, RetryPolicy(attempts=2, timeout=None), sleep=SleepRecorder())
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately() -> None:
    """Errors outside the retry set are not retried."""
    calls = []

    async def bad_request():
        calls.append(1)
        raise SourceFetchError("404")

    with pytest.raises(SourceFetchError):
        await with_retry(bad_request, RetryPolicy(attempts=3, timeout=None), sleep=SleepRecorder())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_throttle_waits_server_specified_delay() -> None:
    """RateLimited with retry_after waits exactly that long, not the backoff."""
    attempts = []

    async def throttled_once():
        attempts.append(1)
        if len(attempts) == 1:
            raise RateLimited(retry_after=7.0)
        return "ok"

    sleep = SleepRecorder()
    await with_retry(throttled_once, RetryPolicy(attempts=3, timeout=None, backoff=1.0), sleep=sleep)

    assert sleep.delays == [7.0]


@pytest.mark.asyncio
async def test_throttle_without_server_delay_uses_fixed_rate_limit_delay() -> None:
    """Without retry_after the policy's rate-limit delay applies."""
    attempts = []

    async def throttled_once():
        attempts.append(1)
        if len(attempts) == 1:
            raise RateLimited()
        return "ok"

    sleep = SleepRecorder()
    policy = RetryPolicy(attempts=2, timeout=None, backoff=1.0, rate_limit_delay=5.0)
    await with_retry(throttled_once, policy, sleep=sleep)

    assert sleep.delays == [5.0]


@pytest.mark.asyncio
async def test_per_attempt_timeout_cancels_slow_attempt() -> None:
    """A hung attempt is cancelled and retried."""
    attempts = []

    async def slow_then_fast():
        attempts.append(1)
        if len(attempts) == 1:
            await asyncio.sleep(10)
        return "fast"

    result = await with_retry(slow_then_fast, RetryPolicy(attempts=2, timeout=0.05, backoff=0.0),
                              sleep=SleepRecorder())
    assert result == "fast"
    assert len(attempts) == 2


def test_parse_retry_after_seconds() -> None:
    """Delta-seconds form is parsed; junk is ignored."""
    assert parse_retry_after("12") == 12.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None


def test_check_response_maps_status_codes() -> None:
    """429 -> RateLimited, 5xx -> HTTPStatusError, other 4xx -> SourceFetchError."""
    request = httpx.Request("GET", "https://example.com")

    with pytest.raises(RateLimited) as exc:
        check_response(httpx.Response(429, headers={"Retry-After": "3"}, request=request))
    assert exc.value.retry_after == 3.0

    with pytest.raises(httpx.HTTPStatusError):
        check_response(httpx.Response(503, request=request))

    with pytest.raises(SourceFetchError):
        check_response(httpx.Response(404, request=request))

    ok = httpx.Response(200, request=request)
    assert check_response(ok) is ok


@pytest.mark.asyncio
async def test_fetch_wraps_exhausted_retries_in_source_fetch_error() -> None:
    """A server that keeps failing surfaces as SourceFetchError."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(SourceFetchError):
            await fetch(client, "https://example.com/feed", source="example",
                        policy=RetryPolicy(attempts=3, timeout=None, backoff=0.0), sleep=SleepRecorder())
    assert len(calls) == 3
