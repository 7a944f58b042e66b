"""
Bounded retry for every outbound call.

Attempts are capped, waits grow exponentially, each attempt runs under its own
timeout, and a throttled response (RateLimited) waits the delay the server asked
for instead of the computed backoff.
"""
import asyncio
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from cortex.config import settings
from cortex.models.errors import RateLimited, SourceFetchError
from cortex.services.logger import logger

T = TypeVar("T")

RETRYABLE: Tuple[Type[BaseException], ...] = (
    httpx.TransportError,
    httpx.HTTPStatusError,
    RateLimited,
    asyncio.TimeoutError,
)

@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    timeout: float | None = 10.0       # Per attempt, None disables it
    backoff: float = 1.0               # First wait, doubled each attempt
    max_backoff: float = 30.0
    rate_limit_delay: float | None = None  # Fixed wait on RateLimited without a server delay
    honor_retry_after: bool = True

def default_policy() -> RetryPolicy:
    return RetryPolicy(
        attempts=settings.HTTP_MAX_ATTEMPTS,
        timeout=settings.HTTP_TIMEOUT,
        backoff=settings.HTTP_BACKOFF,
        max_backoff=settings.HTTP_MAX_BACKOFF,
    )

class wait_throttle_aware(wait_base):
    """Exponential backoff that defers to RateLimited.retry_after when present."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimited):
            if self.policy.honor_retry_after and exc.retry_after is not None:
                return max(0.0, exc.retry_after)
            if self.policy.rate_limit_delay is not None:
                return self.policy.rate_limit_delay
        exp = self.policy.backoff * (2 ** (retry_state.attempt_number - 1))
        return max(0.0, min(exp, self.policy.max_backoff))

def _log_retry(label: str):
    def before_sleep(retry_state: RetryCallState):
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{label} failed ({type(exc).__name__}: {exc}), retrying in "
            f"{retry_state.next_action.sleep:.1f} seconds... (attempt {retry_state.attempt_number})"
        )
    return before_sleep

async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE,
    label: str = "Call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Runs `fn` until it succeeds or the policy is exhausted, re-raising the last error.
    Exceptions outside `retry_on` propagate immediately.
    """
    policy = policy or default_policy()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.attempts)),
        wait=wait_throttle_aware(policy),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry(label),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if policy.timeout:
                return await asyncio.wait_for(fn(), timeout=policy.timeout)
            return await fn()

def parse_retry_after(value: str | None) -> float | None:
    """Retry-After is either delta-seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

def check_response(response: httpx.Response, source: str | None = None) -> httpx.Response:
    """Maps throttling and server errors to retryable exceptions, other 4xx to SourceFetchError."""
    if response.status_code == 429:
        raise RateLimited(
            f"{source or response.url} throttled",
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if response.status_code >= 500:
        response.raise_for_status()
    if response.status_code >= 400:
        raise SourceFetchError(
            f"{source or response.url} returned {response.status_code}",
            source=source,
            status_code=response.status_code,
        )
    return response

async def fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    source: str | None = None,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """HTTP request through the retry wrapper. Raises SourceFetchError once retries are spent."""
    async def attempt():
        response = await client.request(method, url, **kwargs)
        return check_response(response, source)

    try:
        return await with_retry(attempt, policy, label=f"Request to {source or url}", sleep=sleep)
    except SourceFetchError:
        raise
    except RETRYABLE as e:
        raise SourceFetchError(f"{source or url}: {type(e).__name__}: {e}", source=source) from e
