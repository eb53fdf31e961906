"""
Bounded retry with backoff, shared by the GPXZ and USGS adapters.

A RetryPolicy bundles the attempt cap, the wait strategy and the set of
retryable exceptions; the control flow itself is tenacity's.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.wait import wait_base

from ..constants import (
    GPXZ_BACKOFF_BASE_S,
    GPXZ_BACKOFF_MAX_S,
    GPXZ_MAX_ATTEMPTS,
    GPXZ_RETRY_AFTER_BUFFER_S,
    USGS_QUERY_ATTEMPTS,
    USGS_QUERY_BACKOFF_S,
)
from .geotiff import GeoTiffDecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RateLimitedError(Exception):
    """HTTP 429 from a provider, with the server's Retry-After hint in seconds."""

    def __init__(self, url: str, retry_after: float | None = None) -> None:
        super().__init__(f"Rate limited (429) on {url}")
        self.retry_after = retry_after


class ProviderResponseError(Exception):
    """A non-success response that the calling policy treats as transient."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code


def parse_retry_after(value: str | None) -> float | None:
    """Parse a delta-seconds Retry-After header; HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(0.0, seconds)


class wait_retry_after(wait_base):
    """Honor RateLimitedError.retry_after when present, else defer to `fallback`."""

    def __init__(self, fallback: wait_base, buffer: float = GPXZ_RETRY_AFTER_BUFFER_S) -> None:
        self.fallback = fallback
        self.buffer = buffer

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
                return exc.retry_after + self.buffer
        return self.fallback(retry_state)


TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    ProviderResponseError,
    RateLimitedError,
    GeoTiffDecodeError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts + backoff function + retryable-error predicate."""

    name: str
    max_attempts: int
    wait: Any
    retry_on: tuple[type[BaseException], ...] = field(default=TRANSIENT_ERRORS)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        sleep: SleepFn | None = None,
        on_retry: Callable[[BaseException, int, float], None] | None = None,
    ) -> T:
        """Call `fn` until it succeeds, a non-retryable error escapes, or attempts run out.

        The last retryable error is re-raised once the cap is reached.
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"[{self.name}] {exc}. Retrying in {delay:.1f}s "
                f"(attempt {retry_state.attempt_number}/{self.max_attempts})"
            )
            if on_retry is not None and exc is not None:
                on_retry(exc, retry_state.attempt_number, delay)

        retrying = AsyncRetrying(
            sleep=sleep or asyncio.sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep,
            reraise=True,
        )
        return await retrying(fn)


GPXZ_RETRY_POLICY = RetryPolicy(
    name="GPXZ",
    max_attempts=GPXZ_MAX_ATTEMPTS,
    wait=wait_retry_after(
        wait_exponential(multiplier=GPXZ_BACKOFF_BASE_S, exp_base=2, max=GPXZ_BACKOFF_MAX_S)
    ),
)

USGS_QUERY_RETRY_POLICY = RetryPolicy(
    name="USGS",
    max_attempts=USGS_QUERY_ATTEMPTS,
    wait=wait_incrementing(start=USGS_QUERY_BACKOFF_S, increment=USGS_QUERY_BACKOFF_S),
    retry_on=(httpx.TransportError, ProviderResponseError, RateLimitedError, ValueError),
)
