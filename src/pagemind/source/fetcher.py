"""Rate-limited fetcher: token-bucket pacing + exponential backoff over a ContentProvider.

Every outbound call, whether from a scheduled sync cycle or an on-demand
trigger, draws from the same token bucket, so the bucket is the single
serialization point towards the provider. A bounded semaphore additionally caps the number
of in-flight requests.

Retry policy (per call):
  ProviderRateLimited   → backoff, retry; after max_attempts → RateLimitExceeded
  TransientFetchError   → backoff, retry; after max_attempts → re-raised
  ProviderAuthError,
  NotFoundError, other  → raised immediately

Backoff: delay = min(max_delay, base_delay * 2 ** (attempt - 1)) plus up to 50 %
random jitter, never shorter than the provider's Retry-After hint.
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

from pagemind.errors import ProviderRateLimited, RateLimitExceeded, TransientFetchError
from pagemind.log import get_logger
from pagemind.source.models import ChangePage, ContentItem
from pagemind.source.provider import ContentProvider

logger = get_logger(__name__)

T = TypeVar("T")


class TokenBucket:
    """Thread-safe token bucket.

    Args:
        rate: Tokens added per second (sustained request rate).
        capacity: Maximum tokens held (burst size). The bucket starts full.
        clock: Monotonic time source (injectable for tests).
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Take one token, sleeping until it would have been available.

        The token is reserved under the lock (the balance may go negative), so
        concurrent callers queue up in order and each sleeps its own share.
        """
        with self._lock:
            now = self._clock()
            self._tokens = min(
                self.capacity, self._tokens + (now - self._updated) * self.rate
            )
            self._updated = now
            self._tokens -= 1.0
            wait = -self._tokens / self.rate if self._tokens < 0 else 0.0
        if wait > 0:
            self._sleep(wait)


class RateLimitedFetcher:
    """Wrap a ContentProvider with rate limiting, a concurrency ceiling and retries.

    Args:
        provider: The external content provider.
        rate: Sustained requests per second (provider's documented limit).
        burst: Token bucket capacity.
        max_concurrent: Maximum simultaneous in-flight provider calls.
        max_attempts: Attempts per call, including the first.
        base_delay: First backoff delay in seconds.
        max_delay: Cap for a single backoff delay.
        bucket: Pre-built TokenBucket (tests inject one with a fake clock).
        sleep: Sleep used between retries (injectable for tests).
    """

    def __init__(
        self,
        provider: ContentProvider,
        rate: float = 3.0,
        burst: int = 3,
        max_concurrent: int = 3,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        bucket: TokenBucket | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._provider = provider
        self._bucket = bucket or TokenBucket(rate, capacity=burst)
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Provider operations
    # ------------------------------------------------------------------

    def list_changed(self, since: str | None, cursor: str | None = None) -> ChangePage:
        return self._call("list_changed", self._provider.list_changed, since, cursor)

    def iter_changed(self, since: str | None) -> Iterator[ChangePage]:
        """Yield every page of the "changed since" listing, following cursors."""
        cursor: str | None = None
        while True:
            page = self.list_changed(since, cursor)
            yield page
            if not page.next_cursor:
                return
            cursor = page.next_cursor

    def fetch(self, item_id: str) -> ContentItem:
        return self._call("fetch", self._provider.fetch, item_id)

    def list_all_ids(self) -> list[str]:
        return self._call("list_all_ids", self._provider.list_all_ids)

    # ------------------------------------------------------------------
    # Retry loop
    # ------------------------------------------------------------------

    def _call(self, op: str, fn: Callable[..., T], *args: object) -> T:
        for attempt in range(1, self.max_attempts + 1):
            self._bucket.acquire()
            try:
                with self._slots:
                    return fn(*args)
            except ProviderRateLimited as exc:
                if attempt == self.max_attempts:
                    raise RateLimitExceeded(
                        f"{op} still throttled after {attempt} attempts",
                        context={"operation": op, "args": [str(a) for a in args]},
                    ) from exc
                delay = self._backoff(attempt, exc.retry_after)
            except TransientFetchError as exc:
                if attempt == self.max_attempts:
                    logger.error(f"{op} failed after {attempt} attempts: {exc}")
                    raise
                delay = self._backoff(attempt, None)
            logger.bind(operation=op, attempt=attempt).warning(
                f"{op} attempt {attempt}/{self.max_attempts} failed; retrying in {delay:.2f}s"
            )
            self._sleep(delay)
        raise AssertionError("unreachable")

    def _backoff(self, attempt: int, retry_after: float | None) -> float:
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        delay += random.uniform(0, delay / 2)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay
