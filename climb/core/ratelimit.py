"""
Fixed-window rate limiting.

- In-memory, keyed by caller-supplied strings (e.g. "telemetry:<ip>").
- Bucket tables are explicit objects owned by the app lifespan.
- Advisory: counters are lost on restart and window-boundary races are
  last-writer-wins.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateBucket:
    count: int
    reset_at: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: int


class BucketStore:
    """Keyed table of fixed-window buckets."""

    def __init__(self):
        self._buckets: Dict[str, RateBucket] = {}

    def get(self, key: str) -> Optional[RateBucket]:
        return self._buckets.get(key)

    def put(self, key: str, bucket: RateBucket) -> None:
        self._buckets[key] = bucket

    def items(self) -> Iterator[Tuple[str, RateBucket]]:
        # snapshot so callers may delete while iterating
        return iter(list(self._buckets.items()))

    def delete(self, key: str) -> None:
        self._buckets.pop(key, None)

    def clear(self) -> None:
        self._buckets.clear()

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, key: str) -> bool:
        return key in self._buckets


class FixedWindowLimiter:
    def __init__(self, store: Optional[BucketStore] = None, time_fn: Callable[[], int] = now_ms):
        self.store = store if store is not None else BucketStore()
        self.time_fn = time_fn

    def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitDecision:
        """Count one request against `key` and decide whether it is admitted.

        A missing or expired bucket is replaced with a fresh one holding this
        request. Denied requests are not counted.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")

        now = self.time_fn()
        bucket = self.store.get(key)

        if bucket is None or now >= bucket.reset_at:
            bucket = RateBucket(count=1, reset_at=now + window_ms)
            self.store.put(key, bucket)
            return RateLimitDecision(allowed=True, remaining=max(0, max_requests - 1), reset_at=bucket.reset_at)

        if bucket.count >= max_requests:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=bucket.reset_at)

        bucket.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=max(0, max_requests - bucket.count),
            reset_at=bucket.reset_at,
        )

    def sweep_expired(self) -> int:
        """Drop buckets whose window has ended. Returns how many were removed."""
        now = self.time_fn()
        removed = 0
        for key, bucket in self.store.items():
            if bucket.reset_at <= now:
                self.store.delete(key)
                removed += 1
        return removed


def check_rate_limit(limiter: FixedWindowLimiter, key: str, max_requests: int, window_ms: int) -> RateLimitDecision:
    return limiter.check(key, max_requests, window_ms)
