"""Rate Limiting — per-user sliding-window quotas for targeting operations.

Invariants:
    - Quotas are per (bucket, user): a burst of retargets never blocks reads
    - A rejected request is not counted against the window
    - retry_after_ms is the time until the oldest counted request leaves the window
    - Keys idle for a full window are swept, so memory tracks active users only

Design Decisions:
    - In-process and thread-safe (Lock): a single uvicorn worker per replica;
      multi-replica deployments put a gateway limiter in front
    - Quotas read from Settings at dependency time so tests can override them
"""

import logging
import time
from collections import deque
from collections.abc import Callable
from functools import lru_cache
from threading import Lock

from fastapi import Depends

from swap_targeting.api.dependencies import get_current_user_id
from swap_targeting.config import get_settings
from swap_targeting.core.errors import ErrorContext, RateLimitExceededError

logger = logging.getLogger(__name__)

BUCKETS = ("targeting", "retargeting", "removal", "resolution", "reads")


class RateLimiter:
    """Thread-safe sliding-window counter keyed by bucket and user."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._hits: dict[tuple[str, str], deque[float]] = {}
        self._lock = Lock()
        self._clock = clock
        self._last_sweep = clock()

    def hit(self, bucket: str, user_id: str, limit: int, window_seconds: float) -> int:
        """Record one request. Returns 0 if allowed, else retry-after in ms."""
        now = self._clock()
        key = (bucket, user_id)
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(now - window_seconds)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return max(1, int((hits[0] + window_seconds - now) * 1000))
            hits.append(now)
            return 0

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def _sweep(self, cutoff: float) -> None:
        # Drop (bucket, user) windows whose newest hit has expired
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


def _quota(bucket: str) -> int:
    return getattr(get_settings(), f"rate_limit_{bucket}")


def rate_limit(bucket: str):
    """Dependency factory: enforce the bucket's quota for the current user."""
    if bucket not in BUCKETS:
        raise ValueError(f"Unknown rate-limit bucket: {bucket}")

    async def _enforce(user_id: str = Depends(get_current_user_id)) -> str:
        settings = get_settings()
        retry_after_ms = get_rate_limiter().hit(
            bucket, user_id, _quota(bucket), settings.rate_limit_window_seconds,
        )
        if retry_after_ms:
            logger.warning(
                f"Rate limit exceeded for bucket {bucket}",
                extra={"user_id": user_id, "error_code": "RATE_LIMIT_EXCEEDED"},
            )
            raise RateLimitExceededError(
                bucket, retry_after_ms, ErrorContext(user_id=user_id),
            )
        return user_id

    return _enforce
