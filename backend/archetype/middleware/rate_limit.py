"""
Archetype Backend - Rate Limiting
===================================

What:  Per-client fixed-window rate limiter and the pipeline stage that uses it.
Why:   Protects the API from abuse and brute-force credential guessing.
How:   Each client key maps to a bucket (count, window_start):

           now - window_start <  window  → count += 1
           now - window_start >= window  → count = 1, window_start = now
           count > max_per_window        → reject, retry_after = time left

Client keys:
    sub:<subject>   when the authenticate stage attached an identity
    ip:<address>    otherwise
    Allow-listed client IPs (e.g. loopback health checks) bypass the check.

Concurrency:
    Buckets are the only state shared between in-flight requests. Every
    read-modify-write on a bucket happens under that key's asyncio.Lock, and
    the critical section has no await, so a cancelled request either
    counted fully or not at all. Two simultaneous requests for the same key
    can never both observe the pre-increment count.

Memory:
    In-memory only, state is lost on restart. Expired buckets are swept every
    SWEEP_INTERVAL checks and whenever the key count exceeds max_keys; if a
    sweep cannot get under max_keys, the oldest windows are dropped in one
    batch down to 90% of max_keys.
    Multi-worker deployments each keep their own counters.

Response headers on allowed requests (post-hook):
    X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset (seconds)
"""

import asyncio
import heapq
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from starlette.requests import Request
from starlette.responses import Response

from archetype.context import RequestContext
from archetype.exceptions import rate_limited
from archetype.middleware.pipeline import Stage

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = 1000
# Over-capacity eviction trims the table to this fraction of max_keys
EVICT_TO_FRACTION = 0.9


@dataclass
class RateLimitBucket:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    limit: int
    remaining: int
    reset_after: int
    bypassed: bool = False


class RateLimiter:
    """
    In-memory fixed-window counter keyed by client.

    Args:
        max_per_window: Requests allowed per key per window (positive)
        window_seconds: Window length in seconds (positive)
        allow_list:     Keys that are never counted
        max_keys:       Soft cap on tracked buckets
        clock:          Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_per_window: int,
        window_seconds: float,
        allow_list: Iterable[str] = (),
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_per_window < 1:
            raise ValueError("max_per_window must be a positive integer")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_per_window = max_per_window
        self.window_seconds = float(window_seconds)
        self.allow_list = frozenset(allow_list)
        self.max_keys = max_keys
        self._clock = clock
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._checks = 0

    def __len__(self) -> int:
        return len(self._buckets)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _retry_after(self, bucket: RateLimitBucket, now: float) -> int:
        remaining = bucket.window_start + self.window_seconds - now
        return min(max(1, math.ceil(remaining)), max(1, math.ceil(self.window_seconds)))

    async def check(self, key: str, *bypass_keys: str) -> RateLimitDecision:
        """
        Count one request for `key`.

        Returns:
            RateLimitDecision for allowed requests.
        Raises:
            ClassifiedError(rate_limited) carrying retry_after in seconds.
        """
        if key in self.allow_list or any(k in self.allow_list for k in bypass_keys):
            return RateLimitDecision(self.max_per_window, self.max_per_window, 0, bypassed=True)

        async with self._lock_for(key):
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or now - bucket.window_start >= self.window_seconds:
                bucket = self._buckets[key] = RateLimitBucket(count=1, window_start=now)
            else:
                bucket.count += 1
            count = bucket.count
            retry_after = self._retry_after(bucket, now)

        self._checks += 1
        if self._checks % SWEEP_INTERVAL == 0 or len(self._buckets) > self.max_keys:
            self.sweep()

        if count > self.max_per_window:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %.0fs window",
                key,
                count,
                self.window_seconds,
            )
            raise rate_limited(retry_after)
        return RateLimitDecision(
            limit=self.max_per_window,
            remaining=self.max_per_window - count,
            reset_after=retry_after,
        )

    def sweep(self) -> int:
        """Drop expired buckets (and oldest ones when over capacity). Returns count removed."""
        now = self._clock()
        expired = [
            key for key, bucket in self._buckets.items()
            if now - bucket.window_start >= self.window_seconds and not self._is_locked(key)
        ]
        for key in expired:
            self._drop(key)

        evicted = 0
        if len(self._buckets) > self.max_keys:
            # Trim to the low-water mark, not just back under max_keys
            target = max(1, int(self.max_keys * EVICT_TO_FRACTION))
            oldest = heapq.nsmallest(
                len(self._buckets) - target,
                (k for k in self._buckets if not self._is_locked(k)),
                key=lambda k: self._buckets[k].window_start,
            )
            for key in oldest:
                self._drop(key)
                evicted += 1

        if expired or evicted:
            logger.debug("Swept %d expired and %d overflow rate-limit buckets", len(expired), evicted)
        return len(expired) + evicted

    def _is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def _drop(self, key: str) -> None:
        self._buckets.pop(key, None)
        self._locks.pop(key, None)

    def reset(self) -> None:
        self._buckets.clear()
        self._locks.clear()
        self._checks = 0


def client_key(ctx: RequestContext) -> str:
    if ctx.identity is not None:
        return f"sub:{ctx.identity.subject}"
    return f"ip:{ctx.client_ip}"


class RateLimitStage(Stage):
    name = "rate_limit"

    def __init__(self, limiter: RateLimiter):
        self.limiter = limiter

    async def before(self, ctx: RequestContext, request: Request) -> Optional[Response]:
        # Allow-list entries are raw client IPs or full keys
        ctx.rate_limit = await self.limiter.check(client_key(ctx), ctx.client_ip)
        return None

    async def after(self, ctx: RequestContext, request: Request, response: Response) -> None:
        decision = ctx.rate_limit
        if decision is None or decision.bypassed:
            return
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, decision.remaining))
        response.headers["X-RateLimit-Reset"] = str(decision.reset_after)
