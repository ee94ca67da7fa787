"""
Token-bucket admission control keyed by caller identity.

Each key owns a bucket of `capacity` tokens refilled at `refill_rate` tokens
per second. Buckets are created under a registry lock and mutated under their
own lock, so concurrent requests from one caller never lose updates and
callers with different keys never contend. Every `sweep_every` admits the
registry drops buckets that have refilled to capacity; a full bucket admits
exactly like a fresh one.
"""
import itertools
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from switchyard_service.core.interfaces import Admission, RateLimiter
from switchyard_service.core.logging import logger


@dataclass
class RateLimitBucket:
    key: str
    tokens: float
    last_refill_at: float
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    evicted: bool = field(default=False, repr=False, compare=False)


class TokenBucketRateLimiter(RateLimiter):
    def __init__(
        self,
        capacity: float = 10,
        refill_rate: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 1024,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._registry_lock = threading.Lock()
        self.sweep_every = max(1, int(sweep_every))
        self._admits = itertools.count(1)

    def _bucket(self, key: str) -> RateLimitBucket:
        bucket = self._buckets.get(key)
        if bucket is not None:
            return bucket
        with self._registry_lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = RateLimitBucket(key=key, tokens=self.capacity, last_refill_at=self._clock())
                self._buckets[key] = bucket
            return bucket

    def _refilled(self, bucket: RateLimitBucket, now: float) -> float:
        elapsed = max(0.0, now - bucket.last_refill_at)
        return min(self.capacity, bucket.tokens + elapsed * self.refill_rate)

    def _evict_idle(self) -> int:
        with self._registry_lock:
            now = self._clock()
            evicted = 0
            for key, bucket in list(self._buckets.items()):
                with bucket.lock:
                    if self._refilled(bucket, now) >= self.capacity:
                        bucket.evicted = True
                        del self._buckets[key]
                        evicted += 1
        if evicted:
            logger.debug(f"Rate limiter evicted {evicted} idle buckets, {len(self._buckets)} remain")
        return evicted

    def admit(self, key: str) -> Admission:
        if next(self._admits) % self.sweep_every == 0:
            self._evict_idle()

        while True:
            bucket = self._bucket(key)
            with bucket.lock:
                # lost a race with the sweep; the key gets a new bucket
                if bucket.evicted:
                    continue
                now = self._clock()
                bucket.tokens = self._refilled(bucket, now)
                bucket.last_refill_at = now

                if bucket.tokens >= 1:
                    bucket.tokens -= 1
                    return Admission(allowed=True, wait_ms=0, remaining=bucket.tokens)

                needed = 1 - bucket.tokens
                wait_ms = max(1, math.ceil(needed / self.refill_rate * 1000))
                logger.info(f"Rate limit hit: key={key}, wait_ms={wait_ms}")
                return Admission(allowed=False, wait_ms=wait_ms, remaining=bucket.tokens)
