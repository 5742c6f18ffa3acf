"""Fixed-window request limiter keyed by client identity.

Counters live in a pluggable store:
- MemoryCounterStore: per-process dict, swept by a background thread
- LimitsCounterStore: any backend the `limits` library supports
  (memory://, redis://, memcached://), for multi-worker deployments

The middleware in otw.middleware.rate_limit turns decisions into 429s and
X-RateLimit-* headers. This module knows nothing about Flask requests.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass

from limits.storage import storage_from_string

from otw.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0


def parse_limit(value):
    """Parse "<max>/<window seconds>" (e.g. "100/60") into a RateLimit."""
    if isinstance(value, RateLimit):
        return value
    try:
        max_requests, window = str(value).split("/", 1)
        limit = RateLimit(int(max_requests), int(window))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid rate limit '{value}', expected '<max>/<seconds>'")
    if limit.max_requests <= 0 or limit.window_seconds <= 0:
        raise ValidationError(f"Invalid rate limit '{value}', values must be positive")
    return limit


class MemoryCounterStore:
    """In-process counters. Safe across threads, not across workers."""

    def __init__(self):
        self._counters = {}
        self._lock = threading.Lock()

    def increment(self, key, window_seconds, now):
        """Count one hit. Returns (count, reset_at) for the current window."""
        with self._lock:
            entry = self._counters.get(key)
            if entry is None or now >= entry[1]:
                entry = [0, now + window_seconds]
                self._counters[key] = entry
            entry[0] += 1
            return entry[0], entry[1]

    def sweep(self, now):
        """Drop expired windows. Returns how many keys were removed."""
        with self._lock:
            expired = [key for key, (_, reset_at) in self._counters.items() if now >= reset_at]
            for key in expired:
                del self._counters[key]
        return len(expired)

    def __len__(self):
        return len(self._counters)


class LimitsCounterStore:
    """Counters kept in a `limits` storage backend.

    The backend expires keys itself, so sweep() has nothing to do.
    """

    def __init__(self, storage_uri):
        self.storage = storage_from_string(storage_uri)

    def increment(self, key, window_seconds, now):
        count = self.storage.incr(key, window_seconds)
        reset_at = self.storage.get_expiry(key)
        return count, reset_at

    def sweep(self, now):
        return 0


class RateLimiterService:
    """Applies named fixed-window limits to caller keys.

    Args:
        limits: {name: RateLimit or "<max>/<seconds>"}. Must contain "default".
        store: Counter store (defaults to a fresh MemoryCounterStore).
        clock: Callable returning epoch seconds; injectable for tests.
    """

    def __init__(self, limits, store=None, clock=time.time):
        self.limits = {name: parse_limit(value) for name, value in limits.items()}
        if "default" not in self.limits:
            raise ValidationError("A 'default' rate limit is required")
        self.store = store if store is not None else MemoryCounterStore()
        self.clock = clock
        self._sweeper = None
        self._stop = threading.Event()

    def check(self, key, limit_name="default"):
        """Record a hit for `key` and decide whether it is allowed."""
        limit = self.limits.get(limit_name) or self.limits["default"]
        now = self.clock()
        count, reset_at = self.store.increment(
            f"{limit_name}:{key}", limit.window_seconds, now
        )

        if count > limit.max_requests:
            return RateLimitDecision(
                allowed=False,
                limit=limit.max_requests,
                remaining=0,
                reset_at=reset_at,
                retry_after=max(1, math.ceil(reset_at - now)),
            )

        return RateLimitDecision(
            allowed=True,
            limit=limit.max_requests,
            remaining=limit.max_requests - count,
            reset_at=reset_at,
        )

    def sweep(self):
        removed = self.store.sweep(self.clock())
        if removed:
            logger.debug(f"Rate limiter swept {removed} expired window(s)")
        return removed

    def start_sweeper(self, interval):
        """Run sweep() every `interval` seconds on a daemon thread."""
        if self._sweeper is not None or interval <= 0:
            return self._sweeper

        def _run():
            while not self._stop.wait(interval):
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Rate limiter sweep failed")

        self._sweeper = threading.Thread(
            target=_run, name="rate-limit-sweeper", daemon=True
        )
        self._sweeper.start()
        logger.info(f"Rate limiter sweeper started (every {interval}s)")
        return self._sweeper

    def stop_sweeper(self):
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None


def build_rate_limiter(config):
    """Build the limiter from app config."""
    storage_uri = config.get("RATE_LIMIT_STORAGE_URI", "memory://")
    # The plain dict store supports sweeping and needs no extra service
    store = MemoryCounterStore() if storage_uri == "memory://" else LimitsCounterStore(storage_uri)

    return RateLimiterService(
        {
            "default": config.get("RATE_LIMIT_DEFAULT", "100/60"),
            "admin": config.get("RATE_LIMIT_ADMIN", "500/60"),
        },
        store=store,
    )
