"""In-process token bucket rate limiter for channel adapters."""

import threading
import time
from collections.abc import Callable

from dispatch_shared.enums import Channel

from dispatch_core.config import DispatchConfig

Clock = Callable[[], float]


class TokenBucket:
    """A bucket of up to *capacity* tokens refilled at *refill_per_sec*.

    Refill is computed lazily from the clock on each acquisition, so an idle
    bucket costs nothing. The lock makes refill-and-take a single atomic step:
    two callers can never consume the same token.
    """

    def __init__(
        self, capacity: int, refill_per_sec: float, clock: Clock = time.monotonic
    ) -> None:
        self.capacity = capacity
        self.refill_per_sec = refill_per_sec
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    def try_take(self) -> bool:
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._updated = now
            self._tokens = min(
                float(self.capacity), self._tokens + elapsed * self.refill_per_sec
            )
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    @property
    def available(self) -> float:
        """Tokens available right now (refill applied, nothing taken)."""
        with self._lock:
            elapsed = max(0.0, self._clock() - self._updated)
            return min(
                float(self.capacity), self._tokens + elapsed * self.refill_per_sec
            )


class RateLimiter:
    """Per-channel token buckets shared by every dispatching thread.

    Buckets live in process memory; checking a token never leaves the
    process.
    """

    def __init__(self, config: DispatchConfig, clock: Clock = time.monotonic) -> None:
        self._buckets: dict[str, TokenBucket] = {}
        for channel in Channel:
            settings = config.for_channel(channel)
            self._buckets[channel] = TokenBucket(
                settings.rate_limit_capacity,
                settings.rate_limit_refill_per_sec,
                clock,
            )

    def try_acquire(self, channel: str) -> bool:
        """Try to take one token for *channel* without blocking.

        Returns True if the send may proceed, False if the bucket is empty.
        """
        return self._buckets[channel].try_take()

    def bucket(self, channel: str) -> TokenBucket:
        return self._buckets[channel]
