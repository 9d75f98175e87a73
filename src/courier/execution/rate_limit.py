"""Rate Limiting — token-bucket throughput control for outbound sends.

Manifesto:
Chat platforms enforce per-bot rate limits and answer bursts with 429s
or temporary bans.  The dispatch service throttles itself *before*
hitting the platform with one shared token bucket.

ARCHITECTURE
────────────
::

    TokenBucketRateLimiter
      ├── .try_consume(n)   ─ refill, then take n tokens or reject
      ├── .wait_time_ms()   ─ sleep hint until one token exists
      └── .available        ─ current token count

    Refill is lazy and quantized: tokens are only added in whole
    ``refill_interval_ms`` steps and the sub-interval remainder is carried
    forward, so frequent polling never drifts or over-refills.

BEST PRACTICES
──────────────
- Treat ``wait_time_ms()`` as a single bounded sleep hint, never as the
  basis of a spin loop.
- Combine with ``CircuitBreaker`` for full resilience.

Related modules:
    circuit_breaker.py — fail-fast on sustained failures
    retry.py           — backoff on transient failures

Example::

    limiter = TokenBucketRateLimiter(capacity=30, refill_rate=1, refill_interval_ms=1000)
    if not limiter.try_consume():
        await asyncio.sleep(limiter.wait_time_ms() / 1000)

Tags:
    courier, execution, rate-limit, throttle, token-bucket
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class TokenBucketRateLimiter:
    """Token bucket rate limiter.

    Starts full.  Allows bursts up to ``capacity``, then ``refill_rate``
    tokens per ``refill_interval_ms``.

    Attributes:
        capacity: Maximum tokens (burst size)
        refill_rate: Tokens added per interval
        refill_interval_ms: Interval length in milliseconds
        clock: Monotonic clock in seconds (injectable for tests)
    """

    capacity: float = 30
    refill_rate: float = 1
    refill_interval_ms: float = 1000
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _tokens: float = field(default=0.0, init=False)
    _last_refill_at: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        """Initialize with full bucket."""
        if self.capacity <= 0 or self.refill_rate <= 0 or self.refill_interval_ms <= 0:
            raise ValueError("capacity, refill_rate and refill_interval_ms must be positive")
        self._tokens = float(self.capacity)
        self._last_refill_at = self._now_ms()

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def _refill(self) -> None:
        """Add tokens for every whole interval elapsed, keeping the remainder."""
        elapsed = self._now_ms() - self._last_refill_at
        if elapsed < self.refill_interval_ms:
            return
        intervals = math.floor(elapsed / self.refill_interval_ms)
        self._tokens = min(float(self.capacity), self._tokens + intervals * self.refill_rate)
        self._last_refill_at += intervals * self.refill_interval_ms

    def try_consume(self, tokens: float = 1) -> bool:
        """Take ``tokens`` if available; otherwise reject without changing state."""
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def wait_time_ms(self) -> int:
        """Milliseconds until one token is available (0 if one is available now)."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                return 0
            deficit = 1 - self._tokens
            intervals_needed = math.ceil(deficit / self.refill_rate)
            into_interval = self._now_ms() - self._last_refill_at
            return max(0, math.ceil(intervals_needed * self.refill_interval_ms - into_interval))

    @property
    def available(self) -> float:
        """Current token count after refill."""
        with self._lock:
            self._refill()
            return self._tokens
