"""Circuit breaker pattern for per-destination fault tolerance.

Stops the dispatch pipeline from hammering a chat platform that is
already failing, while periodically letting a bounded number of trial
sends through to detect recovery.

States:
    CLOSED: Normal operation, sends pass through
    OPEN: Failing fast, sends rejected immediately
    HALF_OPEN: Up to ``half_open_max`` trial sends allowed

Transitions:
    CLOSED    -> OPEN       after ``failure_threshold`` consecutive failures
    OPEN      -> HALF_OPEN  on the first check after ``reset_timeout_ms``
    HALF_OPEN -> CLOSED     on the next success
    HALF_OPEN -> OPEN       on the next failure

There is no background timer: the OPEN -> HALF_OPEN move is computed on
access.

Example:
    >>> from courier.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker(failure_threshold=5, reset_timeout_ms=30_000)
    >>>
    >>> if breaker.try_acquire():
    ...     result = await registry.send(message)
    ...     if result.ok:
    ...         breaker.record_success()
    ...     else:
    ...         breaker.record_failure()
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Rejecting sends
    HALF_OPEN = "half_open"    # Testing recovery


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def total_requests(self) -> int:
        return self.successful_requests + self.failed_requests + self.rejected_requests

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


@dataclass
class CircuitBreaker:
    """Failure-gating state machine for one destination.

    Attributes:
        name: Identifier for this circuit (usually the provider)
        failure_threshold: Consecutive failures before opening
        reset_timeout_ms: Milliseconds after the last failure before a trial is allowed
        half_open_max: Trial slots available while half-open
        clock: Monotonic clock in seconds (injectable for tests)
    """

    name: str = "default"
    failure_threshold: int = 5
    reset_timeout_ms: float = 30_000
    half_open_max: int = 1
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    # Internal state
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _half_open_attempts: int = field(default=0, init=False)
    _last_failure_at: float | None = field(default=None, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state, applying a due OPEN -> HALF_OPEN transition."""
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def half_open_attempts(self) -> int:
        return self._half_open_attempts

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    def _check_state_transition(self) -> None:
        """Move OPEN -> HALF_OPEN once the reset timeout has elapsed."""
        if self._state == CircuitState.OPEN and self._last_failure_at is not None:
            elapsed_ms = (self.clock() - self._last_failure_at) * 1000
            if elapsed_ms >= self.reset_timeout_ms:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        self._half_open_attempts = 0
        self._stats.state_changes += 1
        self._stats.last_state_change = utcnow()
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0

    def can_acquire(self) -> bool:
        """Whether a send would be allowed right now; consumes nothing.

        Used by health displays.
        """
        with self._lock:
            self._check_state_transition()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN:
                return self._half_open_attempts < self.half_open_max
            return False

    def try_acquire(self) -> bool:
        """Allow a send, consuming one half-open trial slot when half-open."""
        with self._lock:
            self._check_state_transition()
            if self._state == CircuitState.CLOSED:
                return True
            if (
                self._state == CircuitState.HALF_OPEN
                and self._half_open_attempts < self.half_open_max
            ):
                self._half_open_attempts += 1
                return True
            self._stats.rejected_requests += 1
            return False

    def record_success(self) -> None:
        """Record a delivered send; closes a half-open (or open) circuit."""
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = utcnow()
            self._failure_count = 0
            self._transition_to(CircuitState.CLOSED)

    def record_failure(self) -> None:
        """Record a failed send; a failed half-open trial reopens immediately."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self.clock()
            self._stats.failed_requests += 1
            self._stats.last_failure_time = utcnow()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self._failure_count >= self.failure_threshold:
                self._transition_to(CircuitState.OPEN)

    def release(self) -> None:
        """Return an acquired half-open trial slot without recording an outcome.

        For sends that end with neither a success nor a failure that should
        count against the destination (non-retryable rejection, cancellation).
        """
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_attempts > 0:
                self._half_open_attempts -= 1

    def reset(self) -> None:
        """Administrative override: force CLOSED with all counters zeroed."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._half_open_attempts = 0
            self._last_failure_at = None


class CircuitBreakerRegistry:
    """Named circuit breakers sharing one set of default options.

    Example:
        >>> registry = CircuitBreakerRegistry(failure_threshold=3)
        >>> registry.get_or_create("slack").state
        <CircuitState.CLOSED: 'closed'>
    """

    def __init__(self, **defaults: Any):
        self._defaults = defaults
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name, returns None if not found."""
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(self, name: str, **kwargs: Any) -> CircuitBreaker:
        """Get or lazily create the breaker for ``name``."""
        with self._lock:
            if name not in self._breakers:
                options = {**self._defaults, **kwargs}
                self._breakers[name] = CircuitBreaker(name=name, **options)
            return self._breakers[name]

    def list_all(self) -> list[str]:
        with self._lock:
            return list(self._breakers.keys())

    def remove(self, name: str) -> None:
        with self._lock:
            self._breakers.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._breakers.clear()

    def reset_all(self) -> None:
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()

    def snapshot(self) -> dict[str, str]:
        """Map of breaker name to current state value."""
        with self._lock:
            return {name: breaker.state.value for name, breaker in self._breakers.items()}
