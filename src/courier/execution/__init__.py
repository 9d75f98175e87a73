"""Courier Execution — resilience primitives for outbound delivery.

ARCHITECTURE
────────────
::

    Resilience layer
      ├── CircuitBreaker          ─ per-destination fail-fast
      ├── CircuitBreakerRegistry  ─ name → breaker, lazily created
      ├── TokenBucketRateLimiter  ─ shared throughput governor
      └── ExponentialBackoff      ─ retry delays + error classification

All primitives are plain synchronous objects guarded by internal locks;
the dispatch service composes them inside its asyncio loop.
"""

from courier.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    CircuitStats,
)
from courier.execution.rate_limit import TokenBucketRateLimiter
from courier.execution.retry import (
    NON_RETRYABLE_ERRORS,
    ExponentialBackoff,
    is_retryable_error,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    "ExponentialBackoff",
    "NON_RETRYABLE_ERRORS",
    "TokenBucketRateLimiter",
    "is_retryable_error",
]
