"""Retry policy for outbound sends: exponential backoff with jitter and
error-text classification.

Example:
    >>> from courier.execution.retry import ExponentialBackoff, is_retryable_error
    >>>
    >>> backoff = ExponentialBackoff(base_ms=700, max_ms=25_000, jitter_ms=250)
    >>> for attempt in range(1, 4):
    ...     print(f"Attempt {attempt}: wait {backoff.next_delay_ms(attempt)}ms")
    >>> is_retryable_error("invalid_auth")
    False
"""

import random
from collections.abc import Callable
from dataclasses import dataclass, field

# Matched case-insensitively as substrings of the channel's error text.
NON_RETRYABLE_ERRORS: tuple[str, ...] = (
    "invalid_auth",
    "not_authed",
    "channel_not_found",
    "chat_id_required",
    "bot_token_missing",
    "permission_denied",
    "invalid_arguments",
)


def is_retryable_error(error: str | None) -> bool:
    """Whether a failed send with this error text should be retried.

    Anything that does not contain one of ``NON_RETRYABLE_ERRORS`` is
    retryable, including an empty error.
    """
    lower = str(error or "").lower()
    return not any(marker in lower for marker in NON_RETRYABLE_ERRORS)


@dataclass
class ExponentialBackoff:
    """Exponential backoff with additive jitter.

    Delay = min(base_ms * 2 ** (attempt - 1), max_ms) + randrange(jitter_ms)

    Attributes:
        base_ms: Delay of the first attempt
        max_ms: Cap applied before jitter
        jitter_ms: Exclusive upper bound of the random addition (0 disables)
        rng: Integer source ``rng(n) -> [0, n)`` (injectable for tests)
    """

    base_ms: int = 700
    max_ms: int = 25_000
    jitter_ms: int = 250
    rng: Callable[[int], int] = field(default=random.randrange, repr=False)

    def next_delay_ms(self, attempt: int) -> int:
        """Delay in milliseconds before retry number ``attempt`` (1-based)."""
        exponent = max(0, attempt - 1)
        capped = min(self.base_ms * (2 ** exponent), self.max_ms)
        jitter = self.rng(self.jitter_ms) if self.jitter_ms > 0 else 0
        return int(capped + jitter)

    @property
    def upper_bound_ms(self) -> int:
        """Largest delay this policy can produce (exclusive when jitter is on)."""
        return self.max_ms + self.jitter_ms
