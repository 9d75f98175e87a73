"""
Structured error types for courier.

Every courier exception carries a category, an explicit retryable flag,
structured context and an optional chained cause, so callers can log and
route failures without parsing message text.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────┐
        │                      CourierError                        │
        │        (category, retryable, context, cause)             │
        ├─────────────────────────────────────────────────────────┤
        │                                                          │
        │  DeliveryError       ConfigError       StorageError      │
        │  (DELIVERY)          (CONFIG)          (STORAGE)         │
        │       │                                     │            │
        │  ChannelNotRegisteredError        DeadLetterStoreError   │
        └─────────────────────────────────────────────────────────┘

Note:
    The dispatch service never raises these to its callers. ``send``
    always answers with a ``SendResult``; exceptions raised by channels or
    the dead-letter store are converted and logged at the service boundary.

Usage:
    from courier.core.errors import DeadLetterStoreError

    try:
        conn.execute(...)
    except sqlite3.Error as e:
        raise DeadLetterStoreError("append failed", cause=e).with_context(path=path)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from courier.execution.retry import is_retryable_error


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DELIVERY = "DELIVERY"      # Channel transmission failures
    STORAGE = "STORAGE"        # Dead-letter persistence
    CONFIG = "CONFIG"          # Missing/invalid settings
    INTERNAL = "INTERNAL"      # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        provider: Destination provider (slack, discord, telegram)
        chat_id: Destination chat/channel identifier
        message_id: Outbound message identifier
        path: Filesystem path involved (dead-letter store)
        metadata: Additional key-value pairs
    """

    provider: str | None = None
    chat_id: str | None = None
    message_id: str | None = None
    path: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["provider", "chat_id", "message_id", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CourierError(Exception):
    """
    Base exception for all courier errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = CourierError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
        >>> DeliveryError("timeout").retryable
        True
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CourierError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DeliveryError("Failed").with_context(provider="slack", chat_id="C1")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DELIVERY ERRORS
# =============================================================================


class DeliveryError(CourierError):
    """
    A channel failed to transmit a message.

    Unless ``retryable`` is given, it follows the same error-text
    classification the dispatch service applies (``is_retryable_error``),
    so ``DeliveryError("invalid_auth")`` is not retryable.
    """

    default_category = ErrorCategory.DELIVERY

    def __init__(self, message: str, *, retryable: bool | None = None, **kwargs: Any):
        if retryable is None:
            retryable = is_retryable_error(message)
        super().__init__(message, retryable=retryable, **kwargs)


class ChannelNotRegisteredError(DeliveryError):
    """No channel is registered for the requested provider."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"channel_not_registered:{provider}")


# =============================================================================
# CONFIG / STORAGE ERRORS
# =============================================================================


class ConfigError(CourierError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class StorageError(CourierError):
    """Storage-related error (disk, database file)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class DeadLetterStoreError(StorageError):
    """The dead-letter store could not read or write a record."""

    pass


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CourierError",
    "DeliveryError",
    "ChannelNotRegisteredError",
    "ConfigError",
    "StorageError",
    "DeadLetterStoreError",
]
