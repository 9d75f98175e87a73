"""Courier Core -- errors, logging and settings shared by every layer.

Architecture::

    errors.py          Structured error hierarchy (CourierError, DeliveryError)
    logging.py         structlog configuration + context helpers
    settings.py        pydantic-settings configuration (COURIER_ env prefix)
"""

from courier.core.errors import (
    ConfigError,
    CourierError,
    DeadLetterStoreError,
    DeliveryError,
    ErrorCategory,
)
from courier.core.logging import configure_logging, get_logger
from courier.core.settings import CourierSettings, get_settings

__all__ = [
    "ConfigError",
    "CourierError",
    "CourierSettings",
    "DeadLetterStoreError",
    "DeliveryError",
    "ErrorCategory",
    "configure_logging",
    "get_logger",
    "get_settings",
]
