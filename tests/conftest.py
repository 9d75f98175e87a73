"""
Shared pytest fixtures for courier tests.

This module provides:
- Deterministic clocks and recorded sleeps (no wall-clock waits)
- Message factories
- structlog isolation between tests
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import structlog

from courier.bus import Message, MessageBus
from courier.core.settings import clear_settings_cache
from tests._support.fakes import FakeClock, RecordingSleep


@pytest.fixture(autouse=True)
def _isolate_global_state():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    clear_settings_cache()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleeper(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture()
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture()
def make_message() -> Callable[..., Message]:
    counter = {"n": 0}

    def factory(**overrides: Any) -> Message:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"msg-{counter['n']}",
            "provider": "slack",
            "channel": "slack",
            "chat_id": "C123",
            "sender_id": "agent",
            "content": f"hello {counter['n']}",
        }
        fields.update(overrides)
        return Message(**fields)

    return factory
