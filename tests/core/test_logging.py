"""Tests for courier.core.logging."""

import json
import logging

import pytest
import structlog

from courier.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:

    def test_json_output_is_ecs_shaped(self, caplog):
        caplog.set_level(logging.INFO)
        configure_logging(level="INFO", json_format=True, service="courier-test")

        get_logger("courier.test").info("dispatch_started", provider="slack")

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["event"] == "dispatch_started"
        assert payload["provider"] == "slack"
        assert payload["service.name"] == "courier-test"
        assert payload["log.level"] == "info"
        assert "@timestamp" in payload

    def test_level_filters(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="WARNING", json_format=True)

        logger = get_logger("courier.test")
        logger.info("quiet")
        logger.warning("loud")

        messages = [r.getMessage() for r in caplog.records]
        assert not any("quiet" in m for m in messages)
        assert any("loud" in m for m in messages)

    def test_without_timestamp(self, caplog):
        caplog.set_level(logging.INFO)
        configure_logging(json_format=True, add_timestamp=False)

        get_logger("courier.test").info("evt")

        assert "@timestamp" not in json.loads(caplog.records[-1].getMessage())


class TestContext:

    def test_bind_and_unbind(self):
        bind_context(provider="slack", chat_id="C1")
        assert structlog.contextvars.get_contextvars() == {"provider": "slack", "chat_id": "C1"}

        unbind_context("chat_id")
        assert structlog.contextvars.get_contextvars() == {"provider": "slack"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_scopes_keys(self):
        with LogContext(message_id="m-1"):
            assert structlog.contextvars.get_contextvars() == {"message_id": "m-1"}
        assert structlog.contextvars.get_contextvars() == {}

    @pytest.mark.asyncio
    async def test_log_context_async(self):
        async with LogContext(provider="discord"):
            assert structlog.contextvars.get_contextvars() == {"provider": "discord"}
        assert structlog.contextvars.get_contextvars() == {}
