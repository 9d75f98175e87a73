"""Tests for ChannelRegistry."""

import pytest

from courier.bus import Message
from courier.channels import ChannelRegistry, ChatChannel, SendResult
from courier.core.errors import ChannelNotRegisteredError


class StubChannel:
    def __init__(self, provider: str, result: SendResult | None = None):
        self.provider = provider
        self.result = result or SendResult(ok=True, message_id=f"{provider}-1")
        self.sent: list[Message] = []
        self._running = False

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    def is_running(self) -> bool:
        return self._running

    async def send(self, message: Message) -> SendResult:
        self.sent.append(message)
        return self.result


@pytest.fixture()
def registry() -> ChannelRegistry:
    return ChannelRegistry()


class TestChannelRegistry:

    def test_stub_satisfies_protocol(self):
        assert isinstance(StubChannel("slack"), ChatChannel)

    def test_register_and_lookup_case_insensitive(self, registry):
        channel = StubChannel("Slack")
        registry.register(channel)

        assert registry.get_channel("slack") is channel
        assert registry.get_channel("SLACK") is channel
        assert registry.get_channel("discord") is None

    def test_register_replaces(self, registry):
        registry.register(StubChannel("slack"))
        replacement = StubChannel("slack")
        registry.register(replacement)

        assert registry.list_channels() == [replacement]

    def test_require_channel_raises(self, registry):
        with pytest.raises(ChannelNotRegisteredError) as exc_info:
            registry.require_channel("telegram")
        assert exc_info.value.provider == "telegram"
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_send_routes_by_provider(self, registry):
        slack, discord = StubChannel("slack"), StubChannel("discord")
        registry.register(slack)
        registry.register(discord)

        result = await registry.send(Message(provider="discord", chat_id="D1", content="x"))

        assert result.message_id == "discord-1"
        assert len(discord.sent) == 1
        assert slack.sent == []

    @pytest.mark.asyncio
    async def test_send_falls_back_to_channel_field(self, registry):
        registry.register(StubChannel("telegram"))

        result = await registry.send(Message(provider="", channel="telegram", chat_id="1"))

        assert result.ok

    @pytest.mark.asyncio
    async def test_send_unknown_provider_returns_error(self, registry):
        result = await registry.send(Message(provider="irc", chat_id="#x"))

        assert result == SendResult(ok=False, error="channel_not_registered:irc")

    @pytest.mark.asyncio
    async def test_start_and_stop_all(self, registry):
        channels = [StubChannel("slack"), StubChannel("discord")]
        for channel in channels:
            registry.register(channel)

        await registry.start_all()
        assert all(c.is_running() for c in channels)

        await registry.stop_all()
        assert not any(c.is_running() for c in channels)
