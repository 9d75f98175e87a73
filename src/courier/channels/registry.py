"""Channel registry — provider name to chat channel."""

from __future__ import annotations

from courier.bus.models import OutboundMessage
from courier.channels.types import ChatChannel, SendResult
from courier.core.errors import ChannelNotRegisteredError
from courier.core.logging import get_logger

logger = get_logger(__name__)


class ChannelRegistry:
    """Routes outbound messages to the channel registered for their provider.

    Example::

        registry = ChannelRegistry()
        registry.register(SlackChannel(token=...))
        result = await registry.send(message)
    """

    def __init__(self) -> None:
        self._channels: dict[str, ChatChannel] = {}

    def register(self, channel: ChatChannel) -> None:
        provider = channel.provider.lower()
        if provider in self._channels:
            logger.info("channel_replaced", provider=provider)
        self._channels[provider] = channel

    def get_channel(self, provider: str) -> ChatChannel | None:
        return self._channels.get(provider.lower())

    def require_channel(self, provider: str) -> ChatChannel:
        """Like ``get_channel`` but raises ``ChannelNotRegisteredError``."""
        channel = self.get_channel(provider)
        if channel is None:
            raise ChannelNotRegisteredError(provider)
        return channel

    def list_channels(self) -> list[ChatChannel]:
        return list(self._channels.values())

    async def start_all(self) -> None:
        for channel in self._channels.values():
            await channel.start()

    async def stop_all(self) -> None:
        for channel in self._channels.values():
            await channel.stop()

    async def send(self, message: OutboundMessage) -> SendResult:
        """Send through the provider's channel.

        An unknown provider yields ``channel_not_registered:<provider>``
        rather than raising.
        """
        provider = str(message.provider or message.channel or "").lower()
        try:
            channel = self.require_channel(provider)
        except ChannelNotRegisteredError as e:
            return SendResult(ok=False, error=e.message)
        return await channel.send(message)
