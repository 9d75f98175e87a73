"""Message bus for decoupling producers from the dispatch loop.

Usage::

    from courier.bus import Message, MessageBus

    bus = MessageBus()
    await bus.publish_outbound(Message(provider="slack", chat_id="C1", content="done"))
    message = await bus.consume_outbound(timeout_ms=2000)

Modules
-------
models      Message, MediaItem, ProgressEvent, BusSizes, BusDrainResult
memory      MessageBus -- asyncio futures, single-process
"""

from courier.bus.memory import MessageBus
from courier.bus.models import (
    BusDirection,
    BusDrainResult,
    BusSizes,
    InboundMessage,
    MediaItem,
    Message,
    OutboundMessage,
    ProgressEvent,
)

__all__ = [
    "BusDirection",
    "BusDrainResult",
    "BusSizes",
    "InboundMessage",
    "MediaItem",
    "Message",
    "MessageBus",
    "OutboundMessage",
    "ProgressEvent",
]
