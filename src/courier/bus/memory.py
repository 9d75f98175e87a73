"""
In-memory message bus.

Manifesto:
    Producers (agent loop, cron jobs, tool handlers) must never block on a
    slow chat platform, and the dispatch loop must never spin on an empty
    queue.  The bus decouples the two with FIFO queues and suspending
    consumers, and is volatile by design: nothing survives a restart.

Each named channel owns a queue of pending messages and a queue of waiting
consumers.  ``publish`` hands a message straight to the oldest waiter
when one exists (rendezvous), otherwise appends it.  ``consume`` pops
immediately when the queue is non-empty, otherwise parks an
``asyncio.Future`` until a publish resolves it or the timeout fires; a
timed-out waiter removes itself so it is never resolved twice.

Every published message reaches at most one consumer.

Tags:
    courier, bus, in-memory, asyncio, single-node
"""

from __future__ import annotations

import asyncio
from collections import deque
from itertools import islice
from typing import Any

from courier.bus.models import (
    BusDirection,
    BusDrainResult,
    BusSizes,
    InboundMessage,
    OutboundMessage,
    ProgressEvent,
)

__all__ = ["MessageBus", "DEFAULT_CONSUME_TIMEOUT_MS", "MAX_CONSUME_TIMEOUT_MS"]

DEFAULT_CONSUME_TIMEOUT_MS = 30_000
MAX_CONSUME_TIMEOUT_MS = 300_000

INBOUND = "inbound"
OUTBOUND = "outbound"
PROGRESS = "progress"


def _clamp_timeout(timeout_ms: float | None) -> float:
    """Wait budget in ms: None, 0 and NaN mean the default; the rest is clamped."""
    if not timeout_ms or timeout_ms != timeout_ms:
        timeout_ms = DEFAULT_CONSUME_TIMEOUT_MS
    return max(1.0, min(float(MAX_CONSUME_TIMEOUT_MS), float(timeout_ms)))


class _Channel:
    """Pending messages plus parked consumers for one channel name."""

    __slots__ = ("queue", "waiters")

    def __init__(self) -> None:
        self.queue: deque[Any] = deque()
        self.waiters: deque[asyncio.Future] = deque()


class MessageBus:
    """Named FIFO channels with suspending consumers.

    Example::

        bus = MessageBus()
        await bus.publish_outbound(Message(provider="slack", chat_id="C1", content="hi"))
        msg = await bus.consume_outbound(timeout_ms=2000)
    """

    def __init__(self) -> None:
        self._channels: dict[str, _Channel] = {
            INBOUND: _Channel(),
            OUTBOUND: _Channel(),
            PROGRESS: _Channel(),
        }
        self._closed = False

    def _channel(self, name: str) -> _Channel:
        channel = self._channels.get(name)
        if channel is None:
            channel = self._channels[name] = _Channel()
        return channel

    # ── Generic channel API ──────────────────────────────────────────────

    async def publish(self, channel: str, message: Any) -> None:
        """Deliver ``message`` to the oldest waiting consumer, else enqueue it.

        No-op once the bus is closed.
        """
        if self._closed:
            return
        target = self._channel(channel)
        while target.waiters:
            waiter = target.waiters.popleft()
            if not waiter.done():
                waiter.set_result(message)
                return
        target.queue.append(message)

    async def consume(self, channel: str, timeout_ms: float | None = None) -> Any | None:
        """Take the oldest message, waiting up to ``timeout_ms`` for one.

        Args:
            channel: Channel name
            timeout_ms: Wait budget in ms. None or 0 means the 30s default;
                other values are clamped to [1ms, 300s]

        Returns:
            The message, or None on timeout or when the bus is closed.
        """
        if self._closed:
            return None
        source = self._channel(channel)
        if source.queue:
            return source.queue.popleft()

        waiter: asyncio.Future = asyncio.get_running_loop().create_future()
        source.waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=_clamp_timeout(timeout_ms) / 1000)
        except TimeoutError:
            # A publish may have resolved the waiter in the same tick the timer fired.
            if waiter.done() and not waiter.cancelled():
                return waiter.result()
            return None
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.result() is not None:
                source.queue.appendleft(waiter.result())
            raise
        finally:
            try:
                source.waiters.remove(waiter)
            except ValueError:
                pass

    def waiter_count(self, channel: str) -> int:
        """Number of consumers currently parked on ``channel``."""
        return len(self._channel(channel).waiters)

    # ── Direction helpers ────────────────────────────────────────────────

    async def publish_inbound(self, message: InboundMessage) -> None:
        await self.publish(INBOUND, message)

    async def publish_outbound(self, message: OutboundMessage) -> None:
        await self.publish(OUTBOUND, message)

    async def publish_progress(self, event: ProgressEvent) -> None:
        await self.publish(PROGRESS, event)

    async def consume_inbound(self, timeout_ms: float | None = None) -> InboundMessage | None:
        return await self.consume(INBOUND, timeout_ms)

    async def consume_outbound(self, timeout_ms: float | None = None) -> OutboundMessage | None:
        return await self.consume(OUTBOUND, timeout_ms)

    async def consume_progress(self, timeout_ms: float | None = None) -> ProgressEvent | None:
        return await self.consume(PROGRESS, timeout_ms)

    # ── Introspection ────────────────────────────────────────────────────

    def peek(self, limit: int = 20) -> list[Any]:
        """Up to ``limit`` pending inbound messages followed by up to ``limit`` outbound."""
        n = max(1, int(limit or 20))
        return [
            *islice(self._channels[INBOUND].queue, n),
            *islice(self._channels[OUTBOUND].queue, n),
        ]

    def get_size(self, direction: BusDirection | None = None) -> int:
        inbound = len(self._channels[INBOUND].queue)
        outbound = len(self._channels[OUTBOUND].queue)
        if direction == INBOUND:
            return inbound
        if direction == OUTBOUND:
            return outbound
        return inbound + outbound

    def get_sizes(self) -> BusSizes:
        inbound = len(self._channels[INBOUND].queue)
        outbound = len(self._channels[OUTBOUND].queue)
        return BusSizes(inbound=inbound, outbound=outbound, total=inbound + outbound)

    async def drain(self, limit: int = 5000) -> BusDrainResult:
        """Discard at most ``limit`` pending messages from each built-in queue."""
        n = max(1, int(limit or 5000))
        counts = {}
        for name in (INBOUND, OUTBOUND, PROGRESS):
            queue = self._channels[name].queue
            drained = 0
            while queue and drained < n:
                queue.popleft()
                drained += 1
            counts[name] = drained
        return BusDrainResult(
            drained_inbound=counts[INBOUND],
            drained_outbound=counts[OUTBOUND],
            drained_progress=counts[PROGRESS],
        )

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Mark closed, release every parked consumer with None, drop pending messages."""
        self._closed = True
        for channel in self._channels.values():
            waiters = list(channel.waiters)
            channel.waiters.clear()
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(None)
        await self.drain()
        for name, channel in self._channels.items():
            if name not in (INBOUND, OUTBOUND, PROGRESS):
                channel.queue.clear()

    def is_closed(self) -> bool:
        return self._closed
