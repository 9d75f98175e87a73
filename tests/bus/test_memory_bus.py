"""Tests for the in-memory message bus."""

import asyncio
import time

import pytest

from courier.bus import BusSizes, Message, MessageBus, ProgressEvent


def _msg(content: str, provider: str = "slack") -> Message:
    return Message(provider=provider, chat_id="C1", content=content)


class TestPublishConsume:
    """Queue and rendezvous behavior."""

    @pytest.mark.asyncio
    async def test_fifo_order(self, bus: MessageBus):
        for text in ("a", "b", "c"):
            await bus.publish_outbound(_msg(text))

        got = [(await bus.consume_outbound(timeout_ms=10)).content for _ in range(3)]
        assert got == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_waiting_consumer_receives_message_directly(self, bus: MessageBus):
        consumer = asyncio.create_task(bus.consume_outbound(timeout_ms=1000))
        await asyncio.sleep(0)
        assert bus.waiter_count("outbound") == 1

        await bus.publish_outbound(_msg("hi"))
        assert bus.get_size("outbound") == 0

        received = await consumer
        assert received.content == "hi"
        assert bus.waiter_count("outbound") == 0

    @pytest.mark.asyncio
    async def test_waiters_served_in_arrival_order(self, bus: MessageBus):
        first = asyncio.create_task(bus.consume_outbound(timeout_ms=1000))
        await asyncio.sleep(0)
        second = asyncio.create_task(bus.consume_outbound(timeout_ms=1000))
        await asyncio.sleep(0)

        await bus.publish_outbound(_msg("one"))
        await bus.publish_outbound(_msg("two"))

        assert (await first).content == "one"
        assert (await second).content == "two"

    @pytest.mark.asyncio
    async def test_directions_are_independent(self, bus: MessageBus):
        await bus.publish_inbound(_msg("in"))

        assert await bus.consume_outbound(timeout_ms=5) is None
        assert (await bus.consume_inbound(timeout_ms=5)).content == "in"

    @pytest.mark.asyncio
    async def test_progress_events(self, bus: MessageBus):
        event = ProgressEvent(
            task_id="t1", step=1, description="thinking", provider="slack", chat_id="C1"
        )
        await bus.publish_progress(event)

        assert await bus.consume_progress(timeout_ms=5) is event
        assert bus.get_size() == 0

    @pytest.mark.asyncio
    async def test_named_channel(self, bus: MessageBus):
        await bus.publish("audit", {"n": 1})
        assert await bus.consume("audit", timeout_ms=5) == {"n": 1}


class TestTimeout:
    """A timed-out consumer leaves nothing behind."""

    @pytest.mark.asyncio
    async def test_timeout_returns_none_and_removes_waiter(self, bus: MessageBus):
        started = time.monotonic()
        result = await bus.consume_outbound(timeout_ms=50)
        elapsed = time.monotonic() - started

        assert result is None
        assert elapsed >= 0.04
        assert bus.waiter_count("outbound") == 0

    @pytest.mark.asyncio
    async def test_publish_after_timeout_is_queued_not_lost(self, bus: MessageBus):
        assert await bus.consume_outbound(timeout_ms=20) is None

        await bus.publish_outbound(_msg("late"))

        assert bus.get_size("outbound") == 1
        assert (await bus.consume_outbound(timeout_ms=5)).content == "late"
        assert bus.get_size("outbound") == 0

    @pytest.mark.asyncio
    async def test_zero_timeout_means_default_wait(self, bus: MessageBus):
        consumer = asyncio.create_task(bus.consume_outbound(timeout_ms=0))
        await asyncio.sleep(0.02)
        assert not consumer.done()

        await bus.publish_outbound(_msg("eventually"))

        assert (await consumer).content == "eventually"


class TestIntrospection:

    @pytest.mark.asyncio
    async def test_sizes(self, bus: MessageBus):
        await bus.publish_inbound(_msg("i1"))
        await bus.publish_outbound(_msg("o1"))
        await bus.publish_outbound(_msg("o2"))

        assert bus.get_size("inbound") == 1
        assert bus.get_size("outbound") == 2
        assert bus.get_size() == 3
        assert bus.get_sizes() == BusSizes(inbound=1, outbound=2, total=3)

    @pytest.mark.asyncio
    async def test_peek_does_not_consume(self, bus: MessageBus):
        await bus.publish_inbound(_msg("i1"))
        for n in range(3):
            await bus.publish_outbound(_msg(f"o{n}"))

        peeked = bus.peek(limit=2)

        assert [m.content for m in peeked] == ["i1", "o0", "o1"]
        assert bus.get_size() == 4

    @pytest.mark.asyncio
    async def test_drain_respects_limit(self, bus: MessageBus):
        for n in range(5):
            await bus.publish_outbound(_msg(str(n)))
        await bus.publish_inbound(_msg("i"))

        result = await bus.drain(limit=3)

        assert result.drained_outbound == 3
        assert result.drained_inbound == 1
        assert result.drained_progress == 0
        assert bus.get_size("outbound") == 2


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_waiters(self, bus: MessageBus):
        consumers = [
            asyncio.create_task(bus.consume_outbound(timeout_ms=5000)) for _ in range(3)
        ]
        await asyncio.sleep(0)

        await bus.close()

        assert await asyncio.gather(*consumers) == [None, None, None]
        assert bus.waiter_count("outbound") == 0

    @pytest.mark.asyncio
    async def test_close_drops_pending_and_ignores_publish(self, bus: MessageBus):
        await bus.publish_outbound(_msg("pending"))

        await bus.close()
        await bus.publish_outbound(_msg("after"))

        assert bus.is_closed()
        assert bus.get_size() == 0
        assert await bus.consume_outbound(timeout_ms=5) is None
