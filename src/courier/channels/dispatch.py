"""Dispatch service — reliable hand-off of outbound messages to chat channels.

WHY
───
Producers publish replies and notifications without caring whether Slack is
slow, Telegram is rate limiting or Discord is down.  The dispatch service
owns that problem: it throttles, dedupes, retries with backoff, fails fast
on unhealthy destinations, requeues out of band and finally dead-letters
what could not be delivered.  Callers always get a ``SendResult`` back,
never an exception.

ARCHITECTURE
────────────
::

    bus.publish_outbound ──► consume loop ─┐
    producer ──────────────► send() ───────┤
                                           ▼
                           1. rate gate (one bounded sleep)
                           2. dedupe short-circuit (TTL cache)
                           3. inline attempts ── circuit gate ── registry.send
                                  │ non-retryable ──► fail now
                                  ▼ retryable, attempts exhausted
                           4. dispatch_retry < retry_max ──► clone + delayed re-publish
                           5. otherwise ──► dead-letter sink

Delivery is at-least-once: dedupe is best effort and bounded by
``ttl_ms``.

Example::

    dispatch = DispatchService.from_settings(bus, registry, get_settings())
    await dispatch.start()
    result = await dispatch.send("slack", message)
    ...
    await dispatch.stop()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from courier.bus.memory import MessageBus
from courier.bus.models import OutboundMessage
from courier.channels.dedupe import DefaultOutboundDedupePolicy, OutboundDedupePolicy
from courier.channels.dlq import DeadLetterRecord, DeadLetterSink, create_dead_letter_store
from courier.channels.types import (
    SUPPORTED_PROVIDERS,
    ChannelRegistryLike,
    SendResult,
    resolve_provider,
)
from courier.core.logging import get_logger
from courier.core.settings import CourierSettings, DedupeSettings, DispatchSettings
from courier.execution.circuit_breaker import CircuitBreakerRegistry
from courier.execution.rate_limit import TokenBucketRateLimiter
from courier.execution.retry import ExponentialBackoff, is_retryable_error

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class _RecentRecord:
    at_ms: float
    message_id: str


def get_retry_count(message: OutboundMessage) -> int:
    """Cumulative out-of-band retries recorded on ``message``."""
    raw = (message.metadata or {}).get("dispatch_retry", 0)
    try:
        return max(0, int(float(raw or 0)))
    except (TypeError, ValueError, OverflowError):
        return 0


class DispatchService:
    """Consumes the outbound queue and delivers through the channel registry.

    All mutable pipeline state (dedupe cache, rate limiter, circuit
    breakers, pending retry tasks) is owned by the instance.

    Args:
        bus: Message bus whose outbound queue is consumed and re-published to
        registry: Channel registry that performs the actual transmission
        dispatch: Retry/backoff/DLQ options
        dedupe: Dedupe window options
        rate_limiter: Shared token bucket (default: 30 burst, 1/s)
        circuit_breakers: Per-provider breakers; None disables circuit breaking
        dlq_store: Dead-letter sink; None disables dead-lettering
        dedupe_policy: Dedupe key function
        backoff: Backoff policy (default: built from ``dispatch``)
        providers: Providers the consume loop accepts
        clock: Monotonic clock in seconds, used by the dedupe cache
        sleep: Awaitable sleep in seconds
    """

    name = "dispatch"

    def __init__(
        self,
        bus: MessageBus,
        registry: ChannelRegistryLike,
        *,
        dispatch: DispatchSettings | None = None,
        dedupe: DedupeSettings | None = None,
        rate_limiter: TokenBucketRateLimiter | None = None,
        circuit_breakers: CircuitBreakerRegistry | None = None,
        dlq_store: DeadLetterSink | None = None,
        dedupe_policy: OutboundDedupePolicy | None = None,
        backoff: ExponentialBackoff | None = None,
        providers: frozenset[str] | set[str] = SUPPORTED_PROVIDERS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._bus = bus
        self._registry = registry
        self._dispatch = dispatch or DispatchSettings()
        self._dedupe = dedupe or DedupeSettings()
        self._rate_limiter = rate_limiter or TokenBucketRateLimiter()
        self._breakers = circuit_breakers
        self._dlq = dlq_store
        self._dedupe_policy = dedupe_policy or DefaultOutboundDedupePolicy()
        self._backoff = backoff or ExponentialBackoff(
            base_ms=self._dispatch.retry_base_ms,
            max_ms=self._dispatch.retry_max_ms,
            jitter_ms=self._dispatch.retry_jitter_ms,
        )
        self._providers = frozenset(p.lower() for p in providers)
        self._clock = clock
        self._sleep = sleep
        self._logger = get_logger(__name__).bind(component=self.name)

        self._recent: dict[str, _RecentRecord] = {}
        self._pending_retries: set[asyncio.Task] = set()
        self._running = False
        self._loop_task: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        bus: MessageBus,
        registry: ChannelRegistryLike,
        settings: CourierSettings,
        **overrides: Any,
    ) -> DispatchService:
        """Wire a service from ``CourierSettings``; keyword overrides win."""
        breaker_cfg = settings.circuit_breaker
        options: dict[str, Any] = {
            "dispatch": settings.dispatch,
            "dedupe": settings.dedupe,
            "rate_limiter": TokenBucketRateLimiter(
                capacity=settings.rate_limit.capacity,
                refill_rate=settings.rate_limit.refill_rate,
                refill_interval_ms=settings.rate_limit.refill_interval_ms,
            ),
            "circuit_breakers": (
                CircuitBreakerRegistry(
                    failure_threshold=breaker_cfg.failure_threshold,
                    reset_timeout_ms=breaker_cfg.reset_timeout_ms,
                    half_open_max=breaker_cfg.half_open_max,
                )
                if breaker_cfg.enabled
                else None
            ),
            "dlq_store": create_dead_letter_store(settings),
        }
        options.update(overrides)
        return cls(bus, registry, **options)

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Launch the consume loop; idempotent."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._consume_loop(), name="courier-dispatch-loop")
        self._logger.info("dispatch_started")

    async def stop(self) -> None:
        """Stop consuming and cancel every scheduled retry.

        Retries are cancelled twice: the loop's last in-flight send may
        schedule a new one while we wait for it to finish.
        """
        self._running = False
        await self._cancel_pending_retries()
        if self._loop_task is not None:
            await self._loop_task
        await self._cancel_pending_retries()
        self._loop_task = None
        self._logger.info("dispatch_stopped")

    def health_check(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "recent_cache_size": len(self._recent),
            "pending_retries": len(self._pending_retries),
            "rate_limit_tokens": self._rate_limiter.available,
        }
        if self._breakers is not None:
            details["circuits"] = self._breakers.snapshot()
        return {"ok": self._running, "details": details}

    @property
    def recent_cache_size(self) -> int:
        return len(self._recent)

    @property
    def pending_retry_count(self) -> int:
        return len(self._pending_retries)

    # ── Public API ───────────────────────────────────────────────────────

    async def send(self, provider: str, message: OutboundMessage) -> SendResult:
        """Deliver ``message`` through ``provider`` with the full reliability pipeline."""
        provider = provider.lower()
        try:
            return await self._send_with_retry(provider, message)
        except Exception as e:
            self._logger.exception(
                "dispatch_unexpected_error", provider=provider, message_id=message.id
            )
            return SendResult(ok=False, error=f"dispatch_error:{e}")

    def compute_delay(self, attempt: int) -> int:
        """Backoff delay in milliseconds before retry number ``attempt``."""
        return self._backoff.next_delay_ms(attempt)

    # ── Internals ────────────────────────────────────────────────────────

    async def _consume_loop(self) -> None:
        while self._running:
            message = await self._bus.consume_outbound(
                timeout_ms=self._dispatch.consume_timeout_ms
            )
            if message is None:
                if self._bus.is_closed():
                    self._logger.info("dispatch_bus_closed")
                    break
                continue
            provider = resolve_provider(message, self._providers)
            if provider is None:
                self._logger.debug(
                    "dispatch_skipped_unknown_provider",
                    provider=message.provider or message.channel,
                    message_id=message.id,
                )
                continue
            result = await self.send(provider, message)
            if not result.ok:
                self._logger.debug("dispatch_failed", provider=provider, error=result.error)

    async def _send_with_retry(self, provider: str, message: OutboundMessage) -> SendResult:
        await self._rate_gate(provider)

        self._prune_recent()
        dedupe_key = self._dedupe_policy.key(provider, message)
        cached = self._recent.get(dedupe_key)
        if cached is not None and self._now_ms() - cached.at_ms <= self._dedupe.ttl_ms:
            self._logger.debug("dispatch_deduped", provider=provider, message_id=cached.message_id)
            return SendResult(ok=True, message_id=cached.message_id)

        breaker = self._breakers.get_or_create(provider) if self._breakers is not None else None
        attempts = max(1, self._dispatch.inline_retries + 1)
        last_error = ""

        for attempt in range(1, attempts + 1):
            if breaker is not None and not breaker.try_acquire():
                last_error = f"circuit_open:{provider}"
                self._logger.debug("dispatch_circuit_open", provider=provider, attempt=attempt)
                break

            # Every admitted attempt settles the breaker, or hands its trial slot back.
            settled = False
            try:
                result = await self._transmit(message)
                if result.ok:
                    if breaker is not None:
                        breaker.record_success()
                        settled = True
                    self._remember(dedupe_key, str(result.message_id or message.id or ""))
                    return result

                last_error = str(result.error or "unknown_error")
                retryable = is_retryable_error(last_error)
                if retryable and breaker is not None:
                    breaker.record_failure()
                    settled = True
            finally:
                if breaker is not None and not settled:
                    breaker.release()

            if not retryable:
                break
            if attempt < attempts:
                await self._sleep(self.compute_delay(attempt) / 1000)

        retryable = is_retryable_error(last_error)
        retry_count = get_retry_count(message)
        if retryable and retry_count < self._dispatch.retry_max:
            self._schedule_retry(provider, message, retry_count + 1, last_error)
            return SendResult(ok=False, error=f"requeued_retry_{retry_count + 1}:{last_error}")

        if retryable:
            await self._write_dlq(provider, message, last_error, retry_count)
        return SendResult(ok=False, error=last_error or "send_failed")

    async def _rate_gate(self, provider: str) -> None:
        if self._rate_limiter.try_consume():
            return
        wait_ms = self._rate_limiter.wait_time_ms()
        self._logger.debug("dispatch_rate_limited", provider=provider, wait_ms=wait_ms)
        await self._sleep(wait_ms / 1000)
        if not self._rate_limiter.try_consume():
            self._logger.debug("dispatch_rate_limit_still_exceeded", provider=provider)

    async def _transmit(self, message: OutboundMessage) -> SendResult:
        try:
            return await self._registry.send(message)
        except Exception as e:
            self._logger.warning(
                "channel_send_raised", message_id=message.id, error=str(e), error_type=type(e).__name__
            )
            return SendResult(ok=False, error=str(e) or type(e).__name__)

    def _schedule_retry(
        self,
        provider: str,
        message: OutboundMessage,
        retry_count: int,
        error: str,
    ) -> None:
        delay_ms = self.compute_delay(retry_count)
        retry_at = datetime.now(UTC) + timedelta(milliseconds=delay_ms)
        retry_message = message.clone(
            dispatch_retry=retry_count,
            dispatch_error=error,
            dispatch_retry_at=retry_at.isoformat(),
        )
        task = asyncio.get_running_loop().create_task(
            self._publish_after(delay_ms, retry_message),
            name=f"courier-retry-{message.id}-{retry_count}",
        )
        self._pending_retries.add(task)
        task.add_done_callback(self._pending_retries.discard)
        self._logger.debug(
            "dispatch_requeued", provider=provider, retry=retry_count, delay_ms=delay_ms
        )

    async def _publish_after(self, delay_ms: int, message: OutboundMessage) -> None:
        await self._sleep(delay_ms / 1000)
        if not self._running:
            self._logger.debug("retry_dropped_not_running", message_id=message.id)
            return
        try:
            await self._bus.publish_outbound(message)
        except Exception as e:
            self._logger.warning("retry_publish_failed", message_id=message.id, error=str(e))

    async def _cancel_pending_retries(self) -> None:
        tasks = list(self._pending_retries)
        self._pending_retries.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _write_dlq(
        self,
        provider: str,
        message: OutboundMessage,
        error: str,
        retry_count: int,
    ) -> None:
        if self._dlq is None:
            return
        record = DeadLetterRecord.from_message(provider, message, error, retry_count)
        try:
            await asyncio.to_thread(self._dlq.append, record)
        except Exception as e:
            self._logger.error(
                "dlq_append_failed", provider=provider, message_id=message.id, error=str(e)
            )
            return
        self._logger.warning(
            "dispatch_dead_lettered",
            provider=provider,
            message_id=message.id,
            retry_count=retry_count,
            error=error,
        )

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _remember(self, key: str, message_id: str) -> None:
        self._recent.pop(key, None)
        self._recent[key] = _RecentRecord(at_ms=self._now_ms(), message_id=message_id)
        if len(self._recent) > self._dedupe.max_size + 500:
            self._prune_recent(max_size=self._dedupe.max_size)

    def _prune_recent(self, max_size: int | None = None) -> None:
        """Drop expired entries, then the oldest ones beyond ``max_size``.

        Entries are kept in insertion order, which is also age order.
        """
        now = self._now_ms()
        while self._recent:
            key = next(iter(self._recent))
            if now - self._recent[key].at_ms <= self._dedupe.ttl_ms:
                break
            del self._recent[key]
        if max_size is not None:
            while len(self._recent) > max_size:
                del self._recent[next(iter(self._recent))]
