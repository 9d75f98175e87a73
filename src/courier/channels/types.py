"""Contracts between the dispatch service and chat channels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from courier.bus.models import OutboundMessage

SUPPORTED_PROVIDERS: frozenset[str] = frozenset({"slack", "discord", "telegram"})


@dataclass(frozen=True)
class SendResult:
    """Outcome of one transmission (or of a whole dispatch)."""

    ok: bool
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"ok": self.ok}
        if self.message_id is not None:
            result["message_id"] = self.message_id
        if self.error is not None:
            result["error"] = self.error
        return result


@runtime_checkable
class ChatChannel(Protocol):
    """A concrete platform sender (Slack, Discord, Telegram, ...)."""

    provider: str

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def is_running(self) -> bool: ...

    async def send(self, message: OutboundMessage) -> SendResult: ...


@runtime_checkable
class ChannelRegistryLike(Protocol):
    """What the dispatch service needs from a channel registry."""

    async def send(self, message: OutboundMessage) -> SendResult: ...


def resolve_provider(
    message: OutboundMessage,
    allowed: frozenset[str] | set[str] = SUPPORTED_PROVIDERS,
) -> str | None:
    """Lowercased ``provider`` (or ``channel``) of ``message`` if it is allowed."""
    raw = str(message.provider or message.channel or "").strip().lower()
    return raw if raw in allowed else None
