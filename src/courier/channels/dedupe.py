"""Outbound dedupe policy — what counts as "the same message".

Two regimes:

- Terminal replies (``kind`` is ``agent_reply`` / ``agent_error`` and a
  trigger id is present) are keyed by the trigger alone, so every internal
  retry of the answer to one incoming message collapses to one delivery
  regardless of its text.
- Everything else is keyed by destination, kind, author (or trigger),
  normalized text and an order-independent media signature.
"""

from __future__ import annotations

import re
from typing import Any, Protocol

from courier.bus.models import OutboundMessage

TERMINAL_KINDS = frozenset({"agent_reply", "agent_error"})

_WHITESPACE = re.compile(r"\s+")


class OutboundDedupePolicy(Protocol):
    def key(self, provider: str, message: OutboundMessage) -> str: ...


def normalize_text(value: Any) -> str:
    """Collapse whitespace, trim and lowercase."""
    return _WHITESPACE.sub(" ", str(value or "")).strip().lower()


def normalize_media(message: OutboundMessage) -> str:
    pairs = [
        f"{item.type or ''}:{normalize_text(item.url)}"
        for item in message.media or []
    ]
    return "|".join(sorted(pairs))


class DefaultOutboundDedupePolicy:
    """Deterministic, side-effect free dedupe key."""

    def key(self, provider: str, message: OutboundMessage) -> str:
        metadata = message.metadata if isinstance(message.metadata, dict) else {}
        kind = normalize_text(metadata.get("kind"))
        trigger = normalize_text(
            metadata.get("trigger_message_id")
            or metadata.get("source_message_id")
            or metadata.get("request_id")
        )
        chat = normalize_text(message.chat_id)
        thread = normalize_text(message.thread_id)
        reply_to = normalize_text(message.reply_to)

        if kind in TERMINAL_KINDS and trigger:
            return "::".join([provider, chat, thread, reply_to, kind, trigger])

        base = trigger or normalize_text(message.sender_id)
        text = normalize_text(message.content)
        return "::".join(
            [provider, chat, thread, reply_to, kind, base, text, normalize_media(message)]
        )
