"""Message types carried on the courier bus.

A ``Message`` is the unit producers hand to the pipeline and channels hand
back as inbound traffic; ``InboundMessage`` and ``OutboundMessage`` are the
same shape.  ``metadata`` is free-form and also carries the dispatch
bookkeeping keys (``dispatch_retry``, ``dispatch_error``,
``dispatch_retry_at``) written on retry clones.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Literal

MediaItemType = Literal["image", "video", "audio", "file", "link"]
BusDirection = Literal["inbound", "outbound"]


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


@dataclass
class MediaItem:
    """Attachment reference on a message."""

    type: MediaItemType
    url: str
    mime: str | None = None
    name: str | None = None
    size: int | None = None


@dataclass
class Message:
    """A chat message travelling through the bus.

    Attributes:
        id: Message identifier
        provider: Destination/origin platform (slack, discord, telegram)
        channel: Channel name; falls back as provider when ``provider`` is empty
        sender_id: Author identifier
        chat_id: Destination chat/channel identifier
        content: Text body
        at: ISO-8601 creation timestamp (UTC)
        reply_to: Message being answered
        thread_id: Thread the message belongs to
        media: Attachments
        metadata: Free-form mapping, including dispatch bookkeeping
    """

    provider: str
    chat_id: str
    content: str = ""
    channel: str = ""
    sender_id: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    at: str = field(default_factory=utcnow_iso)
    reply_to: str | None = None
    thread_id: str | None = None
    media: list[MediaItem] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def clone(self, **metadata: Any) -> Message:
        """Copy with fresh ``media``/``metadata`` containers, merging ``metadata``."""
        return replace(
            self,
            media=list(self.media),
            metadata={**self.metadata, **metadata},
        )


InboundMessage = Message
OutboundMessage = Message


@dataclass
class ProgressEvent:
    """Step progress of a long-running task, streamed to the originating chat."""

    task_id: str
    step: int
    description: str
    provider: str
    chat_id: str
    total_steps: int | None = None
    at: str = field(default_factory=utcnow_iso)


@dataclass(frozen=True)
class BusSizes:
    """Pending message counts."""

    inbound: int
    outbound: int
    total: int


@dataclass(frozen=True)
class BusDrainResult:
    """Number of messages removed from each queue by ``drain``."""

    drained_inbound: int
    drained_outbound: int
    drained_progress: int


__all__ = [
    "BusDirection",
    "BusDrainResult",
    "BusSizes",
    "InboundMessage",
    "MediaItem",
    "MediaItemType",
    "Message",
    "OutboundMessage",
    "ProgressEvent",
    "utcnow_iso",
]
