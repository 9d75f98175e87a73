"""Outbound channels — registry, dedupe, dead letters and the dispatch service.

Modules
-------
types       SendResult, ChatChannel / ChannelRegistryLike protocols, resolve_provider
registry    ChannelRegistry -- provider name → channel
dedupe      DefaultOutboundDedupePolicy -- "same message" key
dlq         DeadLetterRecord, SqliteDeadLetterStore, MemoryDeadLetterStore
dispatch    DispatchService -- rate limit, dedupe, retry, circuit break, dead-letter
"""

from courier.channels.dedupe import DefaultOutboundDedupePolicy, OutboundDedupePolicy
from courier.channels.dispatch import DispatchService
from courier.channels.dlq import (
    DeadLetterRecord,
    DeadLetterSink,
    MemoryDeadLetterStore,
    SqliteDeadLetterStore,
    create_dead_letter_store,
)
from courier.channels.registry import ChannelRegistry
from courier.channels.types import (
    SUPPORTED_PROVIDERS,
    ChannelRegistryLike,
    ChatChannel,
    SendResult,
    resolve_provider,
)

__all__ = [
    "ChannelRegistry",
    "ChannelRegistryLike",
    "ChatChannel",
    "DeadLetterRecord",
    "DeadLetterSink",
    "DefaultOutboundDedupePolicy",
    "DispatchService",
    "MemoryDeadLetterStore",
    "OutboundDedupePolicy",
    "SUPPORTED_PROVIDERS",
    "SendResult",
    "SqliteDeadLetterStore",
    "create_dead_letter_store",
    "resolve_provider",
]
