"""Dead Letter Queue (DLQ) — persist outbound messages that exhausted retries.

WHY
───
A message that keeps failing after its whole retry budget must not vanish
silently.  The DLQ captures it with its full delivery context (destination,
retry count, last error, content, metadata) so operators can inspect or
replay it offline.

ARCHITECTURE
────────────
::

    DeadLetterSink (protocol)
      ├── SqliteDeadLetterStore(path)   ─ one SQLite file, WAL journal
      └── MemoryDeadLetterStore()       ─ list-backed (tests, ephemeral)

    DeadLetterRecord                    ─ row-level data model
    create_dead_letter_store(settings)  ─ None when dead-lettering is disabled

Example::

    store = SqliteDeadLetterStore("runtime/dlq/dlq.db")
    store.append(DeadLetterRecord(provider="slack", chat_id="C1", error="timeout", ...))
    for record in store.list(limit=20):
        print(record.message_id, record.error)
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from courier.bus.models import OutboundMessage, utcnow_iso
from courier.core.errors import DeadLetterStoreError
from courier.core.logging import get_logger
from courier.core.settings import CourierSettings

logger = get_logger(__name__)

MAX_CONTENT_CHARS = 4000


@dataclass
class DeadLetterRecord:
    """Failure context of one dead-lettered outbound message."""

    provider: str
    chat_id: str
    message_id: str
    error: str
    retry_count: int = 0
    sender_id: str = ""
    reply_to: str = ""
    thread_id: str = ""
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    at: str = field(default_factory=utcnow_iso)
    id: int | None = None

    @classmethod
    def from_message(
        cls,
        provider: str,
        message: OutboundMessage,
        error: str,
        retry_count: int,
    ) -> DeadLetterRecord:
        return cls(
            provider=provider,
            chat_id=str(message.chat_id or ""),
            message_id=str(message.id or ""),
            sender_id=str(message.sender_id or ""),
            reply_to=str(message.reply_to or ""),
            thread_id=str(message.thread_id or ""),
            retry_count=retry_count,
            error=str(error or "unknown_error"),
            content=str(message.content or "")[:MAX_CONTENT_CHARS],
            metadata=dict(message.metadata or {}),
        )


@runtime_checkable
class DeadLetterSink(Protocol):
    def append(self, record: DeadLetterRecord) -> None: ...

    def list(self, limit: int = 100) -> list[DeadLetterRecord]: ...


_SCHEMA = """
CREATE TABLE IF NOT EXISTS outbound_dlq (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    at TEXT NOT NULL,
    provider TEXT NOT NULL,
    chat_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    sender_id TEXT NOT NULL,
    reply_to TEXT NOT NULL,
    thread_id TEXT NOT NULL,
    retry_count INTEGER NOT NULL,
    error TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_outbound_dlq_at
    ON outbound_dlq(at DESC);
CREATE INDEX IF NOT EXISTS idx_outbound_dlq_provider_chat
    ON outbound_dlq(provider, chat_id, at DESC);
"""


class SqliteDeadLetterStore:
    """SQLite-backed dead-letter sink.

    Opens a short-lived connection per operation so the store can be used
    from any thread.  The schema is created on first use.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser().resolve()
        self._initialized = False

    def get_path(self) -> str:
        return str(self._path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            if not self._initialized:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            with closing(sqlite3.connect(self._path)) as conn:
                if not self._initialized:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.executescript(_SCHEMA)
                    self._initialized = True
                yield conn
        except (sqlite3.Error, OSError) as e:
            raise DeadLetterStoreError(f"dead-letter store failure: {e}", cause=e).with_context(
                path=str(self._path)
            ) from e

    def append(self, record: DeadLetterRecord) -> None:
        """Insert one dead letter."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO outbound_dlq (
                    at, provider, chat_id, message_id, sender_id, reply_to, thread_id,
                    retry_count, error, content, metadata_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.at or utcnow_iso(),
                    record.provider,
                    record.chat_id,
                    record.message_id,
                    record.sender_id,
                    record.reply_to,
                    record.thread_id,
                    max(0, int(record.retry_count or 0)),
                    record.error or "unknown_error",
                    record.content,
                    json.dumps(record.metadata or {}, default=str),
                ),
            )
            conn.commit()

    def list(self, limit: int = 100) -> list[DeadLetterRecord]:
        """Newest dead letters first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, at, provider, chat_id, message_id, sender_id, reply_to,
                       thread_id, retry_count, error, content, metadata_json
                FROM outbound_dlq
                ORDER BY id DESC
                LIMIT ?
                """,
                (max(1, int(limit or 100)),),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM outbound_dlq").fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_record(row: tuple) -> DeadLetterRecord:
        try:
            metadata = json.loads(row[11] or "{}")
        except json.JSONDecodeError:
            metadata = {}
        if not isinstance(metadata, dict):
            metadata = {}
        return DeadLetterRecord(
            id=row[0],
            at=row[1] or "",
            provider=row[2] or "",
            chat_id=row[3] or "",
            message_id=row[4] or "",
            sender_id=row[5] or "",
            reply_to=row[6] or "",
            thread_id=row[7] or "",
            retry_count=max(0, row[8] or 0),
            error=row[9] or "",
            content=row[10] or "",
            metadata=metadata,
        )


class MemoryDeadLetterStore:
    """In-process dead-letter sink."""

    def __init__(self) -> None:
        self.records: list[DeadLetterRecord] = []

    def append(self, record: DeadLetterRecord) -> None:
        record.id = len(self.records) + 1
        self.records.append(record)

    def list(self, limit: int = 100) -> list[DeadLetterRecord]:
        return list(reversed(self.records))[: max(1, int(limit or 100))]

    def count(self) -> int:
        return len(self.records)


def create_dead_letter_store(settings: CourierSettings) -> SqliteDeadLetterStore | None:
    """SQLite store at the configured path, or None when disabled."""
    if not settings.dispatch.dlq_enabled:
        logger.info("dlq_disabled")
        return None
    return SqliteDeadLetterStore(settings.dlq_path)
