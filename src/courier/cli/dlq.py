"""
CLI: ``courier dlq`` — dead-letter queue commands.
"""

from __future__ import annotations

from dataclasses import asdict

import typer

from courier.cli.utils import fail, open_dlq_store, print_json, print_table
from courier.core.errors import DeadLetterStoreError

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ["id", "at", "provider", "chat_id", "message_id", "retry_count", "error"]


@app.command("list")
def list_dead_letters(
    path: str | None = typer.Option(None, "--path", "-p", help="SQLite dead-letter file"),
    limit: int = typer.Option(50, "--limit", "-n"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List dead-lettered messages, newest first."""
    store = open_dlq_store(path)
    try:
        records = store.list(limit=limit)
    except DeadLetterStoreError as e:
        fail(e.message)
    if json_out:
        print_json([asdict(r) for r in records])
        return
    print_table(records, columns=_COLUMNS, title="Dead Letters")


@app.command("count")
def count_dead_letters(
    path: str | None = typer.Option(None, "--path", "-p", help="SQLite dead-letter file"),
) -> None:
    """Print the number of dead-lettered messages."""
    store = open_dlq_store(path)
    try:
        total = store.count()
    except DeadLetterStoreError as e:
        fail(e.message)
    typer.echo(str(total))
