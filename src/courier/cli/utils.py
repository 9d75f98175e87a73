"""
CLI utility helpers — output formatting and store access.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from courier.channels.dlq import SqliteDeadLetterStore
from courier.core.errors import ConfigError
from courier.core.settings import load_settings

console = Console()
err_console = Console(stderr=True)


def open_dlq_store(path: str | None = None) -> SqliteDeadLetterStore:
    """Dead-letter store at ``path``, defaulting to the configured location."""
    if path:
        return SqliteDeadLetterStore(Path(path))
    try:
        settings = load_settings()
    except ConfigError as e:
        fail(e.message)
    return SqliteDeadLetterStore(settings.dlq_path)


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    """Plain JSON on stdout, safe to pipe."""
    typer.echo(json.dumps(payload, indent=2, default=str))


def print_table(rows: list[Any], *, columns: list[str], title: str = "") -> None:
    """Render rows (dataclasses or dicts) as a rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False)
    for column in columns:
        table.add_column(column)
    for row in rows:
        data = _to_dict(row)
        table.add_row(*(_cell(data.get(column)) for column in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    table = Table(title=title or None, show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    for key, value in data.items():
        table.add_row(str(key), _cell(value))
    console.print(table)


def _cell(value: Any, max_len: int = 60) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    return text if len(text) <= max_len else text[: max_len - 1] + "…"
