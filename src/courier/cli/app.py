"""
Root Typer application for the courier CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from courier.cli.utils import fail
from courier.core.errors import ConfigError
from courier.core.logging import configure_logging
from courier.core.settings import load_settings

app = Typer(
    name="courier",
    help="courier — outbound delivery pipeline tools.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from courier import __version__

        typer.echo(f"courier {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """courier CLI — inspect dead letters and configuration."""
    try:
        settings = load_settings()
    except ConfigError as e:
        fail(f"{e.message} ({e.cause})")
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


from courier.cli.config import app as config_app  # noqa: E402
from courier.cli.dlq import app as dlq_app  # noqa: E402

app.add_typer(dlq_app, name="dlq", help="Dead-letter queue.")
app.add_typer(config_app, name="config", help="Configuration.")


def run() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    run()
