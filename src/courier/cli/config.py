"""
CLI: ``courier config`` — inspect effective settings.
"""

from __future__ import annotations

import typer

from courier.cli.utils import fail, print_dict, print_json
from courier.core.errors import ConfigError
from courier.core.settings import load_settings

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show settings resolved from the environment and .env."""
    try:
        settings = load_settings()
    except ConfigError as e:
        fail(f"{e.message} ({e.cause})")
    data = settings.model_dump(mode="json")
    data["dlq_path"] = str(settings.dlq_path)
    if json_out:
        print_json(data)
        return
    flat: dict[str, object] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat[f"{key}.{sub_key}"] = sub_value
        else:
            flat[key] = value
    print_dict(flat, title="Courier Settings")
