"""Configuration commands.

Provides commands to show the effective configuration and to write a
default configuration file.
"""

from pathlib import Path
from typing import Annotated

import tomli_w
import typer

from gitopsctl.cli.wiring import get_config
from gitopsctl.core.config import ConfigFileError, ControllerConfig, save_config
from gitopsctl.core.paths import get_config_path
from gitopsctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or initialize the controller configuration.",
    no_args_is_help=True,
)


@app.command()
def show(ctx: typer.Context) -> None:
    """Print the effective configuration as TOML."""
    config = get_config(ctx)
    console.print(tomli_w.dumps(config.model_dump(exclude_none=True)), markup=False)


@app.command()
def init(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing configuration file."),
    ] = False,
) -> None:
    """Write a configuration file with default settings."""
    path: Path = ctx.ensure_object(dict).get("config_path") or get_config_path()
    if path.exists() and not force:
        print_error(f"Configuration already exists: {path}")
        print_info("Use --force to overwrite it.")
        raise typer.Exit(code=1)

    try:
        save_config(ControllerConfig(), path)
    except ConfigFileError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Configuration written to {path}")
