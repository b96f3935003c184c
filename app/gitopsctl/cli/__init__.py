"""CLI package for gitopsctl.

This package contains the Typer application and all subcommands.
"""

from gitopsctl.cli.main import app

__all__ = ["app"]
