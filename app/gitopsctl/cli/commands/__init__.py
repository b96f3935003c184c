"""CLI commands for gitopsctl.

This package contains all subcommand implementations.
"""

from gitopsctl.cli.commands import app, config, diff, history, reconcile, run

__all__ = ["app", "config", "diff", "history", "reconcile", "run"]
