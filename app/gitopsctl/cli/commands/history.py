"""History command for viewing past reconciliation passes.

This module provides the `gitopsctl history` command for viewing the
journal of pass outcomes.
"""

import json
from datetime import datetime
from typing import Annotated

import typer
from rich.table import Table

from gitopsctl.core.controller import split_key
from gitopsctl.core.journal import Journal
from gitopsctl.models.history import PassRecord
from gitopsctl.utils.formatting import console, print_info

app = typer.Typer(
    name="history",
    help="View history of reconciliation passes.",
    invoke_without_command=True,
)

_OUTCOME_STYLES = {
    "synced": "success",
    "finalized": "info",
    "retrying": "warning",
    "failed": "error",
}


@app.callback(invoke_without_command=True)
def history(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of entries to show.",
        ),
    ] = 20,
    application: Annotated[
        str | None,
        typer.Option(
            "--app",
            "-a",
            help="Only show passes of this application (name or namespace/name).",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show history of reconciliation passes.

    Examples:
        gitopsctl history              # Show last 20 passes
        gitopsctl history -n 50        # Show last 50 passes
        gitopsctl history --app guestbook
        gitopsctl history --json       # JSON output for scripting
    """
    if ctx.invoked_subcommand is not None:
        return

    key = "/".join(split_key(application)) if application else None
    entries = Journal().entries(limit=limit, application=key)

    if not entries:
        print_info("No history entries found.")
        return

    if json_output:
        _print_json(entries)
    else:
        _print_table(entries)


def _print_table(entries: list[PassRecord]) -> None:
    """Print pass records as Rich table."""
    table = Table(title="Reconciliation History")
    table.add_column("ID", style="dim")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Application")
    table.add_column("Outcome")
    table.add_column("Changes", style="white")
    table.add_column("Error", style="muted", overflow="fold")

    for entry in entries:
        style = _OUTCOME_STYLES.get(entry.outcome, "text")
        changes = (
            f"+{entry.created} ~{entry.updated} ={entry.unchanged} -{entry.pruned}"
        )
        if entry.prune_failed:
            changes += f" !{entry.prune_failed}"
        table.add_row(
            entry.id[:8],
            _format_timestamp(entry.timestamp),
            entry.application,
            f"[{style}]{entry.outcome}[/{style}]",
            changes,
            entry.error or "",
        )

    console.print(table)


def _format_timestamp(iso_timestamp: str) -> str:
    """Format ISO timestamp for display (YYYY-MM-DD HH:MM)."""
    dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
    return dt.strftime("%Y-%m-%d %H:%M")


def _print_json(entries: list[PassRecord]) -> None:
    """Print pass records as JSON."""
    output = [entry.to_dict() for entry in entries]
    console.print(json.dumps(output, indent=2))
