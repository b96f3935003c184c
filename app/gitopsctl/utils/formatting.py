"""Rich console formatting utilities.

Provides consistent formatting for CLI output using Rich.
"""

from __future__ import annotations

import sys

from rich.console import Console
from rich.table import Table

from gitopsctl.core.theme import get_theme
from gitopsctl.models.application import SyncStatusCode


def _detect_color_system() -> str | None:
    """Return "truecolor" for interactive terminals, None to let Rich auto-detect."""
    if sys.stdout.isatty():
        return "truecolor"
    return None


# Shared console instances (theme loaded once at import)
console = Console(theme=get_theme(), color_system=_detect_color_system())
err_console = Console(theme=get_theme(), stderr=True, color_system=_detect_color_system())

_SYNC_STYLES: dict[SyncStatusCode, str] = {
    SyncStatusCode.SYNCED: "synced",
    SyncStatusCode.OUT_OF_SYNC: "out_of_sync",
    SyncStatusCode.UNKNOWN: "unknown",
}


def create_table(title: str) -> Table:
    """Create a table with the shared header and border styles."""
    return Table(
        title=title,
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )


def format_sync_status(status: SyncStatusCode) -> str:
    """Format a sync status with color markup."""
    style = _SYNC_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[warning]Warning:[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]Error:[/] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/]")
