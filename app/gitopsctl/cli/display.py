"""Shared Rich display functions for applications and pass results.

Provides reusable table builders and summary printers used by the
``app``, ``reconcile`` and ``diff`` commands.
"""

from __future__ import annotations

from datetime import datetime

from rich.table import Table

from gitopsctl.core.diff import ResourceDiff
from gitopsctl.models.application import Application
from gitopsctl.models.resource import ResourceRef
from gitopsctl.models.result import ReconcileResult
from gitopsctl.utils.formatting import (
    console,
    create_table,
    format_sync_status,
    print_error,
    print_success,
    print_warning,
)


def format_time(value: datetime | None) -> str:
    """Format an optional timestamp as YYYY-MM-DD HH:MM, or "-"."""
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def create_applications_table(apps: list[Application]) -> Table:
    """Create a table listing Applications with their sync state."""
    table = create_table("Applications")
    table.add_column("Namespace", style="muted")
    table.add_column("Name", no_wrap=True)
    table.add_column("Repository")
    table.add_column("Path")
    table.add_column("Revision", style="muted")
    table.add_column("Period", justify="right")
    table.add_column("Status")
    table.add_column("Resources", justify="right")
    table.add_column("Synced", style="muted")

    for app in apps:
        source = app.spec.source
        status = format_sync_status(app.status.sync.sync_status)
        if app.is_deleting:
            status = "[warning]Deleting[/warning]"
        table.add_row(
            app.namespace,
            app.name,
            source.repo_url,
            source.path or "/",
            source.target_revision or "HEAD",
            f"{app.spec.sync_period}m" if app.spec.sync_period else "[error]unset[/error]",
            status,
            str(len(app.status.resources)),
            format_time(app.status.synced_at),
        )
    return table


def create_resources_table(app: Application) -> Table:
    """Create a table of the resources an Application manages."""
    table = create_table(f"Managed Resources of {app.key}")
    table.add_column("Kind", no_wrap=True)
    table.add_column("API Version", style="muted")
    table.add_column("Namespace", style="muted")
    table.add_column("Name", no_wrap=True)
    table.add_column("Status")

    for entry in app.status.resources:
        ref = entry.ref
        table.add_row(
            ref.kind,
            ref.api_version,
            ref.namespace,
            ref.name,
            format_sync_status(entry.status),
        )
    return table


def print_application(app: Application) -> None:
    """Print the details of one Application."""
    source = app.spec.source
    console.print(f"[bold_header]{app.key}[/bold_header]")
    console.print(f"  Repository:  {source.repo_url}")
    console.print(f"  Path:        {source.path or '/'}")
    console.print(f"  Revision:    {source.target_revision or 'HEAD'}")
    period = f"{app.spec.sync_period} minute(s)" if app.spec.sync_period else "[error]unset[/error]"
    console.print(f"  Sync period: {period}")
    console.print(f"  Generation:  {app.metadata.generation}")
    console.print(f"  Finalizers:  {', '.join(app.metadata.finalizers) or '-'}")
    if app.is_deleting:
        console.print(f"  Deleting:    since {format_time(app.metadata.deletion_timestamp)}")
    console.print(f"  Sync status: {format_sync_status(app.status.sync.sync_status)}")
    console.print(f"  Reconciled:  {format_time(app.status.reconciled_at)}")
    console.print(f"  Synced:      {format_time(app.status.synced_at)}")

    if app.status.resources:
        console.print()
        console.print(create_resources_table(app))


def create_result_table(result: ReconcileResult) -> Table:
    """Create a table of the resource changes made by one pass."""
    table = create_table(f"Reconciliation of {result.key}")
    table.add_column("Change", width=10, justify="center")
    table.add_column("Resource", no_wrap=True)

    rows: list[tuple[str, tuple[ResourceRef, ...]]] = [
        ("[added]+created[/added]", result.created),
        ("[changed]~updated[/changed]", result.updated),
        ("[muted]=unchanged[/muted]", result.unchanged),
        ("[removed]-pruned[/removed]", result.pruned),
        ("[error]!failed[/error]", result.prune_failed),
    ]
    for label, refs in rows:
        for ref in refs:
            table.add_row(label, str(ref))
    return table


def print_result_summary(result: ReconcileResult) -> None:
    """Print a one-line summary of a pass outcome."""
    if result.finalized:
        print_success(f"Application {result.key} cleaned up ({len(result.pruned)} deleted).")
        return

    if result.error is not None:
        kind = type(result.error).__name__
        print_error(f"{kind}: {result.error}")
        if result.requeue_after is not None:
            print_warning(f"Retry due in {int(result.requeue_after.total_seconds())}s.")
        return

    parts = [
        f"[added]{len(result.created)} created[/added]",
        f"[changed]{len(result.updated)} updated[/changed]",
        f"[muted]{len(result.unchanged)} unchanged[/muted]",
        f"[removed]{len(result.pruned)} pruned[/removed]",
    ]
    console.print(f"\nSummary: {', '.join(parts)}")
    if result.requeue_after is not None:
        minutes = int(result.requeue_after.total_seconds() // 60)
        print_success(f"Application {result.key} is synced. Next pass in {minutes} minute(s).")


def create_diff_table(diff: ResourceDiff) -> Table:
    """Create a table showing what the next pass would change."""
    table = create_table("Pending Changes")
    table.add_column("Status", width=6, justify="center")
    table.add_column("Resource", no_wrap=True)
    table.add_column("Note")

    for ref in sorted(diff.to_create, key=str):
        table.add_row("[added][+][/added]", f"[added]{ref}[/added]", "[muted]Not managed yet[/muted]")
    for ref in sorted(diff.to_prune, key=str):
        table.add_row(
            "[removed][x][/removed]", f"[removed]{ref}[/removed]", "[muted]Removed from source[/muted]"
        )
    return table
