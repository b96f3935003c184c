"""Diff command implementation.

Compares an application's source with the resources it currently manages.
"""

import json
from typing import Annotated

import typer

from gitopsctl.cli.display import create_diff_table
from gitopsctl.cli.wiring import build_application_store, build_fetcher, get_config
from gitopsctl.core.engine import preview
from gitopsctl.core.errors import ReconcileError
from gitopsctl.core.store import ApplicationStoreError
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.utils.formatting import console, print_error, print_success

app = typer.Typer(
    help="Show what the next pass would create or prune.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def diff_application(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Application name.")],
    namespace: Annotated[
        str,
        typer.Option("--namespace", "-n", help="Namespace of the application record."),
    ] = DEFAULT_NAMESPACE,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON for scripting."),
    ] = False,
) -> None:
    """Compare an application's source with its managed resources.

    Nothing is changed in the cluster. Resources whose content differs
    are not reported; only identities added to or removed from the
    source are.

    Difference types:
      [+] Resource in the source but not managed yet
      [x] Managed resource no longer in the source

    Examples:
        gitopsctl diff guestbook
        gitopsctl diff guestbook --json
    """
    config = get_config(ctx)
    store = build_application_store(config)
    try:
        record = store.get(namespace, name)
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    try:
        result = preview(build_fetcher(config), record, config.controller.default_namespace)
    except ReconcileError as e:
        print_error(f"{type(e).__name__}: {e}")
        raise typer.Exit(code=1) from e

    if json_output:
        output = {
            "application": record.key,
            "in_sync": result.is_in_sync,
            "create": sorted(str(r) for r in result.to_create),
            "keep": sorted(str(r) for r in result.to_keep),
            "prune": sorted(str(r) for r in result.to_prune),
        }
        console.print_json(json.dumps(output))
        return

    if result.is_in_sync:
        print_success(f"{record.key} manages every resource in its source.")
        return

    console.print(create_diff_table(result))
    console.print(
        f"\nSummary: [added]{len(result.to_create)} to create[/added], "
        f"[removed]{len(result.to_prune)} to prune[/removed], "
        f"[muted]{len(result.to_keep)} kept[/muted]"
    )
