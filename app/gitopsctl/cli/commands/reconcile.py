"""Reconcile command implementation.

Runs a single reconciliation pass for one application.
"""

import json
from typing import Annotated

import typer

from gitopsctl.cli.display import create_result_table, print_result_summary
from gitopsctl.cli.wiring import build_application_store, build_engine, get_config
from gitopsctl.core.controller import Controller
from gitopsctl.core.journal import Journal
from gitopsctl.core.store import ApplicationStoreError
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.utils.formatting import console, print_error

app = typer.Typer(
    help="Run one reconciliation pass for an application.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def reconcile(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Application name.")],
    namespace: Annotated[
        str,
        typer.Option("--namespace", "-n", help="Namespace of the application record."),
    ] = DEFAULT_NAMESPACE,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the pass result as JSON."),
    ] = False,
) -> None:
    """Reconcile an application once.

    Applies the manifests of the application's source, prunes resources
    that were removed from it and records the result. Exits with status
    1 if the pass failed.

    Examples:
        gitopsctl reconcile guestbook
        gitopsctl reconcile guestbook -n team-a --json
    """
    config = get_config(ctx)
    store = build_application_store(config)
    controller = Controller(
        applications=store,
        engine=build_engine(config, store),
        journal=Journal(),
    )

    try:
        result = controller.reconcile_key(f"{namespace}/{name}")
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if json_output:
        console.print_json(json.dumps(result.to_dict()))
    else:
        if result.created or result.updated or result.pruned or result.prune_failed:
            console.print(create_result_table(result))
        print_result_summary(result)

    if not result.succeeded:
        raise typer.Exit(code=1)
