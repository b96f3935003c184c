"""Application management commands.

Provides commands to register, inspect and delete Application records.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from gitopsctl.cli.display import create_applications_table, print_application
from gitopsctl.cli.wiring import build_application_store, get_config
from gitopsctl.core.decoder import decode_manifests
from gitopsctl.core.errors import DecodeError
from gitopsctl.core.store import ApplicationStoreError
from gitopsctl.models.application import (
    API_VERSION,
    KIND,
    Application,
    ApplicationMetadata,
    ApplicationSource,
    ApplicationSpec,
)
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Register, inspect and delete applications.",
    no_args_is_help=True,
)

NamespaceOption = Annotated[
    str,
    typer.Option("--namespace", "-n", help="Namespace of the application record."),
]


@app.command()
def add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Application name.")],
    repo: Annotated[
        str,
        typer.Option("--repo", "-r", help="Repository URL holding the manifests."),
    ],
    path: Annotated[
        str,
        typer.Option("--path", "-p", help="File or directory within the repository."),
    ] = "",
    revision: Annotated[
        str,
        typer.Option("--revision", help="Commit, tag or branch (default branch head if empty)."),
    ] = "",
    sync_period: Annotated[
        int | None,
        typer.Option("--sync-period", "-s", min=1, help="Minutes between sync passes."),
    ] = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
) -> None:
    """Register an application or update its source.

    Examples:
        gitopsctl app add guestbook -r https://github.com/org/repo -p deploy -s 5
        gitopsctl app add guestbook -r file:///srv/checkout -p deploy -s 1
    """
    record = Application(
        metadata=ApplicationMetadata(name=name, namespace=namespace),
        spec=ApplicationSpec(
            source=ApplicationSource(repo_url=repo, path=path, target_revision=revision),
            sync_period=sync_period,
        ),
    )
    store = build_application_store(get_config(ctx))
    try:
        stored = store.save(record)
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    print_success(f"Application {stored.key} saved (generation {stored.metadata.generation}).")
    if sync_period is None:
        print_info("No --sync-period given: the application will not be synced until one is set.")


@app.command("apply")
def apply_file(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Option(
            "--file",
            "-f",
            exists=True,
            dir_okay=False,
            readable=True,
            help="YAML or JSON file with one or more Application documents.",
        ),
    ],
) -> None:
    """Register applications from a manifest file.

    Examples:
        gitopsctl app apply -f guestbook.yaml
    """
    try:
        documents = decode_manifests(file.read_bytes(), origin=str(file))
    except (DecodeError, OSError) as e:
        print_error(f"Failed to read {file}: {e}")
        raise typer.Exit(code=1) from e

    records: list[Application] = []
    for document in documents:
        if document.api_version != API_VERSION or document.kind != KIND:
            print_error(
                f"{file}: expected {API_VERSION}/{KIND}, got "
                f"{document.api_version}/{document.kind} ({document.name})"
            )
            raise typer.Exit(code=1)
        try:
            records.append(Application.from_document(document.body))
        except ValidationError as e:
            print_error(f"{file}: invalid application {document.name}: {e}")
            raise typer.Exit(code=1) from e

    if not records:
        print_info(f"No application documents found in {file}.")
        return

    store = build_application_store(get_config(ctx))
    for record in records:
        try:
            stored = store.save(record)
        except ApplicationStoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e
        print_success(
            f"Application {stored.key} saved (generation {stored.metadata.generation})."
        )


@app.command("list")
def list_apps(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
) -> None:
    """List registered applications."""
    store = build_application_store(get_config(ctx))
    try:
        apps = store.list()
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if json_output:
        console.print_json(json.dumps([a.to_document() for a in apps]))
        return
    if not apps:
        print_info("No applications registered.")
        return
    console.print(create_applications_table(apps))


@app.command()
def show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Application name.")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
) -> None:
    """Show an application and the resources it manages."""
    record = _get(ctx, namespace, name)
    if json_output:
        console.print_json(json.dumps(record.to_document()))
        return
    print_application(record)


@app.command()
def delete(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Application name.")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
) -> None:
    """Request deletion of an application.

    Resources the application manages are deleted by the next pass
    before the record is removed.
    """
    store = build_application_store(get_config(ctx))
    try:
        record = store.request_deletion(namespace, name)
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if record is None:
        print_success(f"Application {namespace}/{name} removed.")
    else:
        print_success(f"Deletion of {record.key} requested.")
        print_info(
            f"Its {len(record.status.resources)} managed resource(s) are deleted on the next pass."
        )


def _get(ctx: typer.Context, namespace: str, name: str) -> Application:
    store = build_application_store(get_config(ctx))
    try:
        return store.get(namespace, name)
    except ApplicationStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
