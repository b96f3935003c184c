"""Construction of controller components from configuration.

CLI commands use these helpers to turn the loaded ControllerConfig into
an application store, a manifest fetcher and a reconciliation engine.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from gitopsctl.cluster.base import ResourceStore, StoreError
from gitopsctl.core.config import ConfigFileError, ControllerConfig, load_config
from gitopsctl.core.credentials import kubernetes_secret_reader, resolve_token
from gitopsctl.core.engine import ReconciliationEngine
from gitopsctl.core.store import ApplicationStore, FileApplicationStore
from gitopsctl.sources import FetcherRouter, GitHubFetcher, LocalFetcher
from gitopsctl.utils.formatting import print_error

logger = logging.getLogger(__name__)


def get_config(ctx: typer.Context) -> ControllerConfig:
    """Load the configuration selected by the global ``--config`` option.

    The loaded configuration is cached on the context object.

    Raises:
        typer.Exit: If the configuration file is invalid.
    """
    obj = ctx.ensure_object(dict)
    cached = obj.get("config")
    if isinstance(cached, ControllerConfig):
        return cached

    path: Path | None = obj.get("config_path")
    try:
        config = load_config(path)
    except ConfigFileError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    obj["config"] = config
    return config


def build_application_store(config: ControllerConfig) -> ApplicationStore:
    """Create the application store selected in the configuration.

    Raises:
        typer.Exit: If the Kubernetes backend cannot be reached.
    """
    if config.controller.store == "kubernetes":
        from gitopsctl.cluster.applications import KubernetesApplicationStore

        try:
            return KubernetesApplicationStore.from_config(config.cluster)
        except StoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e
    return FileApplicationStore()


def build_fetcher(config: ControllerConfig) -> FetcherRouter:
    """Create the manifest fetcher for local and GitHub sources.

    The access token is resolved again for every GitHub fetch, so a
    rotated Secret takes effect on the next pass.
    """
    credentials = config.credentials

    def token_provider() -> str | None:
        secret_reader = None
        if credentials.secret_name:
            from kubernetes import client

            from gitopsctl.cluster.kube import load_api_client

            secret_reader = kubernetes_secret_reader(
                lambda: client.CoreV1Api(load_api_client(config.cluster))
            )
        return resolve_token(credentials, secret_reader)

    github = GitHubFetcher(
        token_provider=token_provider,
        api_url=config.source.api_url,
        host=config.source.host,
        timeout_seconds=config.source.timeout_seconds,
    )
    return FetcherRouter([LocalFetcher(), github])


def build_resource_store(config: ControllerConfig) -> ResourceStore:
    """Create the live resource store for the configured cluster.

    Raises:
        typer.Exit: If no cluster configuration can be loaded.
    """
    from gitopsctl.cluster.kube import KubernetesResourceStore

    try:
        return KubernetesResourceStore.from_config(
            config.cluster, dry_run=config.controller.dry_run
        )
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def build_engine(
    config: ControllerConfig,
    applications: ApplicationStore,
    resources: ResourceStore | None = None,
) -> ReconciliationEngine:
    """Create a reconciliation engine wired to the configured collaborators."""
    settings = config.controller
    if settings.dry_run:
        logger.info("Dry run enabled: cluster writes are validated but not persisted")
    return ReconciliationEngine(
        fetcher=build_fetcher(config),
        resources=resources if resources is not None else build_resource_store(config),
        applications=applications,
        default_namespace=settings.default_namespace,
        retry_policy=settings.retry_policy(),
    )
