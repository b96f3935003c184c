"""Kubernetes resource store backed by the dynamic client.

Kinds are mapped to addressable API resources through API discovery,
so irregular plurals (``Ingress`` -> ``ingresses``, ``NetworkPolicy``
-> ``networkpolicies``) and custom resources resolve correctly. Each
(apiVersion, kind) pair is resolved once and cached.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from kubernetes import client, config, dynamic
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import (
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from urllib3.exceptions import HTTPError

from gitopsctl.cluster.base import ResourceNotFound, ResourceStore, StoreError

if TYPE_CHECKING:
    from kubernetes.dynamic.resource import Resource

    from gitopsctl.core.config import ClusterConfig
    from gitopsctl.models.resource import ResourceRef

logger = logging.getLogger(__name__)


def load_api_client(cluster: ClusterConfig | None = None) -> client.ApiClient:
    """Build a Kubernetes API client.

    Uses the in-cluster service account when running inside a pod (or
    when ``cluster.in_cluster`` is set), otherwise the kubeconfig file.

    Args:
        cluster: Optional cluster connection settings.

    Returns:
        Configured ApiClient.

    Raises:
        StoreError: If no usable configuration is found.
    """
    in_cluster = cluster.in_cluster if cluster is not None else None
    kubeconfig = cluster.kubeconfig if cluster is not None else None
    context = cluster.context if cluster is not None else None

    try:
        if in_cluster is not False:
            try:
                config.load_incluster_config()
                return client.ApiClient()
            except config.ConfigException:
                if in_cluster:
                    raise
        config.load_kube_config(config_file=kubeconfig, context=context)
    except config.ConfigException as e:
        raise StoreError(f"Could not load Kubernetes configuration: {e}") from e
    return client.ApiClient()


class KubernetesResourceStore(ResourceStore):
    """ResourceStore implementation for a Kubernetes cluster.

    Attributes:
        dry_run: If True, writes are sent as server-side dry runs.
    """

    def __init__(self, dynamic_client: dynamic.DynamicClient, dry_run: bool = False) -> None:
        """Initialize the store.

        Args:
            dynamic_client: Dynamic client used for discovery and CRUD.
            dry_run: If True, create/update/delete are validated by the
                server but not persisted.
        """
        self._client = dynamic_client
        self._dry_run = dry_run
        self._resources: dict[tuple[str, str], Resource] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        cluster: ClusterConfig | None = None,
        dry_run: bool = False,
    ) -> KubernetesResourceStore:
        """Create a store from cluster connection settings."""
        try:
            dynamic_client = dynamic.DynamicClient(load_api_client(cluster))
        except (ApiException, HTTPError) as e:
            raise StoreError(f"API discovery failed: {_describe(e)}") from e
        return cls(dynamic_client, dry_run=dry_run)

    @property
    def dry_run(self) -> bool:
        """Check if the store is in dry-run mode."""
        return self._dry_run

    def get(self, ref: ResourceRef) -> dict[str, Any]:
        api = self._resolve(ref)
        try:
            live = api.get(name=ref.name, namespace=self._namespace(api, ref))
        except NotFoundError as e:
            raise ResourceNotFound(ref) from e
        except (ApiException, HTTPError) as e:
            raise StoreError(f"Failed to read {ref}: {_describe(e)}") from e
        return live.to_dict()

    def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        api = self._resolve(ref)
        namespace = self._namespace(api, ref)
        logger.info("Creating %s", ref)
        try:
            created = api.create(
                body=self._scoped_body(api, body),
                namespace=namespace,
                **self._write_options(),
            )
        except (ApiException, HTTPError) as e:
            raise StoreError(f"Failed to create {ref}: {_describe(e)}") from e
        return created.to_dict()

    def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        api = self._resolve(ref)
        namespace = self._namespace(api, ref)
        logger.info("Updating %s", ref)
        try:
            updated = api.replace(
                body=self._scoped_body(api, body),
                name=ref.name,
                namespace=namespace,
                **self._write_options(),
            )
        except (ApiException, HTTPError) as e:
            raise StoreError(f"Failed to update {ref}: {_describe(e)}") from e
        return updated.to_dict()

    def delete(self, ref: ResourceRef) -> bool:
        api = self._resolve(ref)
        logger.info("Deleting %s", ref)
        try:
            api.delete(name=ref.name, namespace=self._namespace(api, ref), **self._write_options())
        except NotFoundError:
            logger.debug("%s already absent", ref)
            return False
        except (ApiException, HTTPError) as e:
            raise StoreError(f"Failed to delete {ref}: {_describe(e)}") from e
        return True

    def _resolve(self, ref: ResourceRef) -> Resource:
        """Map a kind to its API resource through discovery (cached)."""
        key = (ref.api_version, ref.kind)
        with self._lock:
            cached = self._resources.get(key)
            if cached is not None:
                return cached
            try:
                resource = self._client.resources.get(api_version=ref.api_version, kind=ref.kind)
            except ResourceNotFoundError as e:
                raise StoreError(
                    f"Kind {ref.kind} is not served by API version {ref.api_version}"
                ) from e
            except ResourceNotUniqueError as e:
                raise StoreError(
                    f"Kind {ref.kind} in API version {ref.api_version} matches several resources"
                ) from e
            except (ApiException, HTTPError) as e:
                raise StoreError(f"API discovery failed for {ref.kind}: {_describe(e)}") from e
            logger.debug("Resolved %s %s to resource %s", ref.api_version, ref.kind, resource.name)
            self._resources[key] = resource
            return resource

    @staticmethod
    def _namespace(api: Resource, ref: ResourceRef) -> str | None:
        return ref.namespace if api.namespaced else None

    @staticmethod
    def _scoped_body(api: Resource, body: dict[str, Any]) -> dict[str, Any]:
        """Strip the namespace from bodies of cluster-scoped kinds."""
        if api.namespaced:
            return body
        metadata = {k: v for k, v in body.get("metadata", {}).items() if k != "namespace"}
        return {**body, "metadata": metadata}

    def _write_options(self) -> dict[str, Any]:
        return {"dry_run": "All"} if self._dry_run else {}


def _describe(error: Exception) -> str:
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)
