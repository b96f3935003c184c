"""Unit tests for KubernetesResourceStore.

The dynamic client is replaced with mocks; no cluster is contacted.
"""

from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeFetcher, make_app
from gitopsctl.cluster.base import ResourceNotFound, StoreError
from gitopsctl.cluster.kube import KubernetesResourceStore, load_api_client
from gitopsctl.core.config import ClusterConfig
from gitopsctl.core.engine import ReconciliationEngine
from gitopsctl.core.errors import ApplyError
from gitopsctl.core.store import FileApplicationStore
from gitopsctl.models.resource import ResourceRef
from kubernetes.client.exceptions import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic.exceptions import (
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from urllib3.exceptions import MaxRetryError

WEB = ResourceRef("apps", "v1", "Deployment", "default", "web")
CLUSTER_ROLE = ResourceRef("rbac.authorization.k8s.io", "v1", "ClusterRole", "default", "reader")
BODY = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "web", "namespace": "default"},
}


def _not_found() -> NotFoundError:
    return NotFoundError(ApiException(status=404, reason="Not Found"))


@pytest.fixture
def api() -> MagicMock:
    """Namespaced API resource returned by discovery."""
    resource = MagicMock()
    resource.namespaced = True
    resource.name = "deployments"
    resource.get.return_value.to_dict.return_value = BODY
    resource.create.return_value.to_dict.return_value = BODY
    resource.replace.return_value.to_dict.return_value = BODY
    return resource


@pytest.fixture
def dynamic_client(api: MagicMock) -> MagicMock:
    """Dynamic client whose discovery resolves to ``api``."""
    client = MagicMock()
    client.resources.get.return_value = api
    return client


@pytest.fixture
def store(dynamic_client: MagicMock) -> KubernetesResourceStore:
    """Store under test."""
    return KubernetesResourceStore(dynamic_client)


class TestDiscovery:
    """Tests for kind resolution."""

    def test_resolves_by_api_version_and_kind(
        self, store: KubernetesResourceStore, dynamic_client: MagicMock
    ) -> None:
        """Discovery is queried with the apiVersion and kind."""
        store.get(WEB)

        dynamic_client.resources.get.assert_called_once_with(api_version="apps/v1", kind="Deployment")

    def test_resolution_is_cached(
        self, store: KubernetesResourceStore, dynamic_client: MagicMock
    ) -> None:
        """Each kind is discovered once."""
        store.get(WEB)
        store.delete(WEB)

        assert dynamic_client.resources.get.call_count == 1

    def test_unknown_kind(self, store: KubernetesResourceStore, dynamic_client: MagicMock) -> None:
        """A kind the server does not serve raises StoreError."""
        dynamic_client.resources.get.side_effect = ResourceNotFoundError("no such kind")

        with pytest.raises(StoreError, match="is not served"):
            store.get(WEB)

    def test_ambiguous_kind(self, store: KubernetesResourceStore, dynamic_client: MagicMock) -> None:
        """A kind matching several API resources raises StoreError."""
        dynamic_client.resources.get.side_effect = ResourceNotUniqueError("ambiguous")

        with pytest.raises(StoreError, match="matches several resources"):
            store.get(WEB)

    def test_ambiguous_kind_fails_the_pass(
        self,
        store: KubernetesResourceStore,
        dynamic_client: MagicMock,
        fetcher: FakeFetcher,
        app_store: FileApplicationStore,
    ) -> None:
        """The engine reports a discovery failure as a retryable ApplyError."""
        dynamic_client.resources.get.side_effect = ResourceNotUniqueError("ambiguous")
        engine = ReconciliationEngine(fetcher, store, app_store)

        result = engine.reconcile(app_store.save(make_app()))

        assert isinstance(result.error, ApplyError)
        assert result.retryable


class TestGet:
    """Tests for KubernetesResourceStore.get."""

    def test_returns_document(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """get returns the live object as a dict."""
        assert store.get(WEB) == BODY
        api.get.assert_called_once_with(name="web", namespace="default")

    def test_not_found(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """A 404 raises ResourceNotFound."""
        api.get.side_effect = _not_found()

        with pytest.raises(ResourceNotFound) as exc_info:
            store.get(WEB)
        assert exc_info.value.ref == WEB

    def test_api_error(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """Other API errors raise StoreError."""
        api.get.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(StoreError, match="403 Forbidden"):
            store.get(WEB)

    def test_transport_error(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """Connection failures raise StoreError."""
        api.get.side_effect = MaxRetryError(pool=None, url="/apis", reason="refused")

        with pytest.raises(StoreError):
            store.get(WEB)


class TestWrites:
    """Tests for create, update and delete."""

    def test_create(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """create posts the body to the resource's namespace."""
        store.create(WEB, BODY)

        api.create.assert_called_once_with(body=BODY, namespace="default")

    def test_update(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """update replaces the named object."""
        store.update(WEB, BODY)

        api.replace.assert_called_once_with(body=BODY, name="web", namespace="default")

    def test_create_failure(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """A rejected create raises StoreError."""
        api.create.side_effect = ApiException(status=422, reason="Unprocessable Entity")

        with pytest.raises(StoreError, match="Failed to create"):
            store.create(WEB, BODY)

    def test_delete(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """delete returns True when an object was removed."""
        assert store.delete(WEB) is True

    def test_delete_absent(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """Deleting an absent object is not an error."""
        api.delete.side_effect = _not_found()

        assert store.delete(WEB) is False

    def test_delete_failure(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """Other delete failures raise StoreError."""
        api.delete.side_effect = ApiException(status=500, reason="Internal Server Error")

        with pytest.raises(StoreError, match="Failed to delete"):
            store.delete(WEB)

    def test_dry_run(self, dynamic_client: MagicMock, api: MagicMock) -> None:
        """Dry-run stores send dry_run=All on writes."""
        store = KubernetesResourceStore(dynamic_client, dry_run=True)

        store.create(WEB, BODY)
        store.delete(WEB)

        assert api.create.call_args.kwargs["dry_run"] == "All"
        assert api.delete.call_args.kwargs["dry_run"] == "All"
        assert store.dry_run


class TestClusterScoped:
    """Tests for cluster-scoped kinds."""

    def test_namespace_is_dropped(self, store: KubernetesResourceStore, api: MagicMock) -> None:
        """Cluster-scoped kinds are addressed without a namespace."""
        api.namespaced = False
        body = {"kind": "ClusterRole", "metadata": {"name": "reader", "namespace": "default"}}

        store.create(CLUSTER_ROLE, body)

        kwargs = api.create.call_args.kwargs
        assert kwargs["namespace"] is None
        assert "namespace" not in kwargs["body"]["metadata"]
        assert body["metadata"]["namespace"] == "default"


class TestLoadApiClient:
    """Tests for load_api_client."""

    @patch("gitopsctl.cluster.kube.config")
    def test_in_cluster_first(self, config: MagicMock) -> None:
        """In-cluster configuration is tried first."""
        config.ConfigException = ConfigException

        load_api_client()

        config.load_incluster_config.assert_called_once()
        config.load_kube_config.assert_not_called()

    @patch("gitopsctl.cluster.kube.config")
    def test_falls_back_to_kubeconfig(self, config: MagicMock) -> None:
        """Outside a pod the kubeconfig is used."""
        config.ConfigException = ConfigException
        config.load_incluster_config.side_effect = ConfigException("not in a pod")

        load_api_client(ClusterConfig(kubeconfig="/tmp/kubeconfig", context="staging"))

        config.load_kube_config.assert_called_once_with(
            config_file="/tmp/kubeconfig", context="staging"
        )

    @patch("gitopsctl.cluster.kube.config")
    def test_forced_in_cluster_fails(self, config: MagicMock) -> None:
        """in_cluster=True does not fall back."""
        config.ConfigException = ConfigException
        config.load_incluster_config.side_effect = ConfigException("not in a pod")

        with pytest.raises(StoreError, match="Could not load"):
            load_api_client(ClusterConfig(in_cluster=True))
        config.load_kube_config.assert_not_called()

    @patch("gitopsctl.cluster.kube.config")
    def test_kubeconfig_only(self, config: MagicMock) -> None:
        """in_cluster=False skips in-cluster configuration."""
        config.ConfigException = ConfigException

        load_api_client(ClusterConfig(in_cluster=False))

        config.load_incluster_config.assert_not_called()
