"""Pytest configuration and shared fixtures.

This module contains fakes and fixtures used across all test modules.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from gitopsctl.cluster.base import ResourceNotFound, ResourceStore, StoreError
from gitopsctl.core.backoff import RetryPolicy
from gitopsctl.core.cancel import CancelToken
from gitopsctl.core.engine import ReconciliationEngine
from gitopsctl.core.errors import SourceUnavailable
from gitopsctl.core.store import FileApplicationStore
from gitopsctl.models.application import (
    Application,
    ApplicationMetadata,
    ApplicationSource,
    ApplicationSpec,
)
from gitopsctl.models.resource import ResourceRef
from gitopsctl.sources.base import ManifestBlob, SourceFetcher

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

DEPLOYMENT_WEB = b"""\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
spec:
  replicas: 1
"""

SERVICE_WEB = b"""\
apiVersion: v1
kind: Service
metadata:
  name: web-svc
spec:
  ports:
    - port: 80
"""


class FakeResourceStore(ResourceStore):
    """In-memory ResourceStore recording every call.

    Attributes:
        objects: Live objects by reference.
        calls: (operation, ref) tuples in call order.
        failures: Exceptions to raise for (operation, ref) pairs.
        dry_run: If True, writes are accepted but not kept, as with a
            server-side dry run.
    """

    dry_run = False

    def __init__(self) -> None:
        self.objects: dict[ResourceRef, dict[str, Any]] = {}
        self.calls: list[tuple[str, ResourceRef]] = []
        self.failures: dict[tuple[str, ResourceRef], Exception] = {}
        self._version = 0

    def fail(self, operation: str, ref: ResourceRef, error: Exception | None = None) -> None:
        self.failures[(operation, ref)] = error or StoreError(f"{operation} {ref} refused")

    def operations(self, *names: str) -> list[tuple[str, ResourceRef]]:
        return [call for call in self.calls if call[0] in names]

    def get(self, ref: ResourceRef) -> dict[str, Any]:
        self._record("get", ref)
        if ref not in self.objects:
            raise ResourceNotFound(ref)
        return copy.deepcopy(self.objects[ref])

    def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create", ref)
        return self._store(ref, body)

    def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        self._record("update", ref)
        return self._store(ref, body)

    def delete(self, ref: ResourceRef) -> bool:
        self._record("delete", ref)
        if self.dry_run:
            return ref in self.objects
        return self.objects.pop(ref, None) is not None

    def _record(self, operation: str, ref: ResourceRef) -> None:
        self.calls.append((operation, ref))
        failure = self.failures.get((operation, ref))
        if failure is not None:
            raise failure

    def _store(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        stored = copy.deepcopy(body)
        stored.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        if not self.dry_run:
            self.objects[ref] = stored
        return copy.deepcopy(stored)


class FakeFetcher(SourceFetcher):
    """SourceFetcher serving manifest files from a dict.

    Attributes:
        files: Manifest content by path, in enumeration order.
        error: Exception raised by fetch instead of returning files.
        fetches: Number of fetch calls.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.error: Exception | None = None
        self.fetches = 0

    def supports(self, repo_url: str) -> bool:
        return True

    def fetch(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[ManifestBlob]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        self.fetches += 1
        if self.error is not None:
            raise self.error
        if not self.files:
            raise SourceUnavailable(f"{source.repo_url}:{source.path} not found")
        return [ManifestBlob(path=path, content=content) for path, content in self.files.items()]


def make_app(
    name: str = "foo",
    namespace: str = "default",
    sync_period: int | None = 3,
    repo_url: str = "https://github.com/example/deploy",
    path: str = "apps/foo",
    revision: str = "",
) -> Application:
    """Build an Application record as a user would register it."""
    return Application(
        metadata=ApplicationMetadata(name=name, namespace=namespace),
        spec=ApplicationSpec(
            source=ApplicationSource(repo_url=repo_url, path=path, target_revision=revision),
            sync_period=sync_period,
        ),
    )


@pytest.fixture
def app_factory() -> Callable[..., Application]:
    """Factory for Application records."""
    return make_app


@pytest.fixture
def resources() -> FakeResourceStore:
    """Empty in-memory resource store."""
    return FakeResourceStore()


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Fetcher serving a directory with a Deployment and a Service."""
    return FakeFetcher({"apps/foo/a.yaml": DEPLOYMENT_WEB, "apps/foo/b.yaml": SERVICE_WEB})


@pytest.fixture
def app_store(tmp_path: Path) -> FileApplicationStore:
    """File-backed application store in a temporary directory."""
    return FileApplicationStore(root=tmp_path / "applications")


@pytest.fixture
def engine(
    fetcher: FakeFetcher,
    resources: FakeResourceStore,
    app_store: FileApplicationStore,
) -> ReconciliationEngine:
    """Engine wired to the fakes with a fixed clock."""
    return ReconciliationEngine(
        fetcher=fetcher,
        resources=resources,
        applications=app_store,
        retry_policy=RetryPolicy(base_seconds=10, max_seconds=300),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point XDG directories at a temporary location."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
