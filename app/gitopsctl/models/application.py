"""Application models for declarative GitOps convergence.

This module defines the Pydantic models representing an Application
record: the pointer to a manifest source, the re-sync schedule, and
the persisted status the reconciliation engine maintains.

Documents are shaped like the ``gitops.gitopsctl.io/v1`` custom
resource, so the same model serves the local TOML store and the
Kubernetes custom-object store.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from gitopsctl.models.resource import DEFAULT_NAMESPACE, ResourceRef

API_GROUP = "gitops.gitopsctl.io"
API_VERSION = f"{API_GROUP}/v1"
KIND = "Application"

# Cleanup marker attached to every active Application
CLEANUP_MARKER = f"{API_GROUP}/finalizer"


class SyncStatusCode(str, Enum):
    """Comparison state between live resources and the source.

    Attributes:
        UNKNOWN: Status could not be determined yet.
        SYNCED: Live state matches the source.
        OUT_OF_SYNC: Live state differs from the source.
    """

    UNKNOWN = "Unknown"
    SYNCED = "Synced"
    OUT_OF_SYNC = "OutOfSync"


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ApplicationSource(_Document):
    """Location of the application manifests.

    Attributes:
        repo_url: URL of the repository holding the manifests.
        path: File or directory within the repository.
        target_revision: Commit, tag or branch. Empty means default branch head.
    """

    repo_url: Annotated[str, Field(alias="repoURL", description="Repository URL")]
    path: Annotated[str, Field(description="Path within the repository")] = ""
    target_revision: Annotated[
        str,
        Field(alias="targetRevision", description="Commit, tag or branch"),
    ] = ""


class ApplicationSpec(_Document):
    """Desired state of an Application.

    Attributes:
        source: Where the manifests live.
        sync_period: Minutes between sync passes. Required for scheduling.
    """

    source: Annotated[ApplicationSource, Field(description="Manifest source")]
    sync_period: Annotated[
        int | None,
        Field(alias="syncPeriod", ge=1, description="Minutes between sync passes"),
    ] = None


class ManagedResource(_Document):
    """A live resource applied and tracked on behalf of an Application."""

    group: str = ""
    version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""
    status: SyncStatusCode = SyncStatusCode.UNKNOWN

    @property
    def ref(self) -> ResourceRef:
        """Identity of the tracked resource."""
        return ResourceRef(
            group=self.group,
            version=self.version,
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
        )

    @classmethod
    def from_ref(
        cls,
        ref: ResourceRef,
        status: SyncStatusCode = SyncStatusCode.SYNCED,
    ) -> ManagedResource:
        """Create a managed-resource entry for a reference."""
        return cls(
            group=ref.group,
            version=ref.version,
            kind=ref.kind,
            name=ref.name,
            namespace=ref.namespace,
            status=status,
        )


class SyncStatus(_Document):
    """Outcome of the last sync and the source it used."""

    sync_status: Annotated[SyncStatusCode, Field(alias="syncStatus")] = SyncStatusCode.UNKNOWN
    source: ApplicationSource | None = None


class ApplicationStatus(_Document):
    """Observed state of an Application, written only by the engine."""

    resources: Annotated[
        list[ManagedResource],
        Field(default_factory=list, description="Resources managed by this application"),
    ]
    reconciled_at: Annotated[datetime | None, Field(alias="reconciledAt")] = None
    synced_at: Annotated[datetime | None, Field(alias="syncedAt")] = None
    sync: Annotated[SyncStatus, Field(default_factory=SyncStatus)]


class ApplicationMetadata(_Document):
    """Record metadata.

    Attributes:
        name: Application name.
        namespace: Namespace the record lives in.
        finalizers: Guard tokens blocking final removal of the record.
        deletion_timestamp: Set when deletion has been requested.
        generation: Incremented whenever the spec changes.
        resource_version: Opaque version token from the backing store.
    """

    name: str
    namespace: str = DEFAULT_NAMESPACE
    finalizers: Annotated[list[str], Field(default_factory=list)]
    deletion_timestamp: Annotated[datetime | None, Field(alias="deletionTimestamp")] = None
    generation: int = 1
    resource_version: Annotated[str | None, Field(alias="resourceVersion")] = None


class Application(_Document):
    """A user-declared binding between a manifest source and the cluster."""

    api_version: Annotated[str, Field(alias="apiVersion")] = API_VERSION
    kind: str = KIND
    metadata: ApplicationMetadata
    spec: ApplicationSpec
    status: Annotated[ApplicationStatus, Field(default_factory=ApplicationStatus)]

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """Unique "namespace/name" key of the record."""
        return f"{self.metadata.namespace}/{self.metadata.name}"

    @property
    def is_deleting(self) -> bool:
        """Check if deletion of this record has been requested."""
        return self.metadata.deletion_timestamp is not None

    @property
    def has_marker(self) -> bool:
        """Check if the cleanup marker is attached."""
        return CLEANUP_MARKER in self.metadata.finalizers

    def with_marker(self) -> Application:
        """Return a copy with the cleanup marker attached."""
        app = self.model_copy(deep=True)
        if not app.has_marker:
            app.metadata.finalizers.append(CLEANUP_MARKER)
        return app

    def without_marker(self) -> Application:
        """Return a copy with the cleanup marker removed."""
        app = self.model_copy(deep=True)
        app.metadata.finalizers = [f for f in app.metadata.finalizers if f != CLEANUP_MARKER]
        return app

    def to_document(self) -> dict[str, Any]:
        """Serialize to a camelCase document, omitting unset values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Application:
        """Validate a camelCase document.

        Raises:
            pydantic.ValidationError: If the document does not match the schema.
        """
        return cls.model_validate(data)
