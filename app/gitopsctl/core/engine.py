"""Reconciliation engine.

One call to :meth:`ReconciliationEngine.reconcile` runs a single pass
for one Application:

1. decide the lifecycle step from the deletion request and the
   cleanup marker (see :mod:`gitopsctl.core.lifecycle`);
2. fetch and decode the target resources;
3. apply each target (get, then create or replace);
4. prune resources managed by the previous pass but no longer targeted;
5. commit the new status and compute the next requeue.

When the resource store runs in dry-run mode the pass stops before
any status write, including the cleanup marker.

Failures never escape a pass. They are returned on the ReconcileResult
together with the retry delay the scheduler should use.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from gitopsctl.cluster.base import ResourceNotFound, StoreError
from gitopsctl.core.backoff import RetryPolicy
from gitopsctl.core.cancel import CancelToken
from gitopsctl.core.diff import ResourceDiff, compute_orphans
from gitopsctl.core.errors import (
    ApplyError,
    ConfigError,
    PassCancelled,
    PersistError,
    PruneError,
    ReconcileError,
)
from gitopsctl.core.lifecycle import LifecycleStep, plan
from gitopsctl.core.store import ApplicationNotFound, ApplicationStoreError
from gitopsctl.models.application import API_GROUP, ManagedResource, SyncStatusCode
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.models.result import ReconcileResult

if TYPE_CHECKING:
    from gitopsctl.cluster.base import ResourceStore
    from gitopsctl.core.store import ApplicationStore
    from gitopsctl.models.application import Application
    from gitopsctl.models.resource import ResourceRef, TargetResource
    from gitopsctl.sources.base import SourceFetcher

logger = logging.getLogger(__name__)

# Digest of the source document last applied to a live resource
APPLIED_HASH_ANNOTATION = f"{API_GROUP}/applied-hash"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ApplyOutcome(Enum):
    """What applying one target did to the live resource."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def applied_hash(body: dict[str, Any]) -> str:
    """Return the SHA-256 digest of a canonical JSON rendering of ``body``."""
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def declared_fields_match(desired: Any, live: Any) -> bool:
    """Check that every field declared in ``desired`` has the same value in ``live``.

    Fields only present on the live object (server defaults) are ignored.
    Lists must match element by element.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        for key, value in desired.items():
            if key not in live or not declared_fields_match(value, live[key]):
                return False
        return True
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(declared_fields_match(d, lv) for d, lv in zip(desired, live, strict=True))
    return bool(desired == live)


def matches_live(body: dict[str, Any], live: dict[str, Any]) -> bool:
    """Check whether a live object still holds everything ``body`` declares.

    Of the metadata only labels and annotations are compared; the rest
    is identity or managed by the server. ``status`` is never compared.
    """
    metadata = body.get("metadata") or {}
    live_metadata = live.get("metadata") or {}
    for key in ("labels", "annotations"):
        if key in metadata and not declared_fields_match(
            metadata[key] or {}, live_metadata.get(key) or {}
        ):
            return False
    return all(
        declared_fields_match(value, live.get(key))
        for key, value in body.items()
        if key not in ("metadata", "status")
    )


@dataclass
class _PassProgress:
    """Resource outcomes accumulated while a pass runs."""

    created: list[ResourceRef] = field(default_factory=list)
    updated: list[ResourceRef] = field(default_factory=list)
    unchanged: list[ResourceRef] = field(default_factory=list)
    pruned: list[ResourceRef] = field(default_factory=list)
    prune_failed: list[ResourceRef] = field(default_factory=list)

    def record(self, ref: ResourceRef, outcome: ApplyOutcome) -> None:
        {
            ApplyOutcome.CREATED: self.created,
            ApplyOutcome.UPDATED: self.updated,
            ApplyOutcome.UNCHANGED: self.unchanged,
        }[outcome].append(ref)

    def result(
        self,
        key: str,
        requeue_after: timedelta | None = None,
        error: ReconcileError | None = None,
        finalized: bool = False,
    ) -> ReconcileResult:
        return ReconcileResult(
            key=key,
            requeue_after=requeue_after,
            error=error,
            created=tuple(self.created),
            updated=tuple(self.updated),
            unchanged=tuple(self.unchanged),
            pruned=tuple(self.pruned),
            prune_failed=tuple(self.prune_failed),
            finalized=finalized,
        )


class ReconciliationEngine:
    """Converges live resources toward an Application's manifest source.

    The engine holds no per-Application state. Callers must ensure that
    at most one pass per Application runs at a time.

    Example:
        >>> engine = ReconciliationEngine(fetcher, resources, applications)
        >>> result = engine.reconcile(app)
        >>> result.requeue_after
        datetime.timedelta(seconds=300)
    """

    def __init__(
        self,
        fetcher: SourceFetcher,
        resources: ResourceStore,
        applications: ApplicationStore,
        default_namespace: str = DEFAULT_NAMESPACE,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            fetcher: Source of manifest files.
            resources: Live resource store targets are applied to.
            applications: Store the Application status is written to.
            default_namespace: Namespace for targets that declare none.
            retry_policy: Delays for retryable failures.
            clock: Returns the current time (UTC).
        """
        self._fetcher = fetcher
        self._resources = resources
        self._applications = applications
        self._default_namespace = default_namespace
        self._retry = retry_policy or RetryPolicy()
        self._clock = clock or _utcnow

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def reconcile(
        self,
        app: Application,
        cancel: CancelToken | None = None,
        attempt: int = 0,
    ) -> ReconcileResult:
        """Run one reconciliation pass.

        Args:
            app: The Application record as last read from the store.
            cancel: Token that aborts the pass at the next call boundary.
            attempt: Number of consecutive failed passes before this one.

        Returns:
            The pass result. Retryable failures carry a backoff delay,
            permanent failures and cancellations carry no requeue.
        """
        cancel = cancel or CancelToken()
        app = app.model_copy(deep=True)
        progress = _PassProgress()
        step = plan(app)
        logger.debug("Reconciling %s (step %s, attempt %d)", app.key, step.value, attempt)

        try:
            if step is LifecycleStep.DONE:
                return progress.result(app.key)
            if step is LifecycleStep.FINALIZE:
                return self._finalize(app, cancel, progress)
            if step is LifecycleStep.ADD_MARKER:
                app = self._attach_marker(app, cancel)
            return self._sync(app, cancel, attempt, progress)
        except PassCancelled as e:
            logger.info("Pass for %s cancelled", app.key)
            return progress.result(app.key, error=e)
        except ReconcileError as e:
            requeue_after = self._retry.delay(attempt) if e.retryable else None
            if e.retryable:
                logger.warning(
                    "Pass for %s failed, retrying in %ss: %s",
                    app.key,
                    int(requeue_after.total_seconds()) if requeue_after else 0,
                    e,
                )
            else:
                logger.warning("Pass for %s failed permanently: %s", app.key, e)
            return progress.result(app.key, requeue_after=requeue_after, error=e)

    def preview(self, app: Application, cancel: CancelToken | None = None) -> ResourceDiff:
        """Compare the source with the last committed managed set (read only)."""
        return preview(self._fetcher, app, self._default_namespace, cancel)

    def _attach_marker(self, app: Application, cancel: CancelToken) -> Application:
        cancel.raise_if_cancelled()
        marked = app.with_marker()
        if self._resources.dry_run:
            return marked
        marked.status.reconciled_at = self._clock()
        stored = self._persist(marked)
        logger.info("Attached cleanup marker to %s", app.key)
        return stored

    def _sync(
        self,
        app: Application,
        cancel: CancelToken,
        attempt: int,
        progress: _PassProgress,
    ) -> ReconcileResult:
        source = app.spec.source
        targets = self._targets(app, cancel)

        managed: list[ManagedResource] = []
        applied: set[ResourceRef] = set()
        for target in targets:
            ref = target.ref()
            progress.record(ref, self._apply(ref, target, cancel))
            if ref not in applied:
                applied.add(ref)
                managed.append(ManagedResource.from_ref(ref, SyncStatusCode.SYNCED))

        for orphan in compute_orphans(managed_entries(app), applied):
            ref = orphan.ref
            cancel.raise_if_cancelled()
            try:
                self._resources.delete(ref)
            except StoreError as e:
                logger.warning("Failed to prune %s from %s: %s", ref, app.key, e)
                progress.prune_failed.append(ref)
                managed.append(ManagedResource.from_ref(ref, SyncStatusCode.OUT_OF_SYNC))
                continue
            logger.info("Pruned %s from %s", ref, app.key)
            progress.pruned.append(ref)

        cancel.raise_if_cancelled()
        if self._resources.dry_run:
            # Status keeps the last committed managed set
            logger.info("Dry run for %s, status not committed", app.key)
        else:
            now = self._clock()
            app.status.resources = managed
            app.status.reconciled_at = now
            app.status.synced_at = now
            app.status.sync.sync_status = (
                SyncStatusCode.OUT_OF_SYNC if progress.prune_failed else SyncStatusCode.SYNCED
            )
            app.status.sync.source = source.model_copy(deep=True)
            self._persist(app)
        logger.info(
            "Synced %s: %d created, %d updated, %d unchanged, %d pruned",
            app.key,
            len(progress.created),
            len(progress.updated),
            len(progress.unchanged),
            len(progress.pruned),
        )

        if app.spec.sync_period is None:
            raise ConfigError(f"Application {app.key} has no syncPeriod")
        requeue_after = timedelta(minutes=app.spec.sync_period)

        if progress.prune_failed:
            error = PruneError(
                f"Failed to prune {len(progress.prune_failed)} resource(s) from {app.key}"
            )
            return progress.result(
                app.key,
                requeue_after=min(requeue_after, self._retry.delay(attempt)),
                error=error,
            )
        return progress.result(app.key, requeue_after=requeue_after)

    def _finalize(
        self,
        app: Application,
        cancel: CancelToken,
        progress: _PassProgress,
    ) -> ReconcileResult:
        refs = list(dict.fromkeys(entry.ref for entry in managed_entries(app)))
        for ref in refs:
            cancel.raise_if_cancelled()
            try:
                self._resources.delete(ref)
            except StoreError as e:
                logger.warning("Failed to delete %s for %s: %s", ref, app.key, e)
                progress.prune_failed.append(ref)
                continue
            progress.pruned.append(ref)

        if progress.prune_failed:
            msg = (
                f"Failed to delete {len(progress.prune_failed)} of {len(refs)} "
                f"resource(s) of {app.key}, keeping cleanup marker"
            )
            raise PruneError(msg)

        cancel.raise_if_cancelled()
        if self._resources.dry_run:
            logger.info("Dry run for %s, keeping cleanup marker", app.key)
            return progress.result(app.key)
        try:
            self._applications.update(app.without_marker())
        except ApplicationNotFound:
            logger.debug("Application %s already removed", app.key)
        except ApplicationStoreError as e:
            raise PersistError(f"Failed to remove cleanup marker from {app.key}: {e}") from e
        logger.info("Removed cleanup marker from %s", app.key)
        return progress.result(app.key, finalized=True)

    def _targets(self, app: Application, cancel: CancelToken) -> list[TargetResource]:
        return fetch_targets(self._fetcher, app, self._default_namespace, cancel)

    def _apply(self, ref: ResourceRef, target: TargetResource, cancel: CancelToken) -> ApplyOutcome:
        body = copy.deepcopy(target.body)
        digest = applied_hash(body)
        metadata = body.setdefault("metadata", {})
        metadata["annotations"] = {
            **(metadata.get("annotations") or {}),
            APPLIED_HASH_ANNOTATION: digest,
        }

        cancel.raise_if_cancelled()
        try:
            live = self._resources.get(ref)
        except ResourceNotFound:
            cancel.raise_if_cancelled()
            try:
                self._resources.create(ref, body)
            except StoreError as e:
                raise ApplyError(f"Failed to create {ref}: {e}") from e
            return ApplyOutcome.CREATED
        except StoreError as e:
            raise ApplyError(f"Failed to read {ref}: {e}") from e

        live_metadata = live.get("metadata") or {}
        if (live_metadata.get("annotations") or {}).get(
            APPLIED_HASH_ANNOTATION
        ) == digest and matches_live(body, live):
            logger.debug("%s is unchanged", ref)
            return ApplyOutcome.UNCHANGED
        logger.debug("%s differs from its source, replacing", ref)

        resource_version = live_metadata.get("resourceVersion")
        if resource_version:
            metadata["resourceVersion"] = resource_version
        cancel.raise_if_cancelled()
        try:
            self._resources.update(ref, body)
        except StoreError as e:
            raise ApplyError(f"Failed to update {ref}: {e}") from e
        return ApplyOutcome.UPDATED

    def _persist(self, app: Application) -> Application:
        try:
            return self._applications.update(app)
        except ApplicationStoreError as e:
            raise PersistError(f"Failed to persist status of {app.key}: {e}") from e


def fetch_targets(
    fetcher: SourceFetcher,
    app: Application,
    default_namespace: str = DEFAULT_NAMESPACE,
    cancel: CancelToken | None = None,
) -> list[TargetResource]:
    """Fetch an Application's targets with namespaces defaulted.

    Raises:
        SourceUnavailable: If the source cannot be fetched.
        DecodeError: If a manifest document is malformed.
    """
    targets = fetcher.fetch_targets(app.spec.source, cancel)
    return [
        target if target.namespace else target.with_namespace(default_namespace)
        for target in targets
    ]


def managed_entries(app: Application) -> list[ManagedResource]:
    """Return the committed managed-resource entries that carry an identity."""
    entries: list[ManagedResource] = []
    for entry in app.status.resources:
        if entry.kind and entry.name:
            entries.append(entry)
        else:
            logger.warning("Ignoring incomplete managed resource entry in %s", app.key)
    return entries


def preview(
    fetcher: SourceFetcher,
    app: Application,
    default_namespace: str = DEFAULT_NAMESPACE,
    cancel: CancelToken | None = None,
) -> ResourceDiff:
    """Compare an Application's source with its last committed managed set.

    Nothing is written to the cluster or the application store.

    Raises:
        SourceUnavailable: If the source cannot be fetched.
        DecodeError: If a manifest document is malformed.
    """
    targets = fetch_targets(fetcher, app, default_namespace, cancel)
    previous = [entry.ref for entry in managed_entries(app)]
    return ResourceDiff.between(previous, [target.ref() for target in targets])
