"""Outcome of a single reconciliation pass."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from gitopsctl.core.errors import ReconcileError
from gitopsctl.models.resource import ResourceRef


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Result returned to the scheduler after one pass.

    Attributes:
        key: "namespace/name" key of the Application.
        requeue_after: Delay before the next pass, or None for no requeue.
        error: Failure that ended or degraded the pass, if any.
        created: Resources created in this pass.
        updated: Resources replaced in this pass.
        unchanged: Resources already matching the source.
        pruned: Resources deleted in this pass.
        prune_failed: Resources whose deletion failed.
        finalized: True when the cleanup marker was removed.
    """

    key: str
    requeue_after: timedelta | None = None
    error: ReconcileError | None = None
    created: tuple[ResourceRef, ...] = ()
    updated: tuple[ResourceRef, ...] = ()
    unchanged: tuple[ResourceRef, ...] = ()
    pruned: tuple[ResourceRef, ...] = ()
    prune_failed: tuple[ResourceRef, ...] = ()
    finalized: bool = False

    @property
    def succeeded(self) -> bool:
        """Check if the pass completed without error."""
        return self.error is None

    @property
    def retryable(self) -> bool:
        """Check if the failure should be retried with backoff."""
        return self.error is not None and self.error.retryable

    @property
    def outcome(self) -> str:
        """Short label describing the pass outcome."""
        if self.finalized:
            return "finalized"
        if self.error is None:
            return "synced"
        if self.retryable:
            return "retrying"
        return "failed"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "application": self.key,
            "outcome": self.outcome,
            "requeue_after_seconds": (
                self.requeue_after.total_seconds() if self.requeue_after is not None else None
            ),
            "error": _error_to_dict(self.error),
            "created": [str(r) for r in self.created],
            "updated": [str(r) for r in self.updated],
            "unchanged": [str(r) for r in self.unchanged],
            "pruned": [str(r) for r in self.pruned],
            "prune_failed": [str(r) for r in self.prune_failed],
        }


def _error_to_dict(error: ReconcileError | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "type": type(error).__name__,
        "message": str(error),
        "retryable": error.retryable,
    }
