"""Pass record model for the reconciliation journal.

This module defines the data structure written to the journal after
every reconciliation pass, so past outcomes can be inspected with
``gitopsctl history``.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from gitopsctl.models.result import ReconcileResult


@dataclass(frozen=True, slots=True)
class PassRecord:
    """Record of a single reconciliation pass.

    Attributes:
        id: Unique identifier (12-character hex string from UUID).
        timestamp: When the pass finished (ISO 8601 format with timezone).
        application: "namespace/name" key of the Application.
        outcome: "synced", "finalized", "retrying" or "failed".
        error: Error message, if the pass failed.
        error_type: Error class name, if the pass failed.
        created: Number of resources created.
        updated: Number of resources replaced.
        unchanged: Number of resources already up to date.
        pruned: Number of resources deleted.
        prune_failed: Number of resources whose deletion failed.
        requeue_after: Seconds until the next pass, if any.
    """

    id: str
    timestamp: str
    application: str
    outcome: str
    error: str | None = None
    error_type: str | None = None
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    pruned: int = 0
    prune_failed: int = 0
    requeue_after: float | None = None

    def __post_init__(self) -> None:
        """Validate record data after initialization."""
        if not self.id:
            msg = "Pass record ID cannot be empty"
            raise ValueError(msg)
        if not self.timestamp:
            msg = "Timestamp cannot be empty"
            raise ValueError(msg)
        if not self.application:
            msg = "Application key cannot be empty"
            raise ValueError(msg)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "application": self.application,
            "outcome": self.outcome,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "pruned": self.pruned,
            "prune_failed": self.prune_failed,
        }
        if self.error is not None:
            result["error"] = self.error
            result["error_type"] = self.error_type
        if self.requeue_after is not None:
            result["requeue_after"] = self.requeue_after
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PassRecord:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If data is invalid.
        """
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            application=data["application"],
            outcome=data["outcome"],
            error=data.get("error"),
            error_type=data.get("error_type"),
            created=int(data.get("created", 0)),
            updated=int(data.get("updated", 0)),
            unchanged=int(data.get("unchanged", 0)),
            pruned=int(data.get("pruned", 0)),
            prune_failed=int(data.get("prune_failed", 0)),
            requeue_after=data.get("requeue_after"),
        )

    def to_json_line(self) -> str:
        """Serialize to JSON line for JSONL storage (no trailing newline)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json_line(cls, line: str) -> PassRecord:
        """Deserialize from JSON line.

        Raises:
            json.JSONDecodeError: If line is not valid JSON.
            KeyError: If required fields are missing.
            ValueError: If data is invalid.
        """
        return cls.from_dict(json.loads(line.strip()))


def create_pass_record(result: ReconcileResult) -> PassRecord:
    """Create a PassRecord from a pass result.

    Generates a unique ID and the current timestamp.

    Args:
        result: Result of the finished pass.

    Returns:
        New PassRecord instance.
    """
    error = result.error
    return PassRecord(
        id=uuid.uuid4().hex[:12],
        timestamp=datetime.now(UTC).isoformat(),
        application=result.key,
        outcome=result.outcome,
        error=str(error) if error is not None else None,
        error_type=type(error).__name__ if error is not None else None,
        created=len(result.created),
        updated=len(result.updated),
        unchanged=len(result.unchanged),
        pruned=len(result.pruned),
        prune_failed=len(result.prune_failed),
        requeue_after=(
            result.requeue_after.total_seconds() if result.requeue_after is not None else None
        ),
    )
