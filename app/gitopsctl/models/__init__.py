"""Data models for gitopsctl.

This module exports the core data structures used throughout the application.
"""

from gitopsctl.models.application import (
    Application,
    ApplicationMetadata,
    ApplicationSource,
    ApplicationSpec,
    ApplicationStatus,
    ManagedResource,
    SyncStatus,
    SyncStatusCode,
)
from gitopsctl.models.resource import DEFAULT_NAMESPACE, ResourceRef, TargetResource
from gitopsctl.models.history import PassRecord
from gitopsctl.models.result import ReconcileResult

__all__ = [
    "DEFAULT_NAMESPACE",
    "Application",
    "ApplicationMetadata",
    "ApplicationSource",
    "ApplicationSpec",
    "ApplicationStatus",
    "ManagedResource",
    "PassRecord",
    "ReconcileResult",
    "ResourceRef",
    "SyncStatus",
    "SyncStatusCode",
    "TargetResource",
]
