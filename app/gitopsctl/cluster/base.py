"""Abstract base class for live resource stores.

This module defines the ResourceStore interface the reconciliation
engine uses to read and write cluster resources of any kind.
"""

from abc import ABC, abstractmethod
from typing import Any

from gitopsctl.models.resource import ResourceRef


class StoreError(Exception):
    """Raised when the resource store cannot complete an operation."""


class ResourceNotFound(StoreError):
    """Raised when the addressed resource does not exist."""

    def __init__(self, ref: ResourceRef) -> None:
        super().__init__(f"{ref} not found")
        self.ref = ref


class ResourceStore(ABC):
    """Generic, kind-agnostic CRUD against live resources.

    Every operation is addressed by a ResourceRef. Bodies are plain
    mappings shaped like the resource documents decoded from a source.

    Example:
        >>> store = KubernetesResourceStore(dynamic_client)
        >>> try:
        ...     live = store.get(ref)
        ... except ResourceNotFound:
        ...     store.create(ref, body)
    """

    @property
    def dry_run(self) -> bool:
        """Check if writes are validated without being persisted."""
        return False

    @abstractmethod
    def get(self, ref: ResourceRef) -> dict[str, Any]:
        """Read a live resource.

        Args:
            ref: Identity of the resource.

        Returns:
            The live resource document.

        Raises:
            ResourceNotFound: If the resource does not exist.
            StoreError: For any other failure.
        """

    @abstractmethod
    def create(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource.

        Args:
            ref: Identity of the resource.
            body: Full resource document.

        Returns:
            The created resource document.

        Raises:
            StoreError: If creation fails.
        """

    @abstractmethod
    def update(self, ref: ResourceRef, body: dict[str, Any]) -> dict[str, Any]:
        """Replace a resource with ``body`` (last write wins).

        Args:
            ref: Identity of the resource.
            body: Full resource document. May carry
                ``metadata.resourceVersion`` for optimistic concurrency.

        Returns:
            The updated resource document.

        Raises:
            StoreError: If the update fails.
        """

    @abstractmethod
    def delete(self, ref: ResourceRef) -> bool:
        """Delete a resource.

        Deleting an absent resource is not an error.

        Args:
            ref: Identity of the resource.

        Returns:
            True if a resource was deleted, False if it was already absent.

        Raises:
            StoreError: If the deletion fails.
        """
