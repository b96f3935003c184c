"""Live resource stores for gitopsctl."""

from gitopsctl.cluster.base import ResourceNotFound, ResourceStore, StoreError

__all__ = ["ResourceNotFound", "ResourceStore", "StoreError"]
