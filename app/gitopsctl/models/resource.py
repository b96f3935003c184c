"""Resource identity and decoded target documents.

This module defines the kind-agnostic data structures used to address
live cluster resources and to carry manifest documents decoded from an
application source.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

# Namespace applied to target resources that do not declare one
DEFAULT_NAMESPACE = "default"


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Identity of a single cluster resource.

    Two references are equal when all five components match. The core
    API group is represented by an empty ``group``.

    Attributes:
        group: API group (empty for the core group).
        version: API version within the group (e.g., "v1").
        kind: Resource kind (e.g., "Deployment").
        namespace: Namespace the resource lives in.
        name: Resource name.
    """

    group: str
    version: str
    kind: str
    namespace: str
    name: str

    def __post_init__(self) -> None:
        """Validate reference data after initialization."""
        if not self.kind:
            msg = "Resource kind cannot be empty"
            raise ValueError(msg)
        if not self.name:
            msg = "Resource name cannot be empty"
            raise ValueError(msg)

    @property
    def api_version(self) -> str:
        """Return the apiVersion string ("group/version" or "version")."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @classmethod
    def from_api_version(
        cls,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
    ) -> ResourceRef:
        """Build a reference from an apiVersion string.

        Args:
            api_version: "group/version" or bare "version" for the core group.
            kind: Resource kind.
            namespace: Resource namespace.
            name: Resource name.

        Returns:
            ResourceRef with group and version split out.
        """
        group, version = split_api_version(api_version)
        return cls(group=group, version=version, kind=kind, namespace=namespace, name=name)

    def __str__(self) -> str:
        return f"{self.api_version}/{self.kind} {self.namespace}/{self.name}"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion string into (group, version)."""
    if "/" in api_version:
        group, _, version = api_version.partition("/")
        return group, version
    return "", api_version


@dataclass(frozen=True, slots=True)
class TargetResource:
    """A resource document decoded from the application source.

    The body is kept as an opaque mapping; only the fields needed to
    address the resource are interpreted.

    Attributes:
        body: The full decoded document.
        origin: Source file the document was decoded from (if known).
    """

    body: dict[str, Any]
    origin: str | None = field(default=None, compare=False)

    @property
    def api_version(self) -> str:
        return str(self.body.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return str(self.body.get("kind", ""))

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.body.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def namespace(self) -> str:
        """Declared namespace, or an empty string when absent."""
        return str(self.metadata.get("namespace") or "")

    @property
    def group(self) -> str:
        return split_api_version(self.api_version)[0]

    @property
    def version(self) -> str:
        return split_api_version(self.api_version)[1]

    def with_namespace(self, namespace: str) -> TargetResource:
        """Return a copy of this resource with ``metadata.namespace`` set.

        The original body is left untouched.
        """
        body = copy.deepcopy(self.body)
        body.setdefault("metadata", {})["namespace"] = namespace
        return TargetResource(body=body, origin=self.origin)

    def ref(self) -> ResourceRef:
        """Return the identity of this resource.

        Raises:
            ValueError: If kind or name is missing.
        """
        return ResourceRef(
            group=self.group,
            version=self.version,
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
        )
