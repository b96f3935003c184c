"""Orphan detection between two reconciliation passes.

This module compares the managed-resource list committed by the
previous pass with the identities applied in the current pass.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitopsctl.models.application import ManagedResource
    from gitopsctl.models.resource import ResourceRef


def compute_orphans(
    previous: Sequence[ManagedResource],
    current: Iterable[ResourceRef],
) -> list[ManagedResource]:
    """Return previously managed resources absent from the current pass.

    The result is exactly ``previous \\ current`` by identity, in the
    order of ``previous``, with duplicate identities reported once.

    Args:
        previous: Managed-resource list from the last committed status.
        current: Identities applied in the current pass.

    Returns:
        Managed resources to prune.
    """
    keep = set(current)
    seen: set[ResourceRef] = set()
    orphans: list[ManagedResource] = []
    for entry in previous:
        ref = entry.ref
        if ref in keep or ref in seen:
            continue
        seen.add(ref)
        orphans.append(entry)
    return orphans


@dataclass(frozen=True, slots=True)
class ResourceDiff:
    """Set view of one pass against the previous managed set.

    Attributes:
        to_create: Identities in the target set but not previously managed.
        to_keep: Identities both previously managed and targeted.
        to_prune: Identities previously managed but no longer targeted.
    """

    to_create: frozenset[ResourceRef]
    to_keep: frozenset[ResourceRef]
    to_prune: frozenset[ResourceRef]

    @property
    def is_in_sync(self) -> bool:
        """Check if the target set equals the previous managed set."""
        return not (self.to_create or self.to_prune)

    @classmethod
    def between(
        cls,
        previous: Iterable[ResourceRef],
        target: Iterable[ResourceRef],
    ) -> ResourceDiff:
        """Compute the diff between a previous managed set and a target set."""
        prev = frozenset(previous)
        tgt = frozenset(target)
        return cls(to_create=tgt - prev, to_keep=tgt & prev, to_prune=prev - tgt)
