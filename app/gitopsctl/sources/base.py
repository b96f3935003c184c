"""Abstract base class for manifest sources.

This module defines the SourceFetcher interface that every manifest
source (hosted repository, local checkout) must implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gitopsctl.core.decoder import decode_manifests

if TYPE_CHECKING:
    from gitopsctl.core.cancel import CancelToken
    from gitopsctl.models.application import ApplicationSource
    from gitopsctl.models.resource import TargetResource

# Directory entries with these suffixes are treated as manifests
MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


def is_manifest_file(name: str) -> bool:
    """Check if a file name looks like a manifest file."""
    return name.lower().endswith(MANIFEST_SUFFIXES)


@dataclass(frozen=True, slots=True)
class ManifestBlob:
    """Raw content of one manifest file.

    Attributes:
        path: Path of the file within the repository.
        content: File content at the requested revision.
    """

    path: str
    content: bytes


class SourceFetcher(ABC):
    """Abstract base class for all manifest sources.

    A fetcher resolves an ApplicationSource to the raw bytes of every
    manifest file it addresses:

    - a file path yields exactly one blob;
    - a directory path yields one blob per manifest file directly
      inside it (subdirectories are not descended into);
    - anything else raises SourceUnavailable.

    Fetchers never retry; retry policy belongs to the scheduler.

    Example:
        >>> fetcher = GitHubFetcher(token=None)
        >>> if fetcher.supports(app.spec.source.repo_url):
        ...     targets = fetcher.fetch_targets(app.spec.source)
    """

    @abstractmethod
    def supports(self, repo_url: str) -> bool:
        """Check if this fetcher can handle a repository URL.

        Returns:
            True if the URL belongs to this source type.
        """

    @abstractmethod
    def fetch(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[ManifestBlob]:
        """Fetch the manifest files addressed by a source.

        Args:
            source: Repository, path and revision to fetch.
            cancel: Optional cancel token checked before each network call.

        Returns:
            Manifest blobs in enumeration order.

        Raises:
            SourceUnavailable: If the repository or path cannot be read.
            CredentialError: If the access credential cannot be resolved.
            PassCancelled: If the cancel token fires.
        """

    def fetch_targets(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[TargetResource]:
        """Fetch and decode every target resource addressed by a source.

        Returns:
            Target resources in file enumeration order, then document order.

        Raises:
            SourceUnavailable: If fetching fails.
            DecodeError: If any document is malformed.
        """
        targets: list[TargetResource] = []
        for blob in self.fetch(source, cancel):
            targets.extend(decode_manifests(blob.content, origin=blob.path))
        return targets
