"""Manifest sources for gitopsctl.

This module exports the fetcher classes and the router that picks a
fetcher from an Application's repository URL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gitopsctl.core.errors import SourceUnavailable
from gitopsctl.sources.base import ManifestBlob, SourceFetcher
from gitopsctl.sources.github import GitHubFetcher
from gitopsctl.sources.local import LocalFetcher

if TYPE_CHECKING:
    from gitopsctl.core.cancel import CancelToken
    from gitopsctl.models.application import ApplicationSource


class FetcherRouter(SourceFetcher):
    """Dispatches each fetch to the first fetcher supporting the URL.

    Example:
        >>> router = FetcherRouter([LocalFetcher(), GitHubFetcher()])
        >>> blobs = router.fetch(app.spec.source)
    """

    def __init__(self, fetchers: list[SourceFetcher]) -> None:
        self._fetchers = list(fetchers)

    def supports(self, repo_url: str) -> bool:
        return any(f.supports(repo_url) for f in self._fetchers)

    def fetch(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[ManifestBlob]:
        for fetcher in self._fetchers:
            if fetcher.supports(source.repo_url):
                return fetcher.fetch(source, cancel)
        raise SourceUnavailable(f"No source handler for repository {source.repo_url!r}")


__all__ = [
    "FetcherRouter",
    "GitHubFetcher",
    "LocalFetcher",
    "ManifestBlob",
    "SourceFetcher",
]
