"""Local manifest source.

Reads manifests from a repository checked out on the local filesystem,
addressed by a ``file://`` URL or an absolute path.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

from gitopsctl.core.errors import SourceUnavailable
from gitopsctl.sources.base import ManifestBlob, SourceFetcher, is_manifest_file

if TYPE_CHECKING:
    from gitopsctl.core.cancel import CancelToken
    from gitopsctl.models.application import ApplicationSource

logger = logging.getLogger(__name__)


def repo_root(repo_url: str) -> Path | None:
    """Return the local directory a repository URL points at, if any."""
    if repo_url.startswith("file://"):
        return Path(unquote(urlparse(repo_url).path))
    path = Path(repo_url)
    if path.is_absolute():
        return path
    return None


class LocalFetcher(SourceFetcher):
    """SourceFetcher for repositories on the local filesystem.

    The working tree is read as-is; ``targetRevision`` is not
    interpreted.
    """

    def supports(self, repo_url: str) -> bool:
        return repo_root(repo_url) is not None

    def fetch(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[ManifestBlob]:
        root = repo_root(source.repo_url)
        if root is None or not root.is_dir():
            raise SourceUnavailable(f"Repository not found: {source.repo_url}")
        if source.target_revision:
            logger.debug(
                "Ignoring revision %s for local repository %s", source.target_revision, root
            )

        relative = source.path.strip("/")
        target = (root / relative).resolve()
        if not target.is_relative_to(root.resolve()):
            raise SourceUnavailable(f"Path {source.path!r} escapes repository {root}")

        if cancel is not None:
            cancel.raise_if_cancelled()

        try:
            if target.is_file():
                return [ManifestBlob(path=relative, content=target.read_bytes())]
            if target.is_dir():
                blobs: list[ManifestBlob] = []
                for entry in sorted(target.iterdir(), key=lambda p: p.name):
                    if not entry.is_file() or not is_manifest_file(entry.name):
                        logger.debug("Skipping %s", entry)
                        continue
                    blobs.append(
                        ManifestBlob(
                            path=str(entry.relative_to(root.resolve())),
                            content=entry.read_bytes(),
                        )
                    )
                return blobs
        except OSError as e:
            raise SourceUnavailable(f"Failed to read {target}: {e}") from e

        raise SourceUnavailable(f"{source.path!r} not found in {root}")
