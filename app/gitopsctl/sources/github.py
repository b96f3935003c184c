"""GitHub manifest source.

Reads manifest files through the GitHub repository contents API.
Requests are authenticated with a bearer token when one is available
and fall back to anonymous access otherwise.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from gitopsctl.core.errors import SourceUnavailable
from gitopsctl.sources.base import ManifestBlob, SourceFetcher, is_manifest_file

if TYPE_CHECKING:
    from gitopsctl.core.cancel import CancelToken
    from gitopsctl.models.application import ApplicationSource

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_HOST = "github.com"

_JSON_ACCEPT = "application/vnd.github+json"
_RAW_ACCEPT = "application/vnd.github.raw+json"

_URL_PATTERNS = (
    re.compile(r"^https?://(?P<host>[^/]+)/(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$"),
    re.compile(r"^(?:ssh://)?git@(?P<host>[^:/]+)[:/](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?$"),
)

TokenProvider = Callable[[], str | None]


def parse_repo_url(repo_url: str) -> tuple[str, str, str]:
    """Split a repository URL into (host, owner, repository).

    Accepts ``https://github.com/owner/repo[.git]`` and
    ``git@github.com:owner/repo.git`` forms.

    Raises:
        SourceUnavailable: If the URL is not a recognised repository URL.
    """
    for pattern in _URL_PATTERNS:
        match = pattern.match(repo_url.strip())
        if match:
            return match.group("host"), match.group("owner"), match.group("repo")
    raise SourceUnavailable(f"Unrecognised repository URL: {repo_url!r}")


class GitHubFetcher(SourceFetcher):
    """SourceFetcher for repositories hosted on GitHub.

    Attributes:
        host: Repository host this fetcher serves (e.g., "github.com").
    """

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        api_url: str = DEFAULT_API_URL,
        host: str = DEFAULT_HOST,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            token_provider: Callable returning the access token, or None for
                anonymous access. Called once per fetch, so a rotated
                token is picked up by the next pass.
            api_url: Base URL of the GitHub REST API.
            host: Repository host matched by :meth:`supports`.
            timeout_seconds: Timeout for each HTTP request.
            client: Pre-built HTTP client (used by tests).
        """
        self.host = host
        self._token_provider = token_provider
        self._client = client or httpx.Client(
            base_url=api_url,
            timeout=timeout_seconds,
            headers={
                "Accept": _JSON_ACCEPT,
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "gitopsctl",
            },
        )

    def __enter__(self) -> GitHubFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def supports(self, repo_url: str) -> bool:
        try:
            host, _, _ = parse_repo_url(repo_url)
        except SourceUnavailable:
            return False
        return host == self.host

    def fetch(
        self,
        source: ApplicationSource,
        cancel: CancelToken | None = None,
    ) -> list[ManifestBlob]:
        _, owner, repo = parse_repo_url(source.repo_url)
        path = source.path.strip("/")
        params = {"ref": source.target_revision} if source.target_revision else {}
        revision = source.target_revision or "default branch"

        token = self._token_provider() if self._token_provider is not None else None
        payload = self._get_json(owner, repo, path, params, token, cancel)

        if isinstance(payload, list):
            blobs: list[ManifestBlob] = []
            for entry in payload:
                name = str(entry.get("name", ""))
                if entry.get("type") != "file" or not is_manifest_file(name):
                    logger.debug("Skipping %s entry %s", entry.get("type"), entry.get("path"))
                    continue
                blobs.append(
                    ManifestBlob(
                        path=entry["path"],
                        content=self._get_raw(owner, repo, entry["path"], params, token, cancel),
                    )
                )
            logger.debug(
                "Fetched %d manifest(s) from %s/%s:%s at %s", len(blobs), owner, repo, path, revision
            )
            return blobs

        if isinstance(payload, dict) and payload.get("type") == "file":
            content = self._decode_content(payload)
            if content is None:
                content = self._get_raw(owner, repo, payload["path"], params, token, cancel)
            return [ManifestBlob(path=payload["path"], content=content)]

        msg = f"{owner}/{repo}:{path or '/'} at {revision} is neither a file nor a directory"
        raise SourceUnavailable(msg)

    def _get_json(
        self,
        owner: str,
        repo: str,
        path: str,
        params: dict[str, str],
        token: str | None,
        cancel: CancelToken | None,
    ) -> Any:
        response = self._request(owner, repo, path, params, _JSON_ACCEPT, token, cancel)
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(f"Invalid response for {owner}/{repo}:{path}: {e}") from e

    def _get_raw(
        self,
        owner: str,
        repo: str,
        path: str,
        params: dict[str, str],
        token: str | None,
        cancel: CancelToken | None,
    ) -> bytes:
        return self._request(owner, repo, path, params, _RAW_ACCEPT, token, cancel).content

    def _request(
        self,
        owner: str,
        repo: str,
        path: str,
        params: dict[str, str],
        accept: str,
        token: str | None,
        cancel: CancelToken | None,
    ) -> httpx.Response:
        if cancel is not None:
            cancel.raise_if_cancelled()

        headers = {"Accept": accept}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"/repos/{owner}/{repo}/contents/{quote(path)}"
        try:
            response = self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Request to GitHub failed for {owner}/{repo}: {e}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            ref = params.get("ref", "default branch")
            raise SourceUnavailable(f"{owner}/{repo}:{path or '/'} not found at {ref}")
        if response.is_error:
            raise SourceUnavailable(
                f"GitHub returned {response.status_code} for {owner}/{repo}:{path or '/'}"
            )
        return response

    @staticmethod
    def _decode_content(payload: dict[str, Any]) -> bytes | None:
        """Decode inline file content, or None when GitHub omitted it."""
        content = payload.get("content")
        if not content or payload.get("encoding") != "base64":
            return None
        try:
            return base64.b64decode(content)
        except (binascii.Error, ValueError) as e:
            raise SourceUnavailable(f"Invalid base64 content for {payload.get('path')}") from e
