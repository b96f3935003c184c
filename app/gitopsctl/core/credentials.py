"""Source access credential lookup.

The token for the manifest source comes from a referenced Kubernetes
Secret (key ``token``) or, when no Secret is configured, from an
environment variable. No credential at all means anonymous access.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Protocol

from gitopsctl.cluster.base import StoreError
from gitopsctl.core.config import TOKEN_SECRET_KEY
from gitopsctl.core.errors import CredentialError

if TYPE_CHECKING:
    from gitopsctl.core.config import CredentialsConfig

logger = logging.getLogger(__name__)


class SecretReader(Protocol):
    """Reads the ``data`` mapping of a Secret.

    Implementations raise LookupError when the Secret does not exist.
    """

    def __call__(self, name: str, namespace: str) -> Mapping[str, str]: ...


def kubernetes_secret_reader(api_factory: Callable[[], object]) -> SecretReader:
    """Build a SecretReader backed by the Kubernetes core API.

    Args:
        api_factory: Callable returning a ``kubernetes.client.CoreV1Api``.
            A StoreError it raises (no cluster configuration) is reported
            as a CredentialError, as are transport failures.
    """

    def read(name: str, namespace: str) -> Mapping[str, str]:
        from kubernetes.client.exceptions import ApiException
        from urllib3.exceptions import HTTPError

        try:
            api = api_factory()
        except StoreError as e:
            raise CredentialError(f"Cannot read secret {namespace}/{name}: {e}") from e
        try:
            secret = api.read_namespaced_secret(name=name, namespace=namespace)  # type: ignore[attr-defined]
        except ApiException as e:
            if e.status == 404:
                raise LookupError(f"Secret {namespace}/{name} not found") from e
            raise CredentialError(
                f"Failed to read secret {namespace}/{name}: {e.status} {e.reason}"
            ) from e
        except HTTPError as e:
            raise CredentialError(f"Failed to read secret {namespace}/{name}: {e}") from e
        return secret.data or {}

    return read


def resolve_token(
    credentials: CredentialsConfig,
    secret_reader: SecretReader | None = None,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Resolve the source access token.

    Args:
        credentials: Credential lookup settings.
        secret_reader: Reader used when a Secret is referenced.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The token, or None for anonymous access.

    Raises:
        CredentialError: If a referenced Secret is missing, lacks the
            ``token`` key, or holds data that is not valid base64.
    """
    if credentials.secret_name:
        return _token_from_secret(credentials, secret_reader)

    env = os.environ if environ is None else environ
    token = env.get(credentials.token_env, "").strip()
    if token:
        logger.debug("Using source token from $%s", credentials.token_env)
        return token

    logger.debug("No source token configured, using anonymous access")
    return None


def _token_from_secret(
    credentials: CredentialsConfig,
    secret_reader: SecretReader | None,
) -> str:
    name = credentials.secret_name or ""
    namespace = credentials.secret_namespace
    if secret_reader is None:
        raise CredentialError(f"No way to read secret {namespace}/{name}")

    try:
        data = secret_reader(name, namespace)
    except LookupError as e:
        raise CredentialError(str(e)) from e

    encoded = data.get(TOKEN_SECRET_KEY)
    if not encoded:
        raise CredentialError(f"Secret {namespace}/{name} has no '{TOKEN_SECRET_KEY}' key")

    try:
        token = base64.b64decode(encoded, validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise CredentialError(
            f"Secret {namespace}/{name} key '{TOKEN_SECRET_KEY}' is not valid base64 text"
        ) from e

    if not token:
        raise CredentialError(f"Secret {namespace}/{name} key '{TOKEN_SECRET_KEY}' is empty")
    logger.debug("Using source token from secret %s/%s", namespace, name)
    return token
