"""Application records stored as Kubernetes custom objects.

Records live as ``applications.gitops.gitopsctl.io/v1`` objects. The
API server owns ``generation``, ``resourceVersion`` and the purge of
records whose finalizers have all been removed; status is written
through the status subresource.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from pydantic import ValidationError

from gitopsctl.core.store import (
    ApplicationConflict,
    ApplicationNotFound,
    ApplicationStore,
    ApplicationStoreError,
)
from gitopsctl.models.application import API_GROUP, Application

if TYPE_CHECKING:
    from gitopsctl.core.config import ClusterConfig

logger = logging.getLogger(__name__)

VERSION = "v1"
PLURAL = "applications"


class KubernetesApplicationStore(ApplicationStore):
    """ApplicationStore backed by the CustomObjects API."""

    def __init__(self, api: client.CustomObjectsApi) -> None:
        self._api = api

    @classmethod
    def from_config(cls, cluster: ClusterConfig | None = None) -> KubernetesApplicationStore:
        """Create a store from cluster connection settings."""
        from gitopsctl.cluster.kube import load_api_client

        return cls(client.CustomObjectsApi(load_api_client(cluster)))

    def get(self, namespace: str, name: str) -> Application:
        try:
            obj = self._api.get_namespaced_custom_object(
                API_GROUP, VERSION, namespace, PLURAL, name
            )
        except ApiException as e:
            raise _translate(e, f"{namespace}/{name}") from e
        return _to_application(obj)

    def list(self) -> list[Application]:
        try:
            response = self._api.list_cluster_custom_object(API_GROUP, VERSION, PLURAL)
        except ApiException as e:
            raise _translate(e, PLURAL) from e

        apps: list[Application] = []
        for obj in response.get("items", []):
            try:
                apps.append(_to_application(obj))
            except ApplicationStoreError as e:
                logger.warning("Skipping invalid application object: %s", e)
        return sorted(apps, key=lambda a: a.key)

    def save(self, app: Application) -> Application:
        document = app.to_document()
        document.pop("status", None)
        metadata = document.get("metadata", {})
        for server_field in ("resourceVersion", "generation", "deletionTimestamp"):
            metadata.pop(server_field, None)

        try:
            current = self._api.get_namespaced_custom_object(
                API_GROUP, VERSION, app.namespace, PLURAL, app.name
            )
        except ApiException as e:
            if e.status != 404:
                raise _translate(e, app.key) from e
            try:
                created = self._api.create_namespaced_custom_object(
                    API_GROUP, VERSION, app.namespace, PLURAL, document
                )
            except ApiException as create_error:
                raise _translate(create_error, app.key) from create_error
            logger.info("Created application %s", app.key)
            return _to_application(created)

        current["spec"] = document["spec"]
        try:
            replaced = self._api.replace_namespaced_custom_object(
                API_GROUP, VERSION, app.namespace, PLURAL, app.name, current
            )
        except ApiException as e:
            raise _translate(e, app.key) from e
        logger.info("Updated application %s", app.key)
        return _to_application(replaced)

    def update(self, app: Application) -> Application:
        document = app.to_document()
        status = document.pop("status", {})

        try:
            stored = self._api.replace_namespaced_custom_object(
                API_GROUP, VERSION, app.namespace, PLURAL, app.name, document
            )
        except ApiException as e:
            raise _translate(e, app.key) from e

        if app.is_deleting and not app.metadata.finalizers:
            # The API server purges the object once its last finalizer is gone
            logger.info("Released application %s", app.key)
            return app

        stored["status"] = status
        try:
            stored = self._api.replace_namespaced_custom_object_status(
                API_GROUP, VERSION, app.namespace, PLURAL, app.name, stored
            )
        except ApiException as e:
            raise _translate(e, app.key) from e
        return _to_application(stored)

    def request_deletion(self, namespace: str, name: str) -> Application | None:
        try:
            self._api.delete_namespaced_custom_object(API_GROUP, VERSION, namespace, PLURAL, name)
        except ApiException as e:
            raise _translate(e, f"{namespace}/{name}") from e
        logger.info("Requested deletion of application %s/%s", namespace, name)

        try:
            return self.get(namespace, name)
        except ApplicationNotFound:
            return None


def _to_application(obj: dict[str, Any]) -> Application:
    try:
        return Application.from_document(obj)
    except ValidationError as e:
        name = obj.get("metadata", {}).get("name", "?")
        raise ApplicationStoreError(f"Invalid application object {name}: {e}") from e


def _translate(error: ApiException, subject: str) -> ApplicationStoreError:
    if error.status == 404:
        return ApplicationNotFound(f"Application not found: {subject}")
    if error.status == 409:
        return ApplicationConflict(f"Application {subject} was modified concurrently")
    return ApplicationStoreError(
        f"Application API request for {subject} failed: {error.status} {error.reason}"
    )
