"""Application record storage.

This module provides the ApplicationStore interface through which the
engine reads and persists Application records, and a file-backed
implementation that keeps one TOML document per record.

Stores behave like an API server for the records they hold:

- ``update`` rejects writes based on a stale ``resourceVersion``;
- a record that is being deleted and carries no finalizers is purged;
- ``save`` bumps ``generation`` whenever the spec changes.
"""

from __future__ import annotations

import logging
import threading
import tomllib
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from gitopsctl.core.paths import get_applications_dir
from gitopsctl.models.application import Application
from gitopsctl.utils.files import atomic_write_toml

logger = logging.getLogger(__name__)


class ApplicationStoreError(Exception):
    """Base exception for application store errors."""


class ApplicationNotFound(ApplicationStoreError):
    """Raised when an Application record does not exist."""


class ApplicationConflict(ApplicationStoreError):
    """Raised when a write is based on a stale resourceVersion."""


class ApplicationStore(ABC):
    """Persistence for Application records.

    Example:
        >>> store = FileApplicationStore()
        >>> app = store.get("default", "guestbook")
        >>> app.status.sync.sync_status
        <SyncStatusCode.SYNCED: 'Synced'>
    """

    @abstractmethod
    def get(self, namespace: str, name: str) -> Application:
        """Read one record.

        Raises:
            ApplicationNotFound: If the record does not exist.
            ApplicationStoreError: If the record cannot be read.
        """

    @abstractmethod
    def list(self) -> list[Application]:
        """Read all records, ordered by key."""

    @abstractmethod
    def save(self, app: Application) -> Application:
        """Create a record or replace the spec of an existing one.

        Metadata other than the spec generation and the status of an
        existing record are preserved.

        Returns:
            The stored record.
        """

    @abstractmethod
    def update(self, app: Application) -> Application:
        """Persist metadata and status written by the engine.

        Returns:
            The stored record, or ``app`` itself when the write released
            the last finalizer of a deleting record and it was purged.

        Raises:
            ApplicationNotFound: If the record no longer exists.
            ApplicationConflict: If ``app`` carries a stale resourceVersion.
        """

    @abstractmethod
    def request_deletion(self, namespace: str, name: str) -> Application | None:
        """Mark a record for deletion.

        Returns:
            The record in its deleting state, or None if it had no
            finalizers and was removed immediately.

        Raises:
            ApplicationNotFound: If the record does not exist.
        """


class FileApplicationStore(ApplicationStore):
    """ApplicationStore keeping records as TOML files.

    Storage location: ~/.local/state/gitopsctl/applications/<namespace>/<name>.toml

    Attributes:
        root: Directory holding the records.
    """

    SUFFIX = ".toml"

    def __init__(self, root: Path | None = None) -> None:
        """Initialize the store.

        Args:
            root: Optional override for the records directory.
                  Default: ~/.local/state/gitopsctl/applications
        """
        self.root = root if root is not None else get_applications_dir()
        self._lock = threading.RLock()

    def path_for(self, namespace: str, name: str) -> Path:
        """Return the file path of a record."""
        return self.root / namespace / f"{name}{self.SUFFIX}"

    def get(self, namespace: str, name: str) -> Application:
        with self._lock:
            return self._read(self.path_for(namespace, name))

    def list(self) -> list[Application]:
        if not self.root.exists():
            return []

        apps: list[Application] = []
        with self._lock:
            for path in sorted(self.root.glob(f"*/*{self.SUFFIX}")):
                try:
                    apps.append(self._read(path))
                except ApplicationStoreError as e:
                    logger.warning("Skipping unreadable application record %s: %s", path, e)
        return apps

    def save(self, app: Application) -> Application:
        with self._lock:
            path = self.path_for(app.namespace, app.name)
            if not path.exists():
                record = app.model_copy(deep=True)
                record.metadata.generation = 1
                record.metadata.resource_version = "1"
                record.metadata.deletion_timestamp = None
                logger.info("Created application %s", record.key)
                return self._write(record)

            record = self._read(path)
            if record.is_deleting:
                msg = f"Application {record.key} is being deleted"
                raise ApplicationStoreError(msg)
            if record.spec != app.spec:
                record.spec = app.spec.model_copy(deep=True)
                record.metadata.generation += 1
                logger.info(
                    "Updated application %s (generation %d)", record.key, record.metadata.generation
                )
            record.metadata.resource_version = _next_version(record.metadata.resource_version)
            return self._write(record)

    def update(self, app: Application) -> Application:
        with self._lock:
            path = self.path_for(app.namespace, app.name)
            stored = self._read(path)
            if app.metadata.resource_version != stored.metadata.resource_version:
                msg = (
                    f"Application {app.key} was modified concurrently "
                    f"(have {app.metadata.resource_version}, "
                    f"stored {stored.metadata.resource_version})"
                )
                raise ApplicationConflict(msg)

            record = app.model_copy(deep=True)
            # Spec, generation and deletion state are owned by the user side
            record.spec = stored.spec
            record.metadata.generation = stored.metadata.generation
            record.metadata.deletion_timestamp = stored.metadata.deletion_timestamp

            if record.is_deleting and not record.metadata.finalizers:
                self._remove(path)
                logger.info("Removed application %s", record.key)
                return record

            record.metadata.resource_version = _next_version(stored.metadata.resource_version)
            return self._write(record)

    def request_deletion(self, namespace: str, name: str) -> Application | None:
        with self._lock:
            path = self.path_for(namespace, name)
            record = self._read(path)
            if not record.metadata.finalizers:
                self._remove(path)
                logger.info("Removed application %s", record.key)
                return None
            if record.metadata.deletion_timestamp is None:
                record.metadata.deletion_timestamp = datetime.now(UTC)
                record.metadata.resource_version = _next_version(
                    record.metadata.resource_version
                )
                logger.info("Requested deletion of application %s", record.key)
                return self._write(record)
            return record

    def _read(self, path: Path) -> Application:
        if not path.exists():
            raise ApplicationNotFound(f"Application not found: {path.parent.name}/{path.stem}")
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ApplicationStoreError(f"Invalid TOML syntax in {path}: {e}") from e
        except OSError as e:
            raise ApplicationStoreError(f"Failed to read {path}: {e}") from e

        try:
            return Application.from_document(data)
        except ValidationError as e:
            raise ApplicationStoreError(f"Invalid application record {path}: {e}") from e

    def _write(self, app: Application) -> Application:
        path = self.path_for(app.namespace, app.name)
        try:
            atomic_write_toml(path, app.to_document())
        except OSError as e:
            raise ApplicationStoreError(f"Failed to write {path}: {e}") from e
        return app

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ApplicationStoreError(f"Failed to remove {path}: {e}") from e


def _next_version(version: str | None) -> str:
    try:
        return str(int(version or "0") + 1)
    except ValueError:
        return "1"
