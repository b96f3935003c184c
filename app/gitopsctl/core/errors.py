"""Error taxonomy for reconciliation passes.

Every failure the engine can hit during a pass is expressed as a
ReconcileError subclass. The ``retryable`` class attribute tells the
scheduler whether to retry with backoff or leave the Application inert
until its record changes.
"""


class ReconcileError(Exception):
    """Base exception for reconciliation failures."""

    retryable: bool = True


class SourceUnavailable(ReconcileError):
    """Raised when manifests cannot be fetched from the source."""


class DecodeError(ReconcileError):
    """Raised when a manifest document cannot be decoded."""


class ApplyError(ReconcileError):
    """Raised when creating or updating a target resource fails."""


class PruneError(ReconcileError):
    """Raised when deleting a managed resource fails."""


class PersistError(ReconcileError):
    """Raised when the Application record cannot be written back."""


class ConfigError(ReconcileError):
    """Raised for permanent configuration problems in an Application."""

    retryable = False


class CredentialError(ReconcileError):
    """Raised when the source access credential is missing or malformed."""

    retryable = False


class PassCancelled(ReconcileError):
    """Raised when a pass is aborted through its cancel token."""

    retryable = False
