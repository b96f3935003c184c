"""Cancellation signal threaded through a reconciliation pass."""

import threading

from gitopsctl.core.errors import PassCancelled


class CancelToken:
    """Cooperative cancellation flag shared between a pass and its owner.

    The engine and its collaborators call :meth:`raise_if_cancelled`
    before every network call, so a cancelled pass stops at the next
    call boundary and never commits status.

    Example:
        >>> token = CancelToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise PassCancelled if cancellation has been requested.

        Raises:
            PassCancelled: If the token has been cancelled.
        """
        if self._event.is_set():
            raise PassCancelled("Reconciliation pass cancelled")
