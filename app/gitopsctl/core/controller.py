"""Scheduling of reconciliation passes.

The Controller polls the application store and hands Applications that
need a pass to a thread pool. It guarantees at most one in-flight pass
per Application key and keeps the per-key schedule the engine's results
ask for:

- a new record, a ``generation`` change or a new deletion request
  triggers a pass immediately;
- a successful pass is repeated after ``requeue_after``;
- a retryable failure is retried after the backoff delay, with the
  number of consecutive failures passed to the engine as ``attempt``;
- a permanent failure leaves the record inert until its generation
  changes or deletion is requested.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gitopsctl.core.cancel import CancelToken
from gitopsctl.core.errors import PassCancelled, ReconcileError
from gitopsctl.core.store import ApplicationStoreError
from gitopsctl.models.resource import DEFAULT_NAMESPACE
from gitopsctl.models.result import ReconcileResult

if TYPE_CHECKING:
    from gitopsctl.core.engine import ReconciliationEngine
    from gitopsctl.core.journal import Journal
    from gitopsctl.core.store import ApplicationStore
    from gitopsctl.models.application import Application

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduleState:
    """Scheduling state of one Application after its last pass.

    Attributes:
        generation: Spec generation the last pass saw.
        deleting: Whether deletion had been requested at that time.
        due_at: When the next pass is due, or None when inert.
        failures: Consecutive failed passes.
    """

    generation: int
    deleting: bool
    due_at: datetime | None
    failures: int = 0


def split_key(key: str) -> tuple[str, str]:
    """Split a "namespace/name" key; a bare name uses the default namespace."""
    namespace, sep, name = key.partition("/")
    if not sep:
        return DEFAULT_NAMESPACE, key
    return namespace, name


class Controller:
    """Runs reconciliation passes for every stored Application.

    Example:
        >>> controller = Controller(store, engine, workers=4, poll_seconds=5)
        >>> stop = threading.Event()
        >>> controller.run(stop)  # until stop.set()
    """

    def __init__(
        self,
        applications: ApplicationStore,
        engine: ReconciliationEngine,
        workers: int = 4,
        poll_seconds: float = 5.0,
        journal: Journal | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._applications = applications
        self._engine = engine
        self._workers = workers
        self._poll_seconds = poll_seconds
        self._journal = journal
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._in_flight: dict[str, CancelToken] = {}
        self._schedules: dict[str, ScheduleState] = {}

    def state(self, key: str) -> ScheduleState | None:
        """Return the scheduling state of an Application key."""
        with self._lock:
            return self._schedules.get(key)

    def in_flight(self) -> set[str]:
        """Return the keys with a pass currently running."""
        with self._lock:
            return set(self._in_flight)

    def run(self, stop_event: threading.Event) -> None:
        """Poll and dispatch passes until ``stop_event`` is set.

        In-flight passes are cancelled on shutdown and stop at their next
        call boundary without committing status.
        """
        logger.info(
            "Controller started (%d workers, polling every %ss)",
            self._workers,
            self._poll_seconds,
        )
        with ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="reconcile"
        ) as executor:
            try:
                while not stop_event.is_set():
                    self.poll_once(executor)
                    stop_event.wait(self._poll_seconds)
            finally:
                self.cancel_all()
        logger.info("Controller stopped")

    def cancel_all(self) -> None:
        """Cancel every in-flight pass."""
        with self._lock:
            tokens = list(self._in_flight.values())
        for token in tokens:
            token.cancel()

    def poll_once(self, executor: Executor) -> list[Future[ReconcileResult]]:
        """Scan the store once and submit every Application that is due.

        Returns:
            Futures of the submitted passes.
        """
        try:
            apps = self._applications.list()
        except ApplicationStoreError as e:
            logger.warning("Failed to list applications: %s", e)
            return []

        now = self._clock()
        futures: list[Future[ReconcileResult]] = []
        seen: set[str] = set()
        for app in apps:
            seen.add(app.key)
            token = self._claim(app, now)
            if token is None:
                continue
            futures.append(executor.submit(self._run_pass, app, token))

        with self._lock:
            for key in set(self._schedules) - seen - set(self._in_flight):
                logger.debug("Forgetting schedule of removed application %s", key)
                del self._schedules[key]
        return futures

    def reconcile_key(self, key: str, cancel: CancelToken | None = None) -> ReconcileResult:
        """Run one pass for an Application synchronously.

        Args:
            key: "namespace/name" key (a bare name uses the default namespace).
            cancel: Optional token to abort the pass.

        Raises:
            ApplicationNotFound: If the record does not exist.
            ApplicationStoreError: If the record cannot be read.
        """
        namespace, name = split_key(key)
        app = self._applications.get(namespace, name)
        token = cancel or CancelToken()
        with self._lock:
            if app.key in self._in_flight:
                msg = f"A pass for {app.key} is already running"
                raise RuntimeError(msg)
            self._in_flight[app.key] = token
        return self._run_pass(app, token)

    def _claim(self, app: Application, now: datetime) -> CancelToken | None:
        with self._lock:
            if app.key in self._in_flight:
                return None
            if not self._is_due(app, self._schedules.get(app.key), now):
                return None
            token = CancelToken()
            self._in_flight[app.key] = token
            return token

    @staticmethod
    def _is_due(app: Application, state: ScheduleState | None, now: datetime) -> bool:
        if state is None:
            return True
        if app.metadata.generation != state.generation:
            return True
        if app.is_deleting and not state.deleting:
            return True
        return state.due_at is not None and now >= state.due_at

    def _run_pass(self, app: Application, token: CancelToken) -> ReconcileResult:
        try:
            with self._lock:
                previous = self._schedules.get(app.key)
            attempt = previous.failures if previous is not None else 0

            try:
                result = self._engine.reconcile(app, token, attempt)
            except Exception as e:
                logger.exception("Unexpected failure reconciling %s", app.key)
                result = ReconcileResult(
                    key=app.key,
                    requeue_after=self._engine.retry_policy.delay(attempt),
                    error=ReconcileError(f"Unexpected failure: {e}"),
                )

            if isinstance(result.error, PassCancelled):
                return result

            self._update_schedule(app, result, attempt)
            if self._journal is not None:
                self._journal.record(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(app.key, None)

    def _update_schedule(self, app: Application, result: ReconcileResult, attempt: int) -> None:
        failures = attempt + 1 if result.retryable else 0
        due_at = (
            self._clock() + result.requeue_after if result.requeue_after is not None else None
        )
        state = ScheduleState(
            generation=app.metadata.generation,
            deleting=app.is_deleting,
            due_at=due_at,
            failures=failures,
        )
        with self._lock:
            self._schedules[app.key] = state
        if due_at is None:
            logger.debug("No further pass scheduled for %s", app.key)
        else:
            logger.debug("Next pass for %s due at %s", app.key, due_at.isoformat())
