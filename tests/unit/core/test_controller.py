"""Unit tests for the Controller.

Tests for pass scheduling, the single-flight guarantee and journaling.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import FIXED_NOW, FakeFetcher, make_app
from gitopsctl.core.cancel import CancelToken
from gitopsctl.core.controller import Controller, split_key
from gitopsctl.core.engine import ReconciliationEngine
from gitopsctl.core.errors import SourceUnavailable
from gitopsctl.core.journal import Journal
from gitopsctl.core.store import ApplicationNotFound, ApplicationStoreError, FileApplicationStore


class _Clock:
    """Mutable clock for scheduling tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class _InlineExecutor:
    """Executor running submitted calls synchronously."""

    def submit(self, fn, *args, **kwargs) -> Future:  # type: ignore[no-untyped-def]
        future: Future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


@pytest.fixture
def clock() -> _Clock:
    """Clock starting at the fixed test time."""
    return _Clock(FIXED_NOW)


@pytest.fixture
def journal(tmp_path: Path) -> Journal:
    """Journal in a temporary directory."""
    return Journal(path=tmp_path / "journal.jsonl")


@pytest.fixture
def controller(
    app_store: FileApplicationStore,
    engine: ReconciliationEngine,
    journal: Journal,
    clock: _Clock,
) -> Controller:
    """Controller wired to the test engine."""
    return Controller(app_store, engine, workers=2, poll_seconds=0.01, journal=journal, clock=clock)


class TestSplitKey:
    """Tests for split_key."""

    def test_namespaced_key(self) -> None:
        """A "namespace/name" key is split in two."""
        assert split_key("prod/web") == ("prod", "web")

    def test_bare_name_uses_default_namespace(self) -> None:
        """A bare name falls back to the default namespace."""
        assert split_key("web") == ("default", "web")


class TestPollOnce:
    """Tests for Controller.poll_once."""

    def test_new_application_is_reconciled(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """An Application never seen before gets a pass."""
        app_store.save(make_app())

        futures = controller.poll_once(_InlineExecutor())

        assert len(futures) == 1
        assert futures[0].result().succeeded
        assert app_store.get("default", "foo").status.synced_at == FIXED_NOW

    def test_not_due_is_skipped(
        self, controller: Controller, app_store: FileApplicationStore, clock: _Clock
    ) -> None:
        """No pass runs before requeue_after has elapsed."""
        app_store.save(make_app())
        controller.poll_once(_InlineExecutor())
        clock.advance(timedelta(minutes=2))

        assert controller.poll_once(_InlineExecutor()) == []

    def test_due_after_sync_period(
        self, controller: Controller, app_store: FileApplicationStore, clock: _Clock
    ) -> None:
        """A pass runs again once the sync period has elapsed."""
        app_store.save(make_app())
        controller.poll_once(_InlineExecutor())
        clock.advance(timedelta(minutes=3))

        assert len(controller.poll_once(_InlineExecutor())) == 1

    def test_spec_change_triggers_pass(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """A generation change triggers a pass immediately."""
        app_store.save(make_app())
        controller.poll_once(_InlineExecutor())
        app_store.save(make_app(path="apps/bar"))

        assert len(controller.poll_once(_InlineExecutor())) == 1

    def test_permanent_failure_is_inert(
        self, controller: Controller, app_store: FileApplicationStore, clock: _Clock
    ) -> None:
        """A record without syncPeriod is not retried until it changes."""
        app_store.save(make_app(sync_period=None))
        result = controller.poll_once(_InlineExecutor())[0].result()
        clock.advance(timedelta(days=1))

        assert not result.succeeded
        assert controller.state("default/foo").due_at is None
        assert controller.poll_once(_InlineExecutor()) == []

        app_store.save(make_app(sync_period=5))
        assert len(controller.poll_once(_InlineExecutor())) == 1

    def test_deletion_request_triggers_pass(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """A new deletion request is handled without waiting for the period."""
        app_store.save(make_app())
        controller.poll_once(_InlineExecutor())
        app_store.request_deletion("default", "foo")

        futures = controller.poll_once(_InlineExecutor())

        assert futures[0].result().finalized
        assert app_store.list() == []

    def test_schedule_of_removed_application_is_forgotten(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """Keys no longer in the store are dropped from the schedule."""
        app_store.save(make_app())
        controller.poll_once(_InlineExecutor())
        app_store.path_for("default", "foo").unlink()

        controller.poll_once(_InlineExecutor())

        assert controller.state("default/foo") is None

    def test_list_failure_submits_nothing(self, engine: ReconciliationEngine) -> None:
        """A store failure is logged and nothing is submitted."""
        store = MagicMock()
        store.list.side_effect = ApplicationStoreError("unreadable")
        controller = Controller(store, engine)

        assert controller.poll_once(_InlineExecutor()) == []

    def test_in_flight_key_is_not_claimed_twice(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """A key with a running pass is skipped."""
        app_store.save(make_app())
        controller._in_flight["default/foo"] = CancelToken()

        assert controller.poll_once(_InlineExecutor()) == []


class TestRetries:
    """Tests for retry scheduling after failures."""

    def test_failures_are_counted_and_backed_off(
        self,
        controller: Controller,
        app_store: FileApplicationStore,
        fetcher: FakeFetcher,
        clock: _Clock,
    ) -> None:
        """Consecutive failures raise the attempt number passed to the engine."""
        app_store.save(make_app())
        fetcher.error = SourceUnavailable("down")

        controller.poll_once(_InlineExecutor())
        first = controller.state("default/foo")
        clock.advance(timedelta(seconds=10))
        controller.poll_once(_InlineExecutor())
        second = controller.state("default/foo")

        assert first.failures == 1
        assert first.due_at == FIXED_NOW + timedelta(seconds=10)
        assert second.failures == 2
        assert second.due_at == clock.now + timedelta(seconds=20)

    def test_success_resets_failures(
        self,
        controller: Controller,
        app_store: FileApplicationStore,
        fetcher: FakeFetcher,
        clock: _Clock,
    ) -> None:
        """A successful pass resets the failure counter."""
        app_store.save(make_app())
        fetcher.error = SourceUnavailable("down")
        controller.poll_once(_InlineExecutor())
        fetcher.error = None
        clock.advance(timedelta(seconds=10))

        controller.poll_once(_InlineExecutor())

        state = controller.state("default/foo")
        assert state.failures == 0
        assert state.due_at == clock.now + timedelta(minutes=3)

    def test_unexpected_exception_is_retried(
        self, app_store: FileApplicationStore, journal: Journal, clock: _Clock
    ) -> None:
        """An exception escaping the engine is treated as retryable."""
        engine = MagicMock()
        engine.reconcile.side_effect = RuntimeError("boom")
        engine.retry_policy.delay.return_value = timedelta(seconds=10)
        controller = Controller(app_store, engine, journal=journal, clock=clock)
        app_store.save(make_app())

        result = controller.poll_once(_InlineExecutor())[0].result()

        assert result.retryable
        assert "boom" in str(result.error)
        assert controller.in_flight() == set()


class TestReconcileKey:
    """Tests for Controller.reconcile_key."""

    def test_runs_one_pass(self, controller: Controller, app_store: FileApplicationStore) -> None:
        """reconcile_key runs a pass and records the schedule."""
        app_store.save(make_app())

        result = controller.reconcile_key("foo")

        assert result.succeeded
        assert controller.state("default/foo") is not None
        assert controller.in_flight() == set()

    def test_writes_journal(
        self, controller: Controller, app_store: FileApplicationStore, journal: Journal
    ) -> None:
        """Each finished pass is appended to the journal."""
        app_store.save(make_app())

        controller.reconcile_key("default/foo")

        entries = journal.entries()
        assert len(entries) == 1
        assert entries[0].application == "default/foo"
        assert entries[0].created == 2

    def test_missing_application_raises(self, controller: Controller) -> None:
        """An unknown key raises ApplicationNotFound."""
        with pytest.raises(ApplicationNotFound):
            controller.reconcile_key("default/missing")

    def test_concurrent_pass_is_rejected(
        self, controller: Controller, app_store: FileApplicationStore
    ) -> None:
        """A second pass for an in-flight key is refused."""
        app_store.save(make_app())
        controller._in_flight["default/foo"] = CancelToken()

        with pytest.raises(RuntimeError, match="already running"):
            controller.reconcile_key("default/foo")

    def test_cancelled_pass_is_not_journaled(
        self, controller: Controller, app_store: FileApplicationStore, journal: Journal
    ) -> None:
        """A cancelled pass leaves schedule and journal untouched."""
        app_store.save(make_app())
        token = CancelToken()
        token.cancel()

        controller.reconcile_key("default/foo", cancel=token)

        assert controller.state("default/foo") is None
        assert journal.entries() == []


class TestRun:
    """Tests for Controller.run."""

    def test_run_until_stopped(self, controller: Controller, app_store: FileApplicationStore) -> None:
        """run reconciles due Applications and returns once stopped."""
        app_store.save(make_app())
        stop = threading.Event()
        original = controller.poll_once

        def poll_then_stop(executor: ThreadPoolExecutor) -> list[Future]:
            futures = original(executor)
            for future in futures:
                future.result()
            stop.set()
            return futures

        controller.poll_once = poll_then_stop  # type: ignore[method-assign]

        controller.run(stop)

        assert app_store.get("default", "foo").status.synced_at == FIXED_NOW

    def test_cancel_all_cancels_tokens(self, controller: Controller) -> None:
        """cancel_all fires every in-flight token."""
        token = CancelToken()
        controller._in_flight["default/foo"] = token

        controller.cancel_all()

        assert token.cancelled
