"""Unit tests for the cleanup-marker lifecycle."""

import pytest
from conftest import FIXED_NOW, make_app
from gitopsctl.core.lifecycle import LifecycleStep, MarkerState, Phase, next_step, plan


@pytest.mark.parametrize(
    ("phase", "marker", "expected"),
    [
        (Phase.ACTIVE, MarkerState.ABSENT, LifecycleStep.ADD_MARKER),
        (Phase.ACTIVE, MarkerState.PRESENT, LifecycleStep.SYNC),
        (Phase.DELETING, MarkerState.PRESENT, LifecycleStep.FINALIZE),
        (Phase.DELETING, MarkerState.ABSENT, LifecycleStep.DONE),
    ],
)
def test_next_step(phase: Phase, marker: MarkerState, expected: LifecycleStep) -> None:
    """Every phase and marker combination maps to one step."""
    assert next_step(phase, marker) is expected


class TestPlan:
    """Tests for plan on Application records."""

    def test_new_record_adds_marker(self) -> None:
        """A fresh record needs the marker."""
        assert plan(make_app()) is LifecycleStep.ADD_MARKER

    def test_marked_record_syncs(self) -> None:
        """A marked active record is synced."""
        assert plan(make_app().with_marker()) is LifecycleStep.SYNC

    def test_deleting_marked_record_finalizes(self) -> None:
        """A deleting record with the marker is finalized."""
        app = make_app().with_marker()
        app.metadata.deletion_timestamp = FIXED_NOW
        assert plan(app) is LifecycleStep.FINALIZE

    def test_foreign_finalizer_is_not_the_marker(self) -> None:
        """Only our own marker counts."""
        app = make_app()
        app.metadata.finalizers = ["example.com/other"]
        app.metadata.deletion_timestamp = FIXED_NOW
        assert plan(app) is LifecycleStep.DONE
