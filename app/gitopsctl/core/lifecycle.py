"""Cleanup-marker lifecycle of an Application.

The engine decides what to do with an Application from two facts:
whether deletion has been requested and whether the cleanup marker is
attached. The decision is a pure function so it can be tested without
any store.

    +-----------+---------+-------------+
    | phase     | marker  | step        |
    +===========+=========+=============+
    | ACTIVE    | ABSENT  | ADD_MARKER  |
    | ACTIVE    | PRESENT | SYNC        |
    | DELETING  | PRESENT | FINALIZE    |
    | DELETING  | ABSENT  | DONE        |
    +-----------+---------+-------------+
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from gitopsctl.models.application import CLEANUP_MARKER

if TYPE_CHECKING:
    from gitopsctl.models.application import Application

__all__ = [
    "CLEANUP_MARKER",
    "LifecycleStep",
    "MarkerState",
    "Phase",
    "next_step",
    "plan",
]


class Phase(Enum):
    """Macro-state of an Application record."""

    ACTIVE = "active"
    DELETING = "deleting"


class MarkerState(Enum):
    """Whether the cleanup marker is attached."""

    ABSENT = "absent"
    PRESENT = "present"


class LifecycleStep(Enum):
    """Next action the engine takes for an Application.

    Attributes:
        ADD_MARKER: Attach the cleanup marker, then sync.
        SYNC: Run the sync sub-flow.
        FINALIZE: Delete managed resources, then remove the marker.
        DONE: Nothing left to do.
    """

    ADD_MARKER = "add_marker"
    SYNC = "sync"
    FINALIZE = "finalize"
    DONE = "done"


_TRANSITIONS: dict[tuple[Phase, MarkerState], LifecycleStep] = {
    (Phase.ACTIVE, MarkerState.ABSENT): LifecycleStep.ADD_MARKER,
    (Phase.ACTIVE, MarkerState.PRESENT): LifecycleStep.SYNC,
    (Phase.DELETING, MarkerState.PRESENT): LifecycleStep.FINALIZE,
    (Phase.DELETING, MarkerState.ABSENT): LifecycleStep.DONE,
}


def next_step(phase: Phase, marker: MarkerState) -> LifecycleStep:
    """Return the lifecycle step for a phase and marker state."""
    return _TRANSITIONS[(phase, marker)]


def plan(app: Application) -> LifecycleStep:
    """Return the lifecycle step for an Application record."""
    phase = Phase.DELETING if app.is_deleting else Phase.ACTIVE
    marker = MarkerState.PRESENT if app.has_marker else MarkerState.ABSENT
    return next_step(phase, marker)
