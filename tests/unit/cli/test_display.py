"""Unit tests for shared display helpers."""

from datetime import timedelta

from conftest import FIXED_NOW, make_app
from gitopsctl.cli.display import (
    create_applications_table,
    create_diff_table,
    create_resources_table,
    create_result_table,
    format_time,
)
from gitopsctl.core.diff import ResourceDiff
from gitopsctl.models.application import ManagedResource
from gitopsctl.models.resource import ResourceRef
from gitopsctl.models.result import ReconcileResult

WEB = ResourceRef("apps", "v1", "Deployment", "default", "web")
SVC = ResourceRef("", "v1", "Service", "default", "web-svc")


def test_format_time() -> None:
    """Timestamps are shown to the minute, missing ones as '-'."""
    assert format_time(FIXED_NOW) == "2026-03-01 12:00"
    assert format_time(None) == "-"


def test_applications_table_rows() -> None:
    """One row per application."""
    table = create_applications_table([make_app(), make_app(name="bar", sync_period=None)])

    assert table.row_count == 2
    assert len(table.columns) == 9


def test_resources_table_rows() -> None:
    """One row per managed resource."""
    app = make_app()
    app.status.resources = [ManagedResource.from_ref(WEB), ManagedResource.from_ref(SVC)]

    assert create_resources_table(app).row_count == 2


def test_result_table_lists_every_change() -> None:
    """Created, pruned and failed resources each get a row."""
    result = ReconcileResult(
        key="default/foo",
        requeue_after=timedelta(minutes=3),
        created=(WEB,),
        pruned=(SVC,),
        prune_failed=(SVC,),
    )

    assert create_result_table(result).row_count == 3


def test_diff_table_rows() -> None:
    """Creates and prunes are listed; kept resources are not."""
    diff = ResourceDiff.between([WEB], [SVC])

    assert create_diff_table(diff).row_count == 2
