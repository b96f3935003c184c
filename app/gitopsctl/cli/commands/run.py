"""Run command implementation.

Runs the controller loop until interrupted.
"""

import signal
import threading
from types import FrameType

import typer

from gitopsctl.cli.wiring import build_application_store, build_engine, get_config
from gitopsctl.core.controller import Controller
from gitopsctl.core.journal import Journal
from gitopsctl.utils.formatting import print_info

app = typer.Typer(
    help="Run the controller loop.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def run(ctx: typer.Context) -> None:
    """Continuously reconcile every registered application.

    Stops on SIGINT or SIGTERM. Passes still running are cancelled and
    commit no status.

    Examples:
        gitopsctl run
        gitopsctl --verbose run
    """
    config = get_config(ctx)
    settings = config.controller
    store = build_application_store(config)
    controller = Controller(
        applications=store,
        engine=build_engine(config, store),
        workers=settings.workers,
        poll_seconds=settings.poll_seconds,
        journal=Journal(),
    )

    stop = threading.Event()

    def _request_stop(signum: int, frame: FrameType | None) -> None:
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    print_info(
        f"Reconciling applications from the {settings.store} store "
        f"with {settings.workers} worker(s). Press Ctrl+C to stop."
    )
    controller.run(stop)
    print_info("Controller stopped.")
