#!/usr/bin/env python3
"""Track editing activity in one or more workspace folders until interrupted."""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from db import MongoDelivery  # noqa: E402
from delivery import CliDelivery  # noqa: E402
from entities import WorkspaceRegistry  # noqa: E402
from settings_store import load_settings  # noqa: E402
from signals import SignalRouter  # noqa: E402
from tracker import ActivityTracker  # noqa: E402
from triggers import WorkspaceWatcher  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Aggregate workspace activity into events and heartbeats.")
    parser.add_argument("roots", nargs="+", help="Workspace folders to watch.")
    parser.add_argument("--sink", choices=("cli", "mongo"), default="cli", help="Where finished records go.")
    parser.add_argument("--cli-path", help="Telemetry binary (defaults to the settings value).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )

    settings = load_settings()
    if args.sink == "mongo":
        delivery = MongoDelivery()
    else:
        delivery = CliDelivery(args.cli_path or settings.cli_path, db_path=settings.db_path or None)
        delivery.initialize_database()

    workspace = WorkspaceRegistry(args.roots)
    tracker = ActivityTracker(delivery, settings)
    router = SignalRouter(
        tracker,
        workspace,
        tracker.scheduler,
        notebook_edit_debounce_seconds=settings.notebook_edit_debounce_seconds,
    )
    watcher = WorkspaceWatcher(workspace, router)

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    tracker.start()
    watcher.start()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()
        router.close()
        tracker.shutdown()
        delivery.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
