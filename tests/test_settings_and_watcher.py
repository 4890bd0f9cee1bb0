import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import fakes  # noqa: F401

from watchdog.events import DirModifiedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from activity_schema import SignalKind
from entities import WorkspaceRegistry
from settings_store import TrackerSettings, load_settings, save_settings
from triggers import WorkspaceWatcher, content_type_for


class SettingsStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "settings.json"

    def test_missing_file_returns_defaults(self) -> None:
        settings = load_settings(self.path)
        self.assertEqual(settings.idle_timeout_seconds, 60.0)
        self.assertEqual(settings.flush_debounce_seconds, 0.15)

    def test_saved_settings_are_loaded_back(self) -> None:
        save_settings(TrackerSettings(idle_timeout_seconds=90, app_name="vim"), self.path)

        settings = load_settings(self.path)
        self.assertEqual(settings.idle_timeout_seconds, 90)
        self.assertEqual(settings.app_name, "vim")

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        self.path.write_text(
            json.dumps({"idle_timeout_seconds": -5, "heartbeat_period_seconds": "fast", "min_activity_interval_seconds": 1}),
            encoding="utf-8",
        )

        with self.assertLogs("settings_store", level="WARNING"):
            settings = load_settings(self.path)

        self.assertEqual(settings.idle_timeout_seconds, 60.0)
        self.assertEqual(settings.heartbeat_period_seconds, 2.0)
        self.assertEqual(settings.min_activity_interval_seconds, 1.0)

    def test_corrupt_file_returns_defaults(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("settings_store", level="WARNING"):
            self.assertEqual(load_settings(self.path), TrackerSettings())


class WorkspaceWatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.router = mock.Mock()
        self.watcher = WorkspaceWatcher(WorkspaceRegistry([str(self.root)]), self.router)

    def _signals(self):
        return [c.args[0] for c in self.router.dispatch.call_args_list]

    def test_modified_file_becomes_save_signal(self) -> None:
        notes = self.root / "notes.md"
        notes.write_text("one\ntwo\nthree\n", encoding="utf-8")

        self.watcher.on_modified(FileModifiedEvent(str(notes)))

        signal = self._signals()[0]
        self.assertEqual(signal.kind, SignalKind.DOCUMENT_SAVED)
        self.assertEqual(signal.resource, str(notes))
        self.assertEqual(signal.content_type, "markdown")
        self.assertEqual(signal.line_count, 3)

    def test_directories_and_vcs_internals_are_ignored(self) -> None:
        self.watcher.on_modified(DirModifiedEvent(str(self.root)))
        self.watcher.on_modified(FileModifiedEvent(str(self.root / ".git" / "index")))

        self.router.dispatch.assert_not_called()

    def test_delete_and_move(self) -> None:
        self.watcher.on_deleted(FileDeletedEvent(str(self.root / "gone.py")))
        self.watcher.on_moved(FileMovedEvent(str(self.root / "a.py"), str(self.root / "b.py")))

        kinds = [(s.kind, Path(s.resource).name) for s in self._signals()]
        self.assertEqual(
            kinds,
            [
                (SignalKind.DOCUMENT_CLOSED, "gone.py"),
                (SignalKind.DOCUMENT_CLOSED, "a.py"),
                (SignalKind.DOCUMENT_SAVED, "b.py"),
            ],
        )

    def test_content_type_for_suffix(self) -> None:
        self.assertEqual(content_type_for(Path("a.txt")), "plaintext")
        self.assertEqual(content_type_for(Path("main.rs")), "rs")
        self.assertEqual(content_type_for(Path("Makefile")), "unknown")

    def test_start_requires_existing_roots(self) -> None:
        watcher = WorkspaceWatcher(WorkspaceRegistry(["/does/not/exist"]), self.router)
        with self.assertRaises(FileNotFoundError):
            watcher.start()


if __name__ == "__main__":
    unittest.main()
