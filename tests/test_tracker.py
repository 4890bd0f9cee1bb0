import threading
import unittest
from unittest import mock

from fakes import T0_MS, FakeTimeline

from activity_schema import Category, DocumentState
from delivery import DeliveryAdapter
from settings_store import TrackerSettings
from tracker import ActivityTracker

PROJECT = "/work/proj"
FILE_A = "/work/proj/a.py"
FILE_B = "/work/proj/b.py"


class ActivityTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.timeline = FakeTimeline()
        self.delivery = mock.Mock(spec=DeliveryAdapter)
        self.tracker = ActivityTracker(
            self.delivery,
            TrackerSettings(app_name="editscope-test", source="unit"),
            clock=self.timeline,
            scheduler=self.timeline,
        )

    def _events(self):
        return [c.args[0] for c in self.delivery.deliver_event.call_args_list]

    def test_same_category_signals_deliver_one_event_spanning_all_signals(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        for _ in range(10):
            self.timeline.advance(1)
            self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)

        self.tracker.close_and_deliver(FILE_A, force=True)

        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].duration, 10)
        self.assertEqual(events[0].start, T0_MS // 1000)
        self.assertEqual(events[0].end, T0_MS // 1000 + 10)
        self.assertEqual(events[0].app, "editscope-test")
        self.assertEqual(events[0].source, "unit")
        self.assertFalse(self.tracker.has_open_session(FILE_A))

    def test_category_switch_closes_previous_session(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(5)
        self.tracker.record_activity(Category.DEBUGGING, FILE_A, PROJECT)

        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].category, Category.CODING)
        self.assertEqual(events[0].duration, 5)
        self.assertEqual(self.tracker.session_category(FILE_A), Category.DEBUGGING)

    def test_switching_entity_flushes_the_previous_one(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(4)
        self.tracker.record_activity(Category.CODING, FILE_B, PROJECT)

        events = self._events()
        self.assertEqual([e.entity for e in events], [FILE_A])
        self.assertEqual(events[0].duration, 4)
        self.assertEqual(self.tracker.open_entities(), [FILE_B])
        self.assertEqual(self.tracker.current_entity, FILE_B)

    def test_idle_timeout_flushes_open_session(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(59)
        self.assertEqual(self._events(), [])

        self.timeline.advance(1)

        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].duration, 60)
        self.assertFalse(self.tracker.has_open_session(FILE_A))

    def test_activity_postpones_idle_flush(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(30)
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(30)
        self.assertEqual(self._events(), [])

        self.timeline.advance(30)
        self.assertEqual([e.duration for e in self._events()], [90])

    def test_unattributed_entity_never_opens_a_session(self) -> None:
        for _ in range(3):
            recorded = self.tracker.record_activity(Category.CODING, "/elsewhere/x.py", None)
            self.assertFalse(recorded)
            self.timeline.advance(30)

        self.timeline.advance(120)
        self.tracker.shutdown()

        self.assertEqual(self.tracker.open_entities(), [])
        self.delivery.deliver_event.assert_not_called()
        self.delivery.deliver_heartbeat.assert_not_called()

    def test_shutdown_drains_every_open_session(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.tracker.release_entity()
        self.timeline.advance(3)
        self.tracker.record_activity(Category.WRITING_DOCS, FILE_B, PROJECT)
        self.timeline.advance(2)
        self.tracker.close_and_deliver(FILE_A)

        self.tracker.shutdown()

        durations = {e.entity: e.duration for e in self._events()}
        self.assertEqual(durations, {FILE_A: 5, FILE_B: 2})
        self.timeline.advance(120)
        self.assertEqual(self.delivery.deliver_event.call_count, 2)
        self.assertIsNone(self.tracker.current_entity)

    def test_activity_during_delivery_opens_a_fresh_session(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(5)

        def deliver_while_editing(_event):
            self.timeline.advance(3)
            self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)

        self.delivery.deliver_event.side_effect = deliver_while_editing
        self.tracker.close_and_deliver(FILE_A, force=True)

        self.assertTrue(self.tracker.has_open_session(FILE_A))
        self.delivery.deliver_event.side_effect = None
        self.timeline.advance(4)
        self.tracker.close_and_deliver(FILE_A, force=True)

        events = self._events()
        self.assertEqual([e.duration for e in events], [5, 4])
        self.assertEqual(events[1].start, T0_MS // 1000 + 8)

    def test_shutdown_waits_for_delivery_running_on_another_thread(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(4)
        started = threading.Event()
        release = threading.Event()

        def slow_delivery(_event):
            started.set()
            release.wait(timeout=5)

        self.delivery.deliver_event.side_effect = slow_delivery
        worker = threading.Thread(target=self.tracker.close_and_deliver, args=(FILE_A,), kwargs={"force": True})
        worker.start()
        self.assertTrue(started.wait(timeout=5))

        stopper = threading.Thread(target=self.tracker.shutdown)
        stopper.start()
        stopper.join(timeout=0.2)
        self.assertTrue(stopper.is_alive())

        release.set()
        stopper.join(timeout=5)
        worker.join(timeout=5)
        self.assertFalse(stopper.is_alive())
        self.assertFalse(self.tracker.has_open_session(FILE_A))
        self.delivery.deliver_event.assert_called_once()

    def test_shutdown_gives_up_after_timeout(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(4)
        started = threading.Event()
        release = threading.Event()

        def stuck_delivery(_event):
            started.set()
            release.wait(timeout=5)

        self.delivery.deliver_event.side_effect = stuck_delivery
        worker = threading.Thread(target=self.tracker.close_and_deliver, args=(FILE_A,), kwargs={"force": True})
        worker.start()
        self.addCleanup(worker.join, 5)
        self.addCleanup(release.set)
        self.assertTrue(started.wait(timeout=5))

        with self.assertLogs("tracker", level="WARNING"):
            self.tracker.shutdown(timeout=0.05)

    def test_project_is_updated_in_place(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(3)
        self.tracker.record_activity(Category.CODING, FILE_A, "/work")
        self.timeline.advance(1)
        self.tracker.close_and_deliver(FILE_A, force=True)

        event = self._events()[0]
        self.assertEqual(event.project, "/work")
        self.assertEqual(event.duration, 4)

    def test_vcs_suffix_collapses_to_one_entity(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(2)
        self.tracker.record_activity(Category.CODING, FILE_A + ".git", PROJECT)

        self.assertEqual(self.tracker.open_entities(), [FILE_A])
        self.delivery.deliver_event.assert_not_called()

    def test_activity_sends_immediate_heartbeat_with_document_state(self) -> None:
        self.tracker.record_activity(
            Category.CODING,
            FILE_A,
            PROJECT,
            document=DocumentState(line_count=42, cursor_offset=7, content_type="python"),
        )

        heartbeat = self.delivery.deliver_heartbeat.call_args.args[0]
        self.assertEqual(heartbeat.entity, FILE_A)
        self.assertEqual(heartbeat.lines, 42)
        self.assertEqual(heartbeat.cursor_offset, 7)
        self.assertEqual(heartbeat.language, "python")
        self.assertFalse(heartbeat.is_write)

    def test_save_heartbeat_bypasses_rate_limit(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT, is_write=True)

        writes = [c.args[0].is_write for c in self.delivery.deliver_heartbeat.call_args_list]
        self.assertEqual(writes, [False, True])

    def test_heartbeat_ticks_stop_once_user_is_idle(self) -> None:
        self.tracker.start()
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        self.timeline.advance(2)
        self.assertEqual(self.delivery.deliver_heartbeat.call_count, 2)

        self.timeline.advance(10)
        self.assertEqual(self.delivery.deliver_heartbeat.call_count, 2)
        self.tracker.shutdown()

    def test_session_start_is_immutable(self) -> None:
        self.tracker.record_activity(Category.CODING, FILE_A, PROJECT)
        session = self.tracker._store.get(FILE_A)
        with self.assertRaises(AttributeError):
            session.start_ms = 0


if __name__ == "__main__":
    unittest.main()
