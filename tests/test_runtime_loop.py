"""Event loop tests driving the controller through a real task scheduler."""

from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path

from contextui.ansi import strip_ansi
from contextui.runtime.controller import PreviewController
from contextui.runtime.events import FileLoaded
from contextui.runtime.loop import dispatch, run_event_loop
from contextui.runtime.tasks import Task, TaskScheduler


class RunEventLoopTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.scheduler = TaskScheduler(max_workers=2)
        self.controller = PreviewController(self.root)

    def tearDown(self) -> None:
        self.scheduler.shutdown()
        self._tmp.cleanup()

    def test_loads_preview_until_settled(self) -> None:
        target = self.root / "a.txt"
        target.write_text("alpha\n", encoding="utf-8")
        seen: list[bool] = []

        settled = run_event_loop(
            self.controller,
            self.scheduler,
            initial_tasks=self.controller.select_path(target),
            until=lambda s: not s.pane.loading,
            timeout_seconds=2.0,
            on_event=lambda s: seen.append(s.pane.loading),
        )

        self.assertTrue(settled)
        self.assertEqual(seen, [False])
        self.assertEqual(strip_ansi(self.controller.state.pane.lines[0]), "   1 │ alpha")

    def test_deadline_returns_false(self) -> None:
        self.assertFalse(
            run_event_loop(self.controller, self.scheduler, until=lambda s: False, timeout_seconds=0.05)
        )

    def test_slow_result_for_abandoned_target_is_dropped(self) -> None:
        first = self.root / "first.txt"
        second = self.root / "second.txt"
        first.write_text("first\n", encoding="utf-8")
        second.write_text("second\n", encoding="utf-8")
        release = threading.Event()

        stale_tasks = self.controller.select_path(first)
        stale_id = stale_tasks[0].request_id

        def slow() -> FileLoaded:
            release.wait(2.0)
            return FileLoaded(request_id=stale_id, path=first, content="first", mtime_ns=1)

        dispatch(self.scheduler, [Task(name="load-preview", work=slow, request_id=stale_id)])
        run_event_loop(
            self.controller,
            self.scheduler,
            initial_tasks=self.controller.select_path(second),
            until=lambda s: not s.pane.loading,
            timeout_seconds=2.0,
        )
        release.set()
        run_event_loop(self.controller, self.scheduler, timeout_seconds=0.2)

        state = self.controller.state
        self.assertIn("second", state.pane.content)
        self.assertNotIn(first, state.caches.previews)


if __name__ == "__main__":
    unittest.main()
