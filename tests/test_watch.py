from __future__ import annotations

import tempfile
import threading
import time
import unittest
from pathlib import Path

import watchfiles

from contextui.runtime.config import PreviewSettings
from contextui.runtime.controller import PreviewController
from contextui.runtime.events import DebouncedReload, FsChanged, TaskFailed
from contextui.runtime.loop import run_event_loop
from contextui.runtime.state import REFRESHING_TEXT
from contextui.runtime.tasks import Task, TaskScheduler
from contextui.runtime.watch import (
    FilesystemWatcher,
    PreviewWatchFilter,
    ReloadDebouncer,
    collect_files,
    list_directory,
)
from pipeline_helpers import run_tasks


class _FakeWatcher:
    """Records how often the controller re-arms the watch task."""

    def __init__(self) -> None:
        self.active = True
        self.armed = 0
        self.stopped = False

    def wait_task(self) -> Task:
        self.armed += 1
        return Task(name="fs-watch", work=lambda: None)

    def stop(self) -> None:
        self.stopped = True
        self.active = False


class ReloadDebouncerTests(unittest.TestCase):
    def test_only_first_notification_arms(self) -> None:
        debouncer = ReloadDebouncer(0.1)
        self.assertTrue(debouncer.notify())
        self.assertFalse(debouncer.notify())
        self.assertFalse(debouncer.notify())

    def test_fire_rearms(self) -> None:
        debouncer = ReloadDebouncer(0.1)
        debouncer.notify()
        debouncer.fire()
        self.assertFalse(debouncer.scheduled)
        self.assertTrue(debouncer.notify())


class ControllerReloadTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        (self.root / "src").mkdir()
        (self.root / "src" / "main.py").write_text("print('hi')\n", encoding="utf-8")
        (self.root / "README.md").write_text("# demo\n", encoding="utf-8")
        (self.root / ".hidden").write_text("x\n", encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_burst_schedules_one_reload_and_rearms_each_time(self) -> None:
        watcher = _FakeWatcher()
        controller = PreviewController(self.root, watcher=watcher)
        self.assertEqual([task.name for task in controller.start_watching()], ["fs-watch"])

        scheduled: list[Task] = []
        for _ in range(5):
            scheduled.extend(controller.handle(FsChanged()))

        reloads = [task for task in scheduled if task.name == "debounce-reload"]
        self.assertEqual(len(reloads), 1)
        self.assertAlmostEqual(reloads[0].delay, controller.state.settings.debounce_seconds)
        self.assertEqual(watcher.armed, 6)

    def test_stopped_watcher_is_not_rearmed(self) -> None:
        watcher = _FakeWatcher()
        controller = PreviewController(self.root, watcher=watcher)
        controller.start_watching()
        controller.stop_watching()

        tasks = controller.handle(FsChanged())

        self.assertTrue(watcher.stopped)
        self.assertEqual([task.name for task in tasks], ["debounce-reload"])

    def test_reload_fans_out_and_tracks_pending_loads(self) -> None:
        controller = PreviewController(
            self.root,
            repo_root=self.root,
            registry_loader=lambda root: {"root": root},
        )
        controller.handle(FsChanged())

        tasks = controller.handle(DebouncedReload())

        names = sorted(task.name for task in tasks)
        self.assertEqual(names, ["load-files", "load-git-status", "load-registry", "load-tree"])
        state = controller.state
        self.assertEqual(state.reload_count, 1)
        self.assertEqual(state.pending_loads, 4)
        self.assertEqual(state.loading_message, REFRESHING_TEXT)
        self.assertFalse(state.debouncer.scheduled)

        for task in tasks:
            if task.name == "load-git-status":
                controller.handle(TaskFailed(name=task.name, error="not a git repository", request_id=task.request_id))
            else:
                run_tasks(controller, [task])

        self.assertEqual(state.pending_loads, 0)
        self.assertEqual(state.loading_message, "")
        self.assertEqual(state.files, ["README.md", "src/main.py"])
        self.assertEqual([entry.name for entry in state.tree], ["src", "README.md"])
        self.assertEqual(state.registry, {"root": self.root})

    def test_superseded_reload_results_are_dropped(self) -> None:
        controller = PreviewController(
            self.root,
            repo_root=self.root,
            registry_loader=lambda root: {"root": root},
        )
        state = controller.state
        first = {task.name: task for task in controller.handle(DebouncedReload())}
        second = {task.name: task for task in controller.handle(DebouncedReload())}
        self.assertEqual(state.reload_count, 2)
        self.assertEqual(state.pending_loads, 4)
        self.assertEqual({task.request_id for task in first.values()}, {1})
        self.assertEqual({task.request_id for task in second.values()}, {2})

        (self.root / "late.txt").write_text("x\n", encoding="utf-8")
        run_tasks(controller, [second["load-files"]])
        self.assertEqual(state.pending_loads, 3)
        self.assertIn("late.txt", state.files)

        (self.root / "late.txt").unlink()
        run_tasks(controller, [first["load-files"], first["load-tree"], first["load-registry"]])
        controller.handle(TaskFailed(name="load-git-status", error="timeout", request_id=1))

        self.assertEqual(state.pending_loads, 3)
        self.assertEqual(state.loading_message, REFRESHING_TEXT)
        self.assertIn("late.txt", state.files)
        self.assertEqual(state.tree, [])
        self.assertIsNone(state.registry)

        run_tasks(controller, [second["load-tree"], second["load-registry"]])
        controller.handle(TaskFailed(name="load-git-status", error="timeout", request_id=2))
        self.assertEqual(state.pending_loads, 0)
        self.assertEqual(state.loading_message, "")
        self.assertEqual([entry.name for entry in state.tree], ["src", "README.md"])

    def test_reload_without_repo_or_registry(self) -> None:
        controller = PreviewController(self.root)
        tasks = controller.handle(DebouncedReload())
        self.assertEqual(sorted(task.name for task in tasks), ["load-files", "load-tree"])

    def test_watch_failure_stops_watching(self) -> None:
        controller = PreviewController(self.root, watcher=_FakeWatcher())
        controller.start_watching()
        controller.handle(TaskFailed(name="fs-watch", error="inotify limit"))
        self.assertFalse(controller.state.watching)


class DebounceTimingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        (self.root / "a.txt").write_text("a\n", encoding="utf-8")
        self.scheduler = TaskScheduler(max_workers=2)
        settings = PreviewSettings(debounce_seconds=0.1)
        self.controller = PreviewController(self.root, settings=settings)

    def tearDown(self) -> None:
        self.scheduler.shutdown()
        self._tmp.cleanup()

    def test_burst_inside_window_reloads_once(self) -> None:
        state = self.controller.state
        started = time.monotonic()
        reloaded_at: list[float] = []

        def post_burst() -> None:
            for _ in range(5):
                self.scheduler.post(FsChanged())
                time.sleep(0.01)

        def record(current) -> None:
            if current.reload_count and not reloaded_at:
                reloaded_at.append(time.monotonic())

        poster = threading.Thread(target=post_burst)
        poster.start()
        settled = run_event_loop(
            self.controller,
            self.scheduler,
            until=lambda s: s.reload_count == 1 and s.pending_loads == 0,
            timeout_seconds=2.0,
            on_event=record,
        )
        poster.join()
        self.assertTrue(settled)

        run_event_loop(self.controller, self.scheduler, timeout_seconds=0.3)
        self.assertEqual(state.reload_count, 1)
        elapsed = reloaded_at[0] - started
        self.assertGreaterEqual(elapsed, 0.09)
        self.assertLess(elapsed, 0.4)

    def test_spaced_changes_reload_each_time(self) -> None:
        state = self.controller.state
        for expected in range(1, 4):
            self.scheduler.post(FsChanged())
            settled = run_event_loop(
                self.controller,
                self.scheduler,
                until=lambda s, n=expected: s.reload_count == n and s.pending_loads == 0,
                timeout_seconds=2.0,
            )
            self.assertTrue(settled)
        self.assertEqual(state.reload_count, 3)


class WatchFilterTests(unittest.TestCase):
    def test_hidden_and_ignored_components_are_skipped(self) -> None:
        root = Path("/work/project")
        watch_filter = PreviewWatchFilter(root)

        self.assertTrue(watch_filter(watchfiles.Change.modified, "/work/project/src/app.py"))
        self.assertFalse(watch_filter(watchfiles.Change.modified, "/work/project/.git/index"))
        self.assertFalse(watch_filter(watchfiles.Change.added, "/work/project/node_modules/x/index.js"))
        self.assertFalse(watch_filter(watchfiles.Change.added, "/work/project/src/__pycache__/app.pyc"))
        self.assertFalse(watch_filter(watchfiles.Change.modified, "/work/project/.env"))


class LoaderTests(unittest.TestCase):
    def test_list_directory_and_collect_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "b.txt").write_text("b", encoding="utf-8")
            (root / "A").mkdir()
            (root / "A" / "c.txt").write_text("c", encoding="utf-8")
            (root / "node_modules").mkdir()
            (root / "node_modules" / "dep.js").write_text("", encoding="utf-8")

            self.assertEqual([p.name for p in list_directory(root)], ["A", "node_modules", "b.txt"])
            self.assertEqual(collect_files(root), ["A/c.txt", "b.txt"])
            self.assertEqual(list_directory(root / "missing"), [])


class FilesystemWatcherTests(unittest.TestCase):
    def test_stopped_watcher_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            watcher = FilesystemWatcher(Path(tmp))
            watcher.stop()
            self.assertFalse(watcher.active)
            self.assertIsNone(watcher.wait())

    def test_reports_real_change(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            watcher = FilesystemWatcher(root)
            result: list[object] = []
            waiter = threading.Thread(target=lambda: result.append(watcher.wait()))
            waiter.start()
            try:
                deadline = time.monotonic() + 5.0
                while not result and time.monotonic() < deadline:
                    (root / "touched.txt").write_text(str(time.monotonic()), encoding="utf-8")
                    waiter.join(timeout=0.2)
            finally:
                watcher.stop()
                waiter.join(timeout=5.0)
            self.assertTrue(result)
            self.assertIsInstance(result[0], FsChanged)


if __name__ == "__main__":
    unittest.main()
