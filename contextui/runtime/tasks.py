"""Background task scheduling and request-id bookkeeping.

Work runs on a small thread pool and reports back through one unbounded
queue that the main loop drains one event at a time. Started work is never
cancelled; superseded results are recognized by request id and dropped by
the loop instead.
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from queue import Empty, Queue

from .events import Event, TaskFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Task:
    """One unit of background work.

    ``work`` must only use values captured when the task was built and
    return a single event (or ``None`` when there is nothing to report).
    """

    name: str
    work: Callable[[], Event | None]
    delay: float = 0.0
    request_id: int | None = None


class RequestKind(enum.Enum):
    PREVIEW = "preview"
    DIFF = "diff"
    IMAGE = "image"
    OVERLAY = "overlay"


class RequestTracker:
    """Issue strictly increasing request ids, one live id per target kind.

    Starting a request retires the live ids of every other kind as well, so a
    new preview target invalidates all loads issued for the previous one.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._active: dict[RequestKind, int] = {}

    def begin(self, kind: RequestKind, *, retire_others: bool = True) -> int:
        request_id = next(self._counter)
        if retire_others:
            self._active.clear()
        self._active[kind] = request_id
        return request_id

    def active(self, kind: RequestKind) -> int | None:
        return self._active.get(kind)

    def is_current(self, kind: RequestKind, request_id: int) -> bool:
        return self._active.get(kind) == request_id

    def is_stale(self, kind: RequestKind, request_id: int) -> bool:
        return not self.is_current(kind, request_id)

    def retire(self, kind: RequestKind) -> None:
        self._active.pop(kind, None)


class TaskScheduler:
    """Run tasks off the main loop and collect their events in arrival order."""

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="contextui-task",
        )
        self._events: Queue[Event] = Queue()
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()
        self._closed = False

    def _run(self, task: Task) -> None:
        try:
            event = task.work()
        except Exception as exc:
            logger.exception("task %s failed", task.name)
            event = TaskFailed(name=task.name, error=str(exc) or type(exc).__name__, request_id=task.request_id)
        if event is not None:
            self._events.put(event)

    def _submit(self, task: Task) -> Future[None] | None:
        with self._lock:
            if self._closed:
                return None
            return self._executor.submit(self._run, task)

    def schedule(self, task: Task) -> Future[None] | threading.Timer | None:
        """Start ``task`` without blocking and return a handle to it.

        Delayed tasks return their armed timer; the task is submitted to the
        pool when it fires. Returns ``None`` after ``shutdown``.
        """
        if task.delay <= 0:
            return self._submit(task)

        def fire() -> None:
            with self._lock:
                self._timers.discard(timer)
            self._submit(task)

        timer = threading.Timer(task.delay, fire)
        timer.daemon = True
        with self._lock:
            if self._closed:
                return None
            self._timers.add(timer)
        timer.start()
        return timer

    def schedule_all(self, tasks: list[Task]) -> None:
        for task in tasks:
            self.schedule(task)

    def post(self, event: Event) -> None:
        """Enqueue an event produced outside the pool (input layer, tests)."""
        self._events.put(event)

    def next_event(self, timeout: float | None = None) -> Event | None:
        """Return the next event, waiting up to ``timeout`` seconds."""
        try:
            if timeout is not None and timeout <= 0:
                return self._events.get_nowait()
            return self._events.get(timeout=timeout)
        except Empty:
            return None

    def drain_events(self) -> list[Event]:
        out: list[Event] = []
        while True:
            try:
                out.append(self._events.get_nowait())
            except Empty:
                break
        return out

    def shutdown(self) -> None:
        """Cancel armed timers and stop accepting work; running tasks finish alone."""
        with self._lock:
            self._closed = True
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["RequestKind", "RequestTracker", "Task", "TaskScheduler"]
