"""Single-threaded event loop driving the preview controller.

Events are processed strictly in arrival order, one at a time. The loop is
the only code that calls into the controller, so controller state needs no
locking.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .controller import PreviewController
from .state import PreviewState
from .tasks import Task, TaskScheduler

logger = logging.getLogger(__name__)


def dispatch(scheduler: TaskScheduler, tasks: list[Task]) -> int:
    """Schedule ``tasks`` and return how many were handed to the scheduler."""
    for task in tasks:
        logger.debug("scheduling %s (request %s)", task.name, task.request_id)
    scheduler.schedule_all(tasks)
    return len(tasks)


def run_event_loop(
    controller: PreviewController,
    scheduler: TaskScheduler,
    *,
    initial_tasks: list[Task] | None = None,
    until: Callable[[PreviewState], bool] | None = None,
    timeout_seconds: float | None = None,
    poll_seconds: float = 0.05,
    on_event: Callable[[PreviewState], None] | None = None,
) -> bool:
    """Drain events into ``controller`` until ``until(state)`` holds.

    Returns ``True`` when the predicate was satisfied and ``False`` when the
    deadline passed first. Without ``until`` the loop runs until the deadline
    or ``KeyboardInterrupt``.
    """
    state = controller.state
    dispatch(scheduler, initial_tasks or [])
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds

    while True:
        if until is not None and until(state):
            return True
        wait = poll_seconds
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            wait = min(wait, remaining)

        event = scheduler.next_event(timeout=wait)
        if event is None:
            continue
        dispatch(scheduler, controller.handle(event))
        if on_event is not None:
            on_event(state)


__all__ = ["dispatch", "run_event_loop"]
