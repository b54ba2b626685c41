"""Event-loop runtime for the preview pipeline.

Groups the controller, scheduler, and loop. Entry points are imported lazily
so leaf modules (``events``, ``config``) stay importable from ``preview``
without package-import cycles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .controller import PreviewController
    from .tasks import TaskScheduler


def run_event_loop(*args, **kwargs):
    """Lazily import the loop runner to avoid package-import cycles."""
    from .loop import run_event_loop as _run_event_loop

    return _run_event_loop(*args, **kwargs)


def __getattr__(name: str):
    if name == "PreviewController":
        from .controller import PreviewController

        return PreviewController
    if name == "TaskScheduler":
        from .tasks import TaskScheduler

        return TaskScheduler
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["PreviewController", "TaskScheduler", "run_event_loop"]
