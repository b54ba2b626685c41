"""Filesystem watch subscription, reload debouncing, and reload loaders.

The watcher wraps one long-lived ``watchfiles.watch`` generator. Each call to
``wait_task`` yields a task that blocks for the next batch of changes and
reports a single ``FsChanged``; the controller re-arms it after every batch.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from pathlib import Path

import watchfiles

from .events import FilesLoaded, FsChanged, TreeLoaded
from .tasks import Task

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({"node_modules", "vendor", "__pycache__"})
WATCH_BATCH_MS = 50


def is_ignored_name(name: str, ignore_dirs: frozenset[str] = IGNORED_DIRS) -> bool:
    return name.startswith(".") or name in ignore_dirs


class PreviewWatchFilter(watchfiles.DefaultFilter):
    """Default watchfiles filter that also skips hidden path components."""

    def __init__(self, root: Path, ignore_dirs: frozenset[str] = IGNORED_DIRS) -> None:
        super().__init__(ignore_dirs=tuple(sorted(set(self.ignore_dirs) | set(ignore_dirs))))
        self._root = root
        self._extra_ignore = ignore_dirs

    def __call__(self, change: watchfiles.Change, path: str) -> bool:
        try:
            parts = Path(path).relative_to(self._root).parts
        except ValueError:
            parts = Path(path).parts
        if any(is_ignored_name(part, self._extra_ignore) for part in parts):
            return False
        return super().__call__(change, path)


class FilesystemWatcher:
    """Single-shot-per-wait subscription to changes under ``root``."""

    def __init__(self, root: Path, ignore_dirs: frozenset[str] = IGNORED_DIRS) -> None:
        self.root = root.resolve()
        self.ignore_dirs = ignore_dirs
        self._stop_event = threading.Event()
        self._changes: Iterator[set[tuple[watchfiles.Change, str]]] | None = None
        self._failed = False

    @property
    def active(self) -> bool:
        return not self._failed and not self._stop_event.is_set()

    def _iterator(self) -> Iterator[set[tuple[watchfiles.Change, str]]]:
        if self._changes is None:
            logger.info("watching %s", self.root)
            self._changes = watchfiles.watch(
                self.root,
                watch_filter=PreviewWatchFilter(self.root, self.ignore_dirs),
                debounce=WATCH_BATCH_MS,
                stop_event=self._stop_event,
            )
        return self._changes

    def wait(self) -> FsChanged | None:
        """Block until the next batch of changes; ``None`` once stopped or failed."""
        if not self.active:
            return None
        try:
            changes = next(self._iterator(), None)
        except (OSError, RuntimeError) as exc:
            logger.warning("filesystem watch stopped: %s", exc)
            self._failed = True
            return None
        if changes is None or self._stop_event.is_set():
            return None
        logger.debug("filesystem batch of %d changes", len(changes))
        return FsChanged()

    def wait_task(self) -> Task:
        return Task(name="fs-watch", work=self.wait)

    def stop(self) -> None:
        self._stop_event.set()


class ReloadDebouncer:
    """Coalesce raw change notifications into one delayed reload.

    The first notification arms the reload; later ones are absorbed until
    ``fire`` runs. The delay is never extended, so a continuous stream of
    changes still reloads at a bounded cadence.
    """

    def __init__(self, delay: float = 0.1) -> None:
        self.delay = delay
        self.scheduled = False

    def notify(self) -> bool:
        if self.scheduled:
            return False
        self.scheduled = True
        return True

    def fire(self) -> None:
        self.scheduled = False


def list_directory(root: Path, show_hidden: bool = False) -> list[Path]:
    """Return the direct children of ``root``, directories first, by name."""
    try:
        children = [child for child in root.iterdir() if show_hidden or not child.name.startswith(".")]
    except OSError as exc:
        logger.debug("cannot list %s: %s", root, exc)
        return []
    return sorted(children, key=lambda p: (not p.is_dir(), p.name.lower()))


def collect_files(root: Path, ignore_dirs: frozenset[str] = IGNORED_DIRS) -> list[str]:
    """Return every non-ignored file under ``root`` as a sorted relative path."""
    out: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [name for name in dirnames if not is_ignored_name(name, ignore_dirs)]
        base = Path(dirpath)
        for name in filenames:
            if name.startswith("."):
                continue
            out.append((base / name).relative_to(root).as_posix())
    out.sort()
    return out


def tree_task(root: Path, generation: int = 0) -> Task:
    return Task(
        name="load-tree",
        work=lambda: TreeLoaded(entries=list_directory(root), generation=generation),
        request_id=generation,
    )


def files_task(root: Path, generation: int = 0) -> Task:
    return Task(
        name="load-files",
        work=lambda: FilesLoaded(files=collect_files(root), generation=generation),
        request_id=generation,
    )


__all__ = [
    "FilesystemWatcher",
    "IGNORED_DIRS",
    "PreviewWatchFilter",
    "ReloadDebouncer",
    "collect_files",
    "files_task",
    "is_ignored_name",
    "list_directory",
    "tree_task",
]
