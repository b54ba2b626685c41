"""Preview controller: turns selections and completion events into state.

Every operation runs on the loop thread, mutates ``PreviewState`` and returns
the tasks that still need to run. Nothing here blocks on I/O beyond a
``stat`` call; rendering and git work happen inside the returned tasks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from ..git import GitChange, load_changes
from ..preview.cache import CacheEntry, PreviewCaches
from ..preview.diff import NO_DIFF_TEXT, load_diff_preview
from ..preview.filetype import FileKind, detect_image_format, detect_kind
from ..preview.images import KITTY_CLEAR_IMAGES, load_image, load_image_overlay
from ..preview.text import load_file_preview, stat_mtime_ns
from ..preview.types import CachedImage, DiffCacheKey, DiffContext, ImageValidity
from ..terminal import TerminalCapabilities
from .config import PreviewSettings
from .events import (
    DebouncedReload,
    DiffLoaded,
    Event,
    FileLoaded,
    FilesLoaded,
    FsChanged,
    GitStatusLoaded,
    ImageLoaded,
    OverlayLoaded,
    RegistryLoaded,
    TaskFailed,
    TreeLoaded,
)
from .state import REFRESHING_TEXT, DiffTarget, PreviewState, ViewMode
from .tasks import RequestKind, Task
from .watch import FilesystemWatcher, ReloadDebouncer, files_task, tree_task

logger = logging.getLogger(__name__)

RELOAD_TASK_NAMES = frozenset({"load-tree", "load-files", "load-registry", "load-git-status"})


def image_view_text(path: Path, image: CachedImage) -> str:
    """Pane text for a rendered image: one info line, a blank line, the blocks."""
    image_format = detect_image_format(path)
    label = image_format.label if image_format is not None else "Image"
    return f"{path.name}  {image.width}x{image.height} {label}\n\n{image.render_data}"


class PreviewController:
    def __init__(
        self,
        root: Path,
        *,
        settings: PreviewSettings | None = None,
        capabilities: TerminalCapabilities | None = None,
        repo_root: Path | None = None,
        watcher: FilesystemWatcher | None = None,
        registry_loader: Callable[[Path], object] | None = None,
        viewport: tuple[int, int] = (80, 24),
        screen: tuple[int, int] | None = None,
    ) -> None:
        settings = settings or PreviewSettings()
        self.state = PreviewState(
            root=root.resolve(),
            settings=settings,
            capabilities=capabilities or TerminalCapabilities(),
            repo_root=repo_root,
            caches=PreviewCaches(max_entries=settings.cache_max_entries),
            debouncer=ReloadDebouncer(settings.debounce_seconds),
        )
        self.state.viewport_w, self.state.viewport_h = viewport
        self.state.screen_w, self.state.screen_h = screen or viewport
        self.watcher = watcher
        self.registry_loader = registry_loader
        self._handlers: dict[type, Callable[[Event], list[Task]]] = {
            FileLoaded: self._on_file_loaded,
            DiffLoaded: self._on_diff_loaded,
            ImageLoaded: self._on_image_loaded,
            OverlayLoaded: self._on_overlay_loaded,
            FsChanged: self._on_fs_changed,
            DebouncedReload: self._on_debounced_reload,
            TreeLoaded: self._on_tree_loaded,
            FilesLoaded: self._on_files_loaded,
            RegistryLoaded: self._on_registry_loaded,
            GitStatusLoaded: self._on_git_status_loaded,
            TaskFailed: self._on_task_failed,
        }

    # Selection

    def _reset_target(self, path: Path | None, kind: FileKind | None) -> None:
        state = self.state
        state.target = path
        state.target_kind = kind
        state.diff_target = None
        state.displayed_context = None
        state.pending_full_diff = None
        state.current_image = None
        state.status_message = ""

    def select_path(self, path: Path) -> list[Task]:
        """Show ``path`` in the preview pane, loading it only on a cache miss."""
        state = self.state
        if state.mode is ViewMode.IMAGE_OVERLAY:
            state.pending_terminal_output += self.close_image_overlay()
        state.mode = ViewMode.BROWSE
        path = path if path.is_absolute() else state.root / path

        if path.is_dir():
            state.requests.begin(RequestKind.PREVIEW)
            self._reset_target(path, None)
            state.pane.set_content(f"Directory: {path.name}")
            state.pane.loading = False
            return []

        kind = detect_kind(path)
        if kind is FileKind.IMAGE:
            return self._select_image(path)
        if kind is FileKind.BINARY:
            state.requests.begin(RequestKind.PREVIEW)
            self._reset_target(path, kind)
            state.pane.set_content(f"Binary file: {path.name}")
            state.pane.loading = False
            return []
        return self._select_text(path)

    def _select_text(self, path: Path) -> list[Task]:
        state = self.state
        request_id = state.requests.begin(RequestKind.PREVIEW)
        self._reset_target(path, FileKind.TEXT)

        entry = state.caches.previews.get(path)
        mtime_ns = stat_mtime_ns(path)
        if entry is not None and mtime_ns is not None and entry.validity == mtime_ns:
            logger.debug("preview cache hit: %s", path)
            state.pane.set_content(entry.content)
            state.pane.loading = False
            return []

        state.pane.show_loading()
        width = state.viewport_w
        settings = state.settings
        return [
            Task(
                name="load-preview",
                work=lambda: load_file_preview(path, width, request_id, settings),
                request_id=request_id,
            )
        ]

    def _select_image(self, path: Path) -> list[Task]:
        state = self.state
        request_id = state.requests.begin(RequestKind.IMAGE)
        self._reset_target(path, FileKind.IMAGE)

        viewport_w, viewport_h = state.viewport_w, state.viewport_h
        entry = state.caches.images.get(path)
        if entry is not None and entry.validity.matches(
            stat_mtime_ns(path),
            viewport_w,
            viewport_h,
            tolerance=state.settings.image_viewport_tolerance,
        ):
            logger.debug("image cache hit: %s", path)
            state.current_image = entry.content
            state.pane.set_content(image_view_text(path, entry.content))
            state.pane.loading = False
            return []

        state.pane.show_loading()
        capabilities = state.capabilities
        return [
            Task(
                name="load-image",
                work=lambda: load_image(path, capabilities, viewport_w, viewport_h, request_id),
                request_id=request_id,
            )
        ]

    def _diff_task(self, target: DiffTarget, context: DiffContext, request_id: int) -> Task:
        state = self.state
        repo_root = state.repo_root
        assert repo_root is not None
        rel_path = target.path.relative_to(repo_root).as_posix()
        context_lines = (
            state.settings.quick_diff_context if context is DiffContext.QUICK else state.settings.full_diff_context
        )
        width = state.viewport_w
        timeout = state.settings.git_timeout_seconds
        return Task(
            name=f"load-diff-{context.value}",
            work=lambda: load_diff_preview(
                repo_root,
                rel_path,
                target.staged,
                context,
                context_lines,
                width,
                request_id,
                timeout,
            ),
            request_id=request_id,
        )

    def select_git_change(self, change: GitChange) -> list[Task]:
        """Show the diff for ``change``: cached full, cached quick plus upgrade, or quick load.

        Untracked files have no diff and load as a plain preview instead.
        """
        state = self.state
        if state.mode is ViewMode.IMAGE_OVERLAY:
            state.pending_terminal_output += self.close_image_overlay()
        state.mode = ViewMode.GIT_STATUS
        if state.repo_root is None:
            state.requests.begin(RequestKind.DIFF)
            self._reset_target(None, None)
            state.pane.set_content(NO_DIFF_TEXT)
            state.pane.loading = False
            return []

        path = state.repo_root / change.path
        if change.untracked:
            return self._select_text(path)

        request_id = state.requests.begin(RequestKind.DIFF)
        self._reset_target(path, FileKind.TEXT)
        target = DiffTarget(path=path, staged=change.staged)
        state.diff_target = target

        cached = state.caches.best_diff(path, change.staged, stat_mtime_ns(path))
        if cached is not None:
            context, entry = cached
            state.pane.set_content(entry.content)
            state.pane.loading = False
            state.displayed_context = context
            if context is DiffContext.FULL:
                return []
            state.pending_full_diff = target
            return [self._diff_task(target, DiffContext.FULL, request_id)]

        state.pane.show_loading()
        return [self._diff_task(target, DiffContext.QUICK, request_id)]

    def reselect(self) -> list[Task]:
        """Re-run selection for the current target; cache hits schedule nothing."""
        state = self.state
        if state.diff_target is not None and state.repo_root is not None:
            rel_path = state.diff_target.path.relative_to(state.repo_root).as_posix()
            return self.select_git_change(GitChange(path=rel_path, status="M", staged=state.diff_target.staged))
        if state.target is not None:
            if state.mode is ViewMode.GIT_STATUS and state.repo_root is not None:
                rel_path = state.target.relative_to(state.repo_root).as_posix()
                return self.select_git_change(GitChange(path=rel_path, status="?", staged=False))
            return self.select_path(state.target)
        return []

    def resize(
        self,
        viewport_w: int,
        viewport_h: int,
        screen_w: int | None = None,
        screen_h: int | None = None,
    ) -> list[Task]:
        """Record new pane/screen sizes; images re-render only past the tolerance."""
        state = self.state
        state.viewport_w, state.viewport_h = viewport_w, viewport_h
        if screen_w is not None and screen_h is not None:
            state.screen_w, state.screen_h = screen_w, screen_h
        if state.target_kind is FileKind.IMAGE and state.target is not None and state.mode is not ViewMode.IMAGE_OVERLAY:
            return self._select_image(state.target)
        return []

    # Overlay

    def open_image_overlay(self) -> list[Task]:
        """Start the full-screen kitty overlay for the selected image."""
        state = self.state
        if state.target_kind is not FileKind.IMAGE or state.target is None:
            return []
        if not state.capabilities.kitty:
            state.status_message = "Image overlay needs a kitty graphics terminal"
            return []
        if state.mode is not ViewMode.IMAGE_OVERLAY:
            state.overlay_return_mode = state.mode
        request_id = state.requests.begin(RequestKind.OVERLAY, retire_others=False)
        state.mode = ViewMode.IMAGE_OVERLAY
        state.overlay_payload = ""
        path = state.target
        screen_w, screen_h = state.screen_w, state.screen_h
        return [
            Task(
                name="load-overlay",
                work=lambda: load_image_overlay(path, screen_w, screen_h, request_id),
                request_id=request_id,
            )
        ]

    def close_image_overlay(self) -> str:
        """Leave overlay mode and return the sequence that erases kitty images."""
        state = self.state
        if state.mode is not ViewMode.IMAGE_OVERLAY:
            return ""
        state.requests.retire(RequestKind.OVERLAY)
        state.mode = state.overlay_return_mode
        state.overlay_payload = ""
        return KITTY_CLEAR_IMAGES

    def take_terminal_output(self) -> str:
        """Return and clear escape sequences queued while changing targets."""
        state = self.state
        output, state.pending_terminal_output = state.pending_terminal_output, ""
        return output

    # Watching

    def start_watching(self) -> list[Task]:
        if self.watcher is None:
            return []
        self.state.watching = True
        return [self.watcher.wait_task()]

    def stop_watching(self) -> None:
        self.state.watching = False
        if self.watcher is not None:
            self.watcher.stop()

    def reload_tasks(self) -> list[Task]:
        """Loader tasks for one reload, tagged with the current reload generation."""
        state = self.state
        generation = state.reload_count
        tasks = [tree_task(state.root, generation), files_task(state.root, generation)]
        if self.registry_loader is not None:
            loader, root = self.registry_loader, state.root
            tasks.append(
                Task(
                    name="load-registry",
                    work=lambda: RegistryLoaded(registry=loader(root), generation=generation),
                    request_id=generation,
                )
            )
        if state.repo_root is not None:
            repo_root, timeout = state.repo_root, state.settings.git_timeout_seconds
            tasks.append(
                Task(
                    name="load-git-status",
                    work=lambda: GitStatusLoaded(changes=load_changes(repo_root, timeout), generation=generation),
                    request_id=generation,
                )
            )
        return tasks

    # Events

    def handle(self, event: Event) -> list[Task]:
        """Apply one completion event and return follow-up tasks."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("unhandled event %r", event)
            return []
        return handler(event)

    def _stale(self, kind: RequestKind, request_id: int) -> bool:
        if self.state.requests.is_stale(kind, request_id):
            logger.debug("dropping stale %s result %d", kind.value, request_id)
            return True
        return False

    def _on_file_loaded(self, event: FileLoaded) -> list[Task]:
        if self._stale(RequestKind.PREVIEW, event.request_id):
            return []
        state = self.state
        if event.mtime_ns is not None:
            state.caches.previews.put(event.path, CacheEntry(event.content, event.mtime_ns))
        state.pane.set_content(event.content)
        state.pane.loading = False
        return []

    def _on_diff_loaded(self, event: DiffLoaded) -> list[Task]:
        if self._stale(RequestKind.DIFF, event.request_id):
            return []
        state = self.state
        target = DiffTarget(path=event.path, staged=event.staged)
        if state.diff_target != target:
            return []

        key_context = event.context
        if key_context is DiffContext.QUICK:
            if state.displayed_context is DiffContext.FULL:
                logger.debug("ignoring quick diff after full for %s", event.path)
                return []
            if event.available:
                state.caches.diffs.put(self._diff_key(target, key_context), CacheEntry(event.content, event.mtime_ns))
            state.pane.set_content(event.content)
            state.pane.loading = False
            state.displayed_context = DiffContext.QUICK
            if not event.available:
                return []
            state.pending_full_diff = target
            return [self._diff_task(target, DiffContext.FULL, event.request_id)]

        if state.pending_full_diff != target:
            return []
        state.pending_full_diff = None
        if not event.available:
            logger.debug("full diff unavailable for %s, keeping quick view", event.path)
            return []
        state.caches.diffs.put(self._diff_key(target, key_context), CacheEntry(event.content, event.mtime_ns))
        state.pane.set_content(event.content, keep_offset=True)
        state.pane.loading = False
        state.displayed_context = DiffContext.FULL
        return []

    @staticmethod
    def _diff_key(target: DiffTarget, context: DiffContext) -> DiffCacheKey:
        return DiffCacheKey(path=target.path, staged=target.staged, context=context)

    def _on_image_loaded(self, event: ImageLoaded) -> list[Task]:
        if self._stale(RequestKind.IMAGE, event.request_id):
            return []
        state = self.state
        state.pane.loading = False
        if event.error is not None:
            state.current_image = None
            state.pane.set_content(f"Error: {event.error}")
            return []

        image = CachedImage(
            render_data=event.render_data,
            width=event.width,
            height=event.height,
            render_w=event.render_w,
            render_h=event.render_h,
        )
        if event.mtime_ns is not None:
            validity = ImageValidity(event.mtime_ns, event.viewport_w, event.viewport_h)
            state.caches.images.put(event.path, CacheEntry(image, validity))
        state.current_image = image
        state.pane.set_content(image_view_text(event.path, image))
        return []

    def _on_overlay_loaded(self, event: OverlayLoaded) -> list[Task]:
        state = self.state
        if state.mode is not ViewMode.IMAGE_OVERLAY or self._stale(RequestKind.OVERLAY, event.request_id):
            return []
        if event.error is not None:
            state.status_message = f"Error: {event.error}"
            state.requests.retire(RequestKind.OVERLAY)
            state.mode = state.overlay_return_mode
            return []
        state.overlay_payload = event.payload
        return []

    def _on_fs_changed(self, event: FsChanged) -> list[Task]:
        state = self.state
        tasks: list[Task] = []
        if state.watching and self.watcher is not None and self.watcher.active:
            tasks.append(self.watcher.wait_task())
        if state.debouncer.notify():
            tasks.append(Task(name="debounce-reload", work=DebouncedReload, delay=state.debouncer.delay))
        return tasks

    def _on_debounced_reload(self, event: DebouncedReload) -> list[Task]:
        state = self.state
        state.debouncer.fire()
        state.reload_count += 1
        tasks = self.reload_tasks()
        state.pending_loads = len(tasks)
        state.loading_message = REFRESHING_TEXT
        return tasks

    def _stale_reload(self, generation: int | None, name: str) -> bool:
        if generation != self.state.reload_count:
            logger.debug("dropping %s result from superseded reload %s", name, generation)
            return True
        return False

    def _finish_reload_load(self) -> None:
        state = self.state
        if state.pending_loads > 0:
            state.pending_loads -= 1
        if state.pending_loads == 0:
            state.loading_message = ""

    def _on_tree_loaded(self, event: TreeLoaded) -> list[Task]:
        if self._stale_reload(event.generation, "load-tree"):
            return []
        self.state.tree = list(event.entries)
        self._finish_reload_load()
        return []

    def _on_files_loaded(self, event: FilesLoaded) -> list[Task]:
        if self._stale_reload(event.generation, "load-files"):
            return []
        self.state.files = list(event.files)
        self._finish_reload_load()
        return []

    def _on_registry_loaded(self, event: RegistryLoaded) -> list[Task]:
        if self._stale_reload(event.generation, "load-registry"):
            return []
        self.state.registry = event.registry
        self._finish_reload_load()
        return []

    def _on_git_status_loaded(self, event: GitStatusLoaded) -> list[Task]:
        if self._stale_reload(event.generation, "load-git-status"):
            return []
        self.state.git_changes = list(event.changes)
        self._finish_reload_load()
        return []

    def _on_task_failed(self, event: TaskFailed) -> list[Task]:
        state = self.state
        if event.name in RELOAD_TASK_NAMES:
            if not self._stale_reload(event.request_id, event.name):
                self._finish_reload_load()
            return []
        if event.name == "fs-watch":
            state.watching = False
            return []
        if event.request_id is None:
            return []
        kind = next((k for k in RequestKind if state.requests.is_current(k, event.request_id)), None)
        if kind is None:
            logger.debug("dropping stale failure from %s", event.name)
            return []
        if kind is RequestKind.OVERLAY:
            state.status_message = f"Error: {event.error}"
            state.requests.retire(RequestKind.OVERLAY)
            if state.mode is ViewMode.IMAGE_OVERLAY:
                state.mode = state.overlay_return_mode
            return []
        state.pending_full_diff = None
        state.pane.set_content(f"Error: {event.error}")
        state.pane.loading = False
        return []


__all__ = ["PreviewController", "image_view_text"]
