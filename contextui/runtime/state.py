"""Mutable preview state owned by the event loop.

Only the controller running on the loop thread mutates these objects;
background tasks see copies of the values they were built with.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from ..git import GitChange
from ..preview.cache import PreviewCaches
from ..preview.filetype import FileKind
from ..preview.types import CachedImage, DiffContext
from ..terminal import TerminalCapabilities
from .config import PreviewSettings
from .tasks import RequestTracker
from .watch import ReloadDebouncer

LOADING_TEXT = "Loading..."
REFRESHING_TEXT = "Refreshing..."


class ViewMode(enum.Enum):
    BROWSE = "browse"
    GIT_STATUS = "git_status"
    IMAGE_OVERLAY = "image_overlay"


@dataclass
class PreviewPane:
    """Rendered text of the preview pane plus its scroll position."""

    content: str = ""
    lines: list[str] = field(default_factory=lambda: [""])
    y_offset: int = 0
    loading: bool = False

    @property
    def max_offset(self) -> int:
        return max(0, len(self.lines) - 1)

    def set_content(self, text: str, keep_offset: bool = False) -> None:
        """Replace pane text; the scroll offset resets unless ``keep_offset``."""
        offset = self.y_offset
        self.content = text
        self.lines = text.split("\n")
        self.y_offset = min(offset, self.max_offset) if keep_offset else 0

    def show_loading(self) -> None:
        self.set_content(LOADING_TEXT)
        self.loading = True

    def scroll(self, delta: int) -> int:
        self.y_offset = max(0, min(self.max_offset, self.y_offset + delta))
        return self.y_offset


@dataclass(frozen=True)
class DiffTarget:
    path: Path
    staged: bool


@dataclass
class PreviewState:
    root: Path
    settings: PreviewSettings = field(default_factory=PreviewSettings)
    capabilities: TerminalCapabilities = field(default_factory=TerminalCapabilities)
    repo_root: Path | None = None
    mode: ViewMode = ViewMode.BROWSE
    overlay_return_mode: ViewMode = ViewMode.BROWSE
    pane: PreviewPane = field(default_factory=PreviewPane)
    caches: PreviewCaches = field(default_factory=PreviewCaches)
    requests: RequestTracker = field(default_factory=RequestTracker)
    viewport_w: int = 80
    viewport_h: int = 24
    screen_w: int = 80
    screen_h: int = 24

    target: Path | None = None
    target_kind: FileKind | None = None
    diff_target: DiffTarget | None = None
    displayed_context: DiffContext | None = None
    pending_full_diff: DiffTarget | None = None
    current_image: CachedImage | None = None
    overlay_payload: str = ""
    pending_terminal_output: str = ""
    status_message: str = ""

    debouncer: ReloadDebouncer = field(default_factory=ReloadDebouncer)
    watching: bool = False
    loading_message: str = ""
    pending_loads: int = 0
    tree: list[Path] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    registry: object = None
    git_changes: list[GitChange] = field(default_factory=list)
    reload_count: int = 0


__all__ = [
    "DiffTarget",
    "LOADING_TEXT",
    "PreviewPane",
    "PreviewState",
    "REFRESHING_TEXT",
    "ViewMode",
]
