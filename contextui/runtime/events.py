"""Completion events delivered to the main loop.

Background tasks never touch live state; each produces exactly one of these
values. Events for a preview target carry the request id they were issued
under so the loop can drop results for targets the user already left.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from ..git import GitChange
from ..preview.types import DiffContext


@dataclass(frozen=True)
class FileLoaded:
    """Plain (highlighted) file preview. ``mtime_ns`` is ``None`` on read errors."""

    request_id: int
    path: Path
    content: str
    mtime_ns: int | None = None


@dataclass(frozen=True)
class DiffLoaded:
    """One phase of a progressive diff load."""

    request_id: int
    path: Path
    staged: bool
    context: DiffContext
    content: str
    mtime_ns: int | None = None
    available: bool = True


@dataclass(frozen=True)
class ImageLoaded:
    """Block-character image render, or an error in place of one."""

    request_id: int
    path: Path
    width: int = 0
    height: int = 0
    render_w: int = 0
    render_h: int = 0
    render_data: str = ""
    mtime_ns: int | None = None
    viewport_w: int = 0
    viewport_h: int = 0
    error: str | None = None


@dataclass(frozen=True)
class OverlayLoaded:
    """Full-screen kitty overlay escape sequences for one image."""

    request_id: int
    path: Path
    payload: str = ""
    error: str | None = None


@dataclass(frozen=True)
class FsChanged:
    """Raw "something changed" notification from the filesystem watcher."""


@dataclass(frozen=True)
class DebouncedReload:
    """Fires once per debounce window to trigger the actual reload."""


@dataclass(frozen=True)
class TreeLoaded:
    """Reload results carry the reload generation that requested them."""

    entries: list[Path] = field(default_factory=list)
    generation: int = 0


@dataclass(frozen=True)
class FilesLoaded:
    files: list[str] = field(default_factory=list)
    generation: int = 0


@dataclass(frozen=True)
class RegistryLoaded:
    registry: object = None
    generation: int = 0


@dataclass(frozen=True)
class GitStatusLoaded:
    changes: list[GitChange] = field(default_factory=list)
    generation: int = 0


@dataclass(frozen=True)
class TaskFailed:
    """A task raised instead of returning its event."""

    name: str
    error: str
    request_id: int | None = None


Event = Union[
    FileLoaded,
    DiffLoaded,
    ImageLoaded,
    OverlayLoaded,
    FsChanged,
    DebouncedReload,
    TreeLoaded,
    FilesLoaded,
    RegistryLoaded,
    GitStatusLoaded,
    TaskFailed,
]

__all__ = [
    "DebouncedReload",
    "DiffLoaded",
    "Event",
    "FileLoaded",
    "FilesLoaded",
    "FsChanged",
    "GitStatusLoaded",
    "ImageLoaded",
    "OverlayLoaded",
    "RegistryLoaded",
    "TaskFailed",
    "TreeLoaded",
]
