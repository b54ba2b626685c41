"""Shared value types for preview caching and diff loading."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

IMAGE_VIEWPORT_TOLERANCE = 5


class DiffContext(enum.Enum):
    """Context-size class of a diff: a fast small-context pass or the full file."""

    QUICK = "quick"
    FULL = "full"


@dataclass(frozen=True)
class DiffCacheKey:
    """Two independent entries may exist per file, one per context class."""

    path: Path
    staged: bool
    context: DiffContext


@dataclass(frozen=True)
class ImageValidity:
    """Source mtime plus the pane size an image was rendered for."""

    mtime_ns: int
    viewport_w: int
    viewport_h: int

    def matches(
        self,
        mtime_ns: int | None,
        viewport_w: int,
        viewport_h: int,
        tolerance: int = IMAGE_VIEWPORT_TOLERANCE,
    ) -> bool:
        """Return whether a cached render may be reused for the current pane.

        The mtime must match exactly; each viewport dimension may drift by at
        most ``tolerance`` cells.
        """
        if mtime_ns is None or mtime_ns != self.mtime_ns:
            return False
        return (
            abs(self.viewport_w - viewport_w) <= tolerance
            and abs(self.viewport_h - viewport_h) <= tolerance
        )


@dataclass(frozen=True)
class CachedImage:
    """Pre-rendered block-character image plus its dimensions."""

    render_data: str
    width: int
    height: int
    render_w: int
    render_h: int


__all__ = [
    "IMAGE_VIEWPORT_TOLERANCE",
    "CachedImage",
    "DiffCacheKey",
    "DiffContext",
    "ImageValidity",
]
