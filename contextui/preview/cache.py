"""In-memory cache tiers for rendered previews.

One generic ``Cache`` class backs all three tiers (plain previews, diffs,
images). The store only maps keys to entries; deciding whether an entry is
still valid is the caller's job, since each tier has its own staleness rule.
Nothing is persisted and nothing expires on its own.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, TypeVar

from .types import CachedImage, DiffCacheKey, DiffContext, ImageValidity

logger = logging.getLogger(__name__)

K = TypeVar("K")
E = TypeVar("E")
V = TypeVar("V")
T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[V, T]):
    """Rendered payload plus the validity token it was produced under."""

    content: V
    validity: T


class Cache(Generic[K, E]):
    """Key/value store with optional LRU capping.

    ``max_entries=None`` keeps every entry until it is overwritten or the
    process exits.
    """

    def __init__(self, name: str, max_entries: int | None = None) -> None:
        self.name = name
        self.max_entries = max_entries
        self._entries: OrderedDict[K, E] = OrderedDict()

    def get(self, key: K) -> E | None:
        """Return the stored entry for ``key`` or ``None`` on a miss."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("%s cache miss: %s", self.name, key)
            return None
        if self.max_entries is not None:
            self._entries.move_to_end(key)
        return entry

    def put(self, key: K, entry: E) -> None:
        """Insert or overwrite ``key`` and evict the oldest overflow entries."""
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self.max_entries is None:
            return
        while len(self._entries) > max(1, self.max_entries):
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("%s cache evicted: %s", self.name, evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


PreviewEntry = CacheEntry[str, int]
DiffEntry = CacheEntry[str, "int | None"]
ImageEntry = CacheEntry[CachedImage, ImageValidity]


@dataclass
class PreviewCaches:
    """The three cache tiers owned by the event loop."""

    max_entries: int | None = None
    previews: Cache[Path, PreviewEntry] = field(init=False)
    diffs: Cache[DiffCacheKey, DiffEntry] = field(init=False)
    images: Cache[Path, ImageEntry] = field(init=False)

    def __post_init__(self) -> None:
        self.previews = Cache("preview", self.max_entries)
        self.diffs = Cache("diff", self.max_entries)
        self.images = Cache("image", self.max_entries)

    def best_diff(
        self,
        path: Path,
        staged: bool,
        mtime_ns: int | None,
    ) -> tuple[DiffContext, DiffEntry] | None:
        """Return the full-context entry when valid, else a valid quick one.

        An entry is valid only when it was loaded under exactly ``mtime_ns``.
        """
        for context in (DiffContext.FULL, DiffContext.QUICK):
            entry = self.diffs.get(DiffCacheKey(path=path, staged=staged, context=context))
            if entry is not None and entry.validity == mtime_ns:
                return context, entry
        return None

    def clear(self) -> None:
        self.previews.clear()
        self.diffs.clear()
        self.images.clear()


__all__ = [
    "Cache",
    "CacheEntry",
    "DiffEntry",
    "ImageEntry",
    "PreviewCaches",
    "PreviewEntry",
]
