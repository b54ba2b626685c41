"""Preview payload loaders and the cache tiers that hold their results.

Loaders (``text``, ``diff``, ``images``) are pure functions run off the event
loop; ``cache`` and ``types`` hold what the loop keeps between selections.
"""

from __future__ import annotations

from .cache import Cache, CacheEntry, PreviewCaches
from .types import IMAGE_VIEWPORT_TOLERANCE, CachedImage, DiffCacheKey, DiffContext, ImageValidity

__all__ = [
    "IMAGE_VIEWPORT_TOLERANCE",
    "Cache",
    "CacheEntry",
    "CachedImage",
    "DiffCacheKey",
    "DiffContext",
    "ImageValidity",
    "PreviewCaches",
]
