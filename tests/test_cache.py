from __future__ import annotations

import unittest
from pathlib import Path

from contextui.preview.cache import Cache, CacheEntry, PreviewCaches
from contextui.preview.types import CachedImage, DiffCacheKey, DiffContext, ImageValidity


class CacheTests(unittest.TestCase):
    def test_get_miss_returns_none_and_put_overwrites(self) -> None:
        cache: Cache[str, CacheEntry[str, int]] = Cache("preview")

        self.assertIsNone(cache.get("a"))
        cache.put("a", CacheEntry("one", 1))
        cache.put("a", CacheEntry("two", 2))

        self.assertEqual(cache.get("a"), CacheEntry("two", 2))
        self.assertEqual(len(cache), 1)
        self.assertIn("a", cache)

    def test_unbounded_cache_keeps_every_entry(self) -> None:
        cache: Cache[int, CacheEntry[str, int]] = Cache("preview")
        for index in range(500):
            cache.put(index, CacheEntry(str(index), index))

        self.assertEqual(len(cache), 500)
        self.assertEqual(cache.get(0), CacheEntry("0", 0))

    def test_capped_cache_evicts_least_recently_used(self) -> None:
        cache: Cache[str, CacheEntry[str, int]] = Cache("diff", max_entries=2)
        cache.put("a", CacheEntry("a", 1))
        cache.put("b", CacheEntry("b", 1))
        cache.get("a")
        cache.put("c", CacheEntry("c", 1))

        self.assertIn("a", cache)
        self.assertNotIn("b", cache)
        self.assertIn("c", cache)

    def test_store_does_not_judge_validity(self) -> None:
        cache: Cache[str, CacheEntry[str, int]] = Cache("preview")
        cache.put("a", CacheEntry("old", 1))

        entry = cache.get("a")
        assert entry is not None
        self.assertEqual(entry.validity, 1)

    def test_clear_empties_cache(self) -> None:
        cache: Cache[str, CacheEntry[str, int]] = Cache("preview")
        cache.put("a", CacheEntry("a", 1))
        cache.clear()
        self.assertEqual(len(cache), 0)


class PreviewCachesTests(unittest.TestCase):
    def _put_diff(self, caches: PreviewCaches, context: DiffContext, content: str, mtime: int | None) -> None:
        key = DiffCacheKey(path=Path("/repo/a.py"), staged=True, context=context)
        caches.diffs.put(key, CacheEntry(content, mtime))

    def test_best_diff_prefers_full_over_quick(self) -> None:
        caches = PreviewCaches()
        self._put_diff(caches, DiffContext.QUICK, "quick", 5)
        self._put_diff(caches, DiffContext.FULL, "full", 5)

        best = caches.best_diff(Path("/repo/a.py"), True, 5)

        assert best is not None
        self.assertEqual(best[0], DiffContext.FULL)
        self.assertEqual(best[1].content, "full")

    def test_best_diff_falls_back_to_quick_and_respects_mtime(self) -> None:
        caches = PreviewCaches()
        self._put_diff(caches, DiffContext.QUICK, "quick", 5)
        self._put_diff(caches, DiffContext.FULL, "full", 4)

        best = caches.best_diff(Path("/repo/a.py"), True, 5)
        assert best is not None
        self.assertEqual(best[0], DiffContext.QUICK)
        self.assertIsNone(caches.best_diff(Path("/repo/a.py"), True, 6))
        self.assertIsNone(caches.best_diff(Path("/repo/a.py"), False, 5))

    def test_staged_and_unstaged_entries_are_independent(self) -> None:
        caches = PreviewCaches()
        path = Path("/repo/a.py")
        caches.diffs.put(DiffCacheKey(path, True, DiffContext.FULL), CacheEntry("staged", 1))
        caches.diffs.put(DiffCacheKey(path, False, DiffContext.FULL), CacheEntry("worktree", 1))

        self.assertEqual(caches.best_diff(path, True, 1)[1].content, "staged")
        self.assertEqual(caches.best_diff(path, False, 1)[1].content, "worktree")

    def test_tiers_share_max_entries(self) -> None:
        caches = PreviewCaches(max_entries=3)
        self.assertEqual(caches.previews.max_entries, 3)
        self.assertEqual(caches.diffs.max_entries, 3)
        self.assertEqual(caches.images.max_entries, 3)


class ImageValidityTests(unittest.TestCase):
    def test_matches_within_tolerance_only(self) -> None:
        validity = ImageValidity(mtime_ns=10, viewport_w=80, viewport_h=24)

        self.assertTrue(validity.matches(10, 80, 24))
        self.assertTrue(validity.matches(10, 85, 19))
        self.assertFalse(validity.matches(10, 86, 24))
        self.assertFalse(validity.matches(10, 80, 30))
        self.assertFalse(validity.matches(11, 80, 24))
        self.assertFalse(validity.matches(None, 80, 24))

    def test_custom_tolerance(self) -> None:
        validity = ImageValidity(mtime_ns=10, viewport_w=80, viewport_h=24)
        self.assertFalse(validity.matches(10, 81, 24, tolerance=0))

    def test_cached_image_is_hashable_value(self) -> None:
        image = CachedImage("data", 10, 20, 10, 10)
        self.assertEqual(image, CachedImage("data", 10, 20, 10, 10))


if __name__ == "__main__":
    unittest.main()
