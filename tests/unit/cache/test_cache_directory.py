"""Tests for cache directory resolution.

Covers the fallback order, writability probing, unsafe-path rejection, and
process-wide memoization including concurrent callers.
"""

from __future__ import annotations

import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from fzfpicker.cache import directory
from fzfpicker.cache.directory import (
    clear_cache_directory_cache,
    is_safe_cache_path,
    resolve_cache_directory,
)
from fzfpicker.cache.store import CACHE_FILENAME, CacheRecord, CacheStore, clear_memory_records
from fzfpicker.config import CacheSettings


class CacheDirectoryResolutionTests(unittest.TestCase):
    def setUp(self) -> None:
        clear_cache_directory_cache()
        clear_memory_records()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name).resolve()
        self.platform_dir = self.tmp / "platform"
        self.temp_dir = self.tmp / "temp"
        patches = [
            mock.patch.object(directory, "platform_cache_directory", return_value=self.platform_dir),
            mock.patch.object(directory, "temp_cache_directory", return_value=self.temp_dir),
        ]
        for patcher in patches:
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        clear_cache_directory_cache()
        clear_memory_records()
        self._tmp.cleanup()

    def test_configured_directory_wins_when_writable(self) -> None:
        configured = self.tmp / "configured"
        resolved = resolve_cache_directory(CacheSettings(directory=str(configured)), {})
        self.assertEqual(resolved, configured)
        self.assertTrue(configured.is_dir())
        self.assertEqual(list(configured.iterdir()), [])

    def test_unwritable_configured_directory_falls_through_to_platform_default(self) -> None:
        blocker = self.tmp / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        settings = CacheSettings(directory=str(blocker / "cache"))

        self.assertEqual(resolve_cache_directory(settings, {}), self.platform_dir)

        store = CacheStore("findFiles", settings, environ={}, now_ms=lambda: 1_000)
        with mock.patch("fzfpicker.cache.store.legacy_cache_directory", return_value=self.tmp / "legacy"):
            store.write(CacheRecord("needle", 1_000, "/project"))
        self.assertTrue((self.platform_dir / CACHE_FILENAME).is_file())

    def test_environment_override_with_variable_expansion(self) -> None:
        environ = {"BASE": str(self.tmp), "FZF_PICKER_CACHE_DIR": "${BASE}/from-env"}
        self.assertEqual(resolve_cache_directory(CacheSettings(), environ), self.tmp / "from-env")

    def test_unknown_variables_stay_literal(self) -> None:
        environ = {"FZF_PICKER_CACHE_DIR": str(self.tmp) + "/$FZFPICKER_UNSET_VAR"}
        self.assertEqual(resolve_cache_directory(CacheSettings(), environ), self.tmp / "$FZFPICKER_UNSET_VAR")

    def test_traversal_segments_are_rejected(self) -> None:
        settings = CacheSettings(directory=str(self.tmp / "a" / ".." / "b"))
        self.assertEqual(resolve_cache_directory(settings, {}), self.platform_dir)
        self.assertFalse((self.tmp / "b").exists())

    @unittest.skipIf(sys.platform == "win32", "POSIX system directories")
    def test_system_directories_are_unsafe(self) -> None:
        self.assertFalse(is_safe_cache_path(Path("/etc/fzf-picker")))
        self.assertFalse(is_safe_cache_path(Path("/usr")))
        self.assertFalse(is_safe_cache_path(Path("/")))
        self.assertTrue(is_safe_cache_path(self.tmp / "cache"))

    def test_temp_directory_used_when_platform_default_unwritable(self) -> None:
        real_probe = directory.is_directory_writable

        def probe(path: Path) -> bool:
            return False if path == self.platform_dir else real_probe(path)

        with mock.patch.object(directory, "is_directory_writable", side_effect=probe):
            self.assertEqual(resolve_cache_directory(CacheSettings(), {}), self.temp_dir)

    def test_no_writable_candidate_means_volatile_mode(self) -> None:
        with mock.patch.object(directory, "is_directory_writable", return_value=False):
            self.assertIsNone(resolve_cache_directory(CacheSettings(), {}))

    def test_disabled_cache_resolves_to_none(self) -> None:
        self.assertIsNone(resolve_cache_directory(CacheSettings(enabled=False), {}))
        self.assertFalse(self.platform_dir.exists())

    def test_resolution_is_memoized(self) -> None:
        with mock.patch.object(directory, "is_directory_writable", return_value=True) as probe:
            first = resolve_cache_directory(CacheSettings(), {})
            second = resolve_cache_directory(CacheSettings(), {})
        self.assertEqual(first, second)
        self.assertEqual(probe.call_count, 1)

    def test_concurrent_callers_share_one_resolution(self) -> None:
        calls: list[int] = []

        def slow_resolve(settings, environ):
            calls.append(1)
            time.sleep(0.05)
            return self.platform_dir

        results: list[Path | None] = []
        with mock.patch.object(directory, "_resolve_uncached", side_effect=slow_resolve):
            workers = [
                threading.Thread(target=lambda: results.append(resolve_cache_directory(CacheSettings(), {})))
                for _ in range(8)
            ]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, [self.platform_dir] * 8)


if __name__ == "__main__":
    unittest.main()
