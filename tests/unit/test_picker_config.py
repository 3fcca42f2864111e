"""Tests for picker settings loaded from the config file and environment."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fzfpicker import config
from fzfpicker.config import (
    DEFAULT_PREVIEWS,
    DEFAULT_TODO_SEARCH_PATTERN,
    PickerSettings,
    apply_environment,
    load_settings,
    settings_from_config,
)
from fzfpicker.pipeline.types import SearchMode


class ConfigFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.config_path = Path(self._tmp.name) / "config.json"
        patcher = mock.patch.object(config, "CONFIG_PATH", self.config_path)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file_loads_empty(self) -> None:
        self.assertEqual(config.load_config(), {})

    def test_malformed_or_non_object_file_loads_empty(self) -> None:
        self.config_path.write_text("{oops", encoding="utf-8")
        self.assertEqual(config.load_config(), {})
        self.config_path.write_text("[1, 2]", encoding="utf-8")
        self.assertEqual(config.load_config(), {})

    def test_file_values_feed_settings(self) -> None:
        self.config_path.write_text(
            json.dumps(
                {
                    "selector": "sk",
                    "use_gitignore": False,
                    "type_filter": ["py", "rust"],
                    "open_command": "code -g",
                    "cache_directory": "~/cache/picker",
                    "previews": {"findFiles": {"enabled": True, "command": "cat {}"}},
                }
            ),
            encoding="utf-8",
        )

        settings = load_settings({})

        self.assertEqual(settings.selector, "sk")
        self.assertFalse(settings.use_ignore_files)
        self.assertEqual(settings.file_types, ("py", "rust"))
        self.assertEqual(settings.open_command, "code -g")
        self.assertEqual(settings.cache.directory, "~/cache/picker")
        files_preview = settings.preview_for(SearchMode.FILES)
        self.assertTrue(files_preview.enabled)
        self.assertEqual(files_preview.command, "cat {}")
        self.assertEqual(files_preview.window, DEFAULT_PREVIEWS[SearchMode.FILES].window)


class SettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = settings_from_config({})
        self.assertEqual(settings, PickerSettings())
        self.assertEqual(settings.scanner, "rg")
        self.assertTrue(settings.use_ignore_files)
        self.assertEqual(settings.todo_search_pattern, DEFAULT_TODO_SEARCH_PATTERN)
        self.assertTrue(settings.cache.enabled)

    def test_invalid_values_are_ignored(self) -> None:
        settings = settings_from_config({"scanner": 3, "use_gitignore": "maybe", "type_filter": 7, "previews": []})
        self.assertEqual(settings, PickerSettings())

    def test_environment_overrides(self) -> None:
        environ = {
            "USE_GITIGNORE": "0",
            "TYPE_FILTER": "py:js:",
            "FIND_WITHIN_FILES_PREVIEW_ENABLED": "0",
            "FIND_TODO_FIXME_PREVIEW_COMMAND": "less {1}",
            "PICK_FILE_FROM_GIT_STATUS_PREVIEW_WINDOW_CONFIG": "down:30%",
            "FIND_TODO_FIXME_SEARCH_PATTERN": "NOTE:",
            "OPEN_COMMAND_CLI": "vim",
            "FZF_PICKER_CACHE_ENABLED": "0",
        }

        settings = apply_environment(PickerSettings(), environ)

        self.assertFalse(settings.use_ignore_files)
        self.assertEqual(settings.file_types, ("py", "js"))
        self.assertEqual(settings.filters().file_types, frozenset({"py", "js"}))
        self.assertFalse(settings.preview_for(SearchMode.CONTENT).enabled)
        self.assertEqual(settings.preview_for(SearchMode.COMMENTS).command, "less {1}")
        self.assertEqual(settings.preview_for(SearchMode.GIT_STATUS).window, "down:30%")
        self.assertEqual(settings.todo_search_pattern, "NOTE:")
        self.assertEqual(settings.open_command, "vim")
        self.assertFalse(settings.cache.enabled)

    def test_empty_environment_keeps_settings(self) -> None:
        base = settings_from_config({"type_filter": "go", "open_command": "code -g"})
        settings = apply_environment(base, {"TYPE_FILTER": "", "OPEN_COMMAND_CLI": "  "})
        self.assertEqual(settings.file_types, ("go",))
        self.assertEqual(settings.open_command, "code -g")
        self.assertTrue(settings.use_ignore_files)


if __name__ == "__main__":
    unittest.main()
