"""Tests for turning chosen selector lines into file locations."""

from __future__ import annotations

import os
import unittest

from fzfpicker.results import FileLocation, parse_chosen_line, repoint, strip_current_dir_prefix


class ParseChosenLineTests(unittest.TestCase):
    def test_plain_path_has_no_position(self) -> None:
        location = parse_chosen_line("src/app.py")
        self.assertEqual(location, FileLocation("src/app.py"))
        self.assertFalse(location.has_position)

    def test_line_and_column_with_match_text(self) -> None:
        self.assertEqual(parse_chosen_line("src/app.py:12:4:x = a:b"), FileLocation("src/app.py", 12, 4))

    def test_line_only_defaults_column_to_zero(self) -> None:
        self.assertEqual(parse_chosen_line("src/app.py:7"), FileLocation("src/app.py", 7, 0))

    def test_ansi_escapes_are_removed(self) -> None:
        raw = "\x1b[35msrc/app.py\x1b[0m:\x1b[32m3\x1b[0m:9:TODO: fix"
        self.assertEqual(parse_chosen_line(raw), FileLocation("src/app.py", 3, 9))

    def test_non_numeric_line_means_no_position(self) -> None:
        self.assertEqual(parse_chosen_line("notes.txt:abc"), FileLocation("notes.txt"))

    def test_malformed_column_drops_whole_position(self) -> None:
        self.assertEqual(parse_chosen_line("a.py:5:x:text"), FileLocation("a.py"))

    def test_windows_drive_stays_in_path(self) -> None:
        self.assertEqual(parse_chosen_line("C:\\work\\a.py:2:1:text"), FileLocation("C:\\work\\a.py", 2, 1))


class FileLocationTests(unittest.TestCase):
    def test_zero_based_conversion(self) -> None:
        self.assertEqual(FileLocation("a.py", 1, 1).zero_based(), FileLocation("a.py", 0, 0))
        self.assertEqual(FileLocation("a.py", 10, 0).zero_based(), FileLocation("a.py", 9, 0))
        self.assertEqual(FileLocation("a.py").zero_based(), FileLocation("a.py"))

    def test_editor_argument(self) -> None:
        self.assertEqual(FileLocation("a.py", 4, 2).editor_argument(), "a.py:4")
        self.assertEqual(FileLocation("a.py").editor_argument(), "a.py")


class RepointTests(unittest.TestCase):
    def test_relative_entry_is_joined_once(self) -> None:
        self.assertEqual(repoint("./lib/x.py", "proj"), os.path.join("proj", "lib/x.py"))
        self.assertEqual(repoint("lib/x.py", "proj/"), os.path.join("proj/", "lib/x.py"))

    def test_absolute_entry_is_kept(self) -> None:
        self.assertEqual(repoint("/abs/x.py", "proj"), "/abs/x.py")

    def test_strip_current_dir_prefix(self) -> None:
        self.assertEqual(strip_current_dir_prefix("././a"), "a")
        self.assertEqual(strip_current_dir_prefix("a/./b"), "a/./b")


if __name__ == "__main__":
    unittest.main()
