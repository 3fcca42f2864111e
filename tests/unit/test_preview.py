"""Tests for the built-in previewer and for opening results in an editor."""

from __future__ import annotations

import contextlib
import io
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fzfpicker import preview
from fzfpicker.editor import open_results


class RenderPreviewTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_plain_preview_numbers_and_marks_line(self) -> None:
        path = self.tmp / "notes.txt"
        path.write_text("alpha\nbeta\ngamma\n", encoding="utf-8")

        text = preview.render_preview(path, line=2, no_color=True)

        self.assertEqual(
            text.splitlines(),
            ["1 alpha", f"{preview.HIGHLIGHT_SGR}2 {preview.RESET_SGR}beta", "3 gamma"],
        )

    def test_control_bytes_are_escaped(self) -> None:
        path = self.tmp / "bell.txt"
        path.write_text("ring\x07\n", encoding="utf-8")

        self.assertEqual(preview.render_preview(path, no_color=True), "1 ring\\x07\n")

    def test_highlighted_preview_keeps_source_text(self) -> None:
        path = self.tmp / "mod.py"
        path.write_text("def run():\n    return 1\n", encoding="utf-8")

        text = preview.render_preview(path, style="no-such-style")

        self.assertIn("run", text)
        self.assertIn("\x1b[", text)

    def test_directory_lists_entries(self) -> None:
        (self.tmp / "sub").mkdir()
        (self.tmp / "a.txt").write_text("", encoding="utf-8")

        self.assertEqual(preview.render_preview(self.tmp), "a.txt\nsub/\n")

    def test_oversized_file_is_not_rendered(self) -> None:
        path = self.tmp / "big.bin"
        path.write_bytes(b"x" * (preview.MAX_PREVIEW_BYTES + 1))

        self.assertIn("too large", preview.render_preview(path, no_color=True))

    def test_main_reports_missing_file(self) -> None:
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = preview.main([str(self.tmp / "missing.txt")])
        self.assertEqual(code, 1)
        self.assertIn("Cannot preview", stderr.getvalue())

    def test_main_ignores_invalid_line(self) -> None:
        path = self.tmp / "one.txt"
        path.write_text("only\n", encoding="utf-8")
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            code = preview.main([str(path), "--line", "x", "--no-color"])
        self.assertEqual(code, 0)
        self.assertEqual(stdout.getvalue(), "1 only\n")


class OpenResultsTests(unittest.TestCase):
    def _completed(self, returncode: int = 0) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(args=[], returncode=returncode)

    def test_each_result_is_opened_with_line(self) -> None:
        with mock.patch("fzfpicker.editor.subprocess.run", return_value=self._completed()) as run:
            errors = open_results("code -g", ["src/a.py:12:3:text", "README.md"])

        self.assertEqual(errors, [])
        self.assertEqual(
            [call.args[0] for call in run.call_args_list],
            [["code", "-g", "src/a.py:12"], ["code", "-g", "README.md"]],
        )

    def test_empty_command_is_reported(self) -> None:
        self.assertEqual(open_results("  ", ["a.py"]), ["Cannot open files: open command is empty."])

    def test_launch_failure_stops_after_first(self) -> None:
        error = FileNotFoundError(2, "No such file or directory")
        with mock.patch("fzfpicker.editor.subprocess.run", side_effect=error) as run:
            errors = open_results("nope", ["a.py", "b.py"])

        self.assertEqual(errors, ["Failed to launch nope: No such file or directory"])
        self.assertEqual(run.call_count, 1)

    def test_nonzero_exit_is_reported(self) -> None:
        with mock.patch("fzfpicker.editor.subprocess.run", return_value=self._completed(2)):
            errors = open_results("vim", ["a.py"])

        self.assertEqual(errors, ["vim exited with 2 opening a.py"])


if __name__ == "__main__":
    unittest.main()
