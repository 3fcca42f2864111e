"""Hand chosen results to the user's editor.

Runs the configured open command (e.g. ``code -g``) once per result.
Returns error message strings instead of raising for caller-friendly reporting.
"""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Iterable

from .results import parse_chosen_line


def open_results(open_command: str, results: Iterable[str]) -> list[str]:
    """Open every result with ``open_command``; return one message per failure."""
    cmd = shlex.split(open_command)
    if not cmd:
        return ["Cannot open files: open command is empty."]

    errors: list[str] = []
    for entry in results:
        location = parse_chosen_line(entry)
        if not location.path:
            continue
        try:
            proc = subprocess.run([*cmd, location.editor_argument()], check=False)
        except OSError as exc:
            errors.append(f"Failed to launch {cmd[0]}: {exc.strerror or exc}")
            # Same executable for every entry; no point trying the rest.
            break
        if proc.returncode != 0:
            errors.append(f"{cmd[0]} exited with {proc.returncode} opening {location.path}")
    return errors
