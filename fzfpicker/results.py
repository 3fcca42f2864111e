"""Turn chosen selector lines into openable file locations.

Lines look like ``path``, ``path:line`` or ``path:line:column[:text]`` with
1-based numbers as the scanner prints them. Highlighting escapes are dropped
before parsing; unusable numbers simply mean "no position".
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .ansi import strip_ansi

_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:[\\/]")


@dataclass(frozen=True)
class FileLocation:
    path: str
    line: int | None = None
    column: int | None = None

    @property
    def has_position(self) -> bool:
        return self.line is not None

    def zero_based(self) -> FileLocation:
        """Same location with 0-based line/column, as editors' APIs expect."""
        if self.line is None:
            return self
        column = self.column or 0
        return FileLocation(self.path, max(0, self.line - 1), max(0, column - 1))

    def editor_argument(self) -> str:
        """``path:line`` form understood by ``code -g`` and friends."""
        if not self.has_position:
            return self.path
        return f"{self.path}:{self.line}"


def _parse_position(raw: str | None) -> int | None:
    if raw is None:
        return None
    text = raw.strip()
    if not text.isdigit():
        return None
    return int(text)


def parse_chosen_line(raw: str) -> FileLocation:
    """Split a chosen line into path and optional position.

    A leading Windows drive (``C:\\``) stays part of the path. The column
    defaults to 0 when only a line number is present.
    """
    clean = strip_ansi(raw).strip()
    drive = ""
    if _DRIVE_PREFIX_RE.match(clean):
        drive, clean = clean[:2], clean[2:]

    parts = clean.split(":", 3)
    path = drive + parts[0].strip()
    line = _parse_position(parts[1]) if len(parts) > 1 else None
    if line is None:
        return FileLocation(path)
    column = _parse_position(parts[2]) if len(parts) > 2 else None
    if len(parts) > 2 and column is None:
        # Malformed column invalidates the whole position.
        return FileLocation(path)
    return FileLocation(path, line, column if column is not None else 0)


def strip_current_dir_prefix(entry: str) -> str:
    while entry.startswith("./"):
        entry = entry[2:]
    return entry


def repoint(entry: str, root: str) -> str:
    """Anchor a scanner-relative ``entry`` under ``root`` exactly once."""
    clean = strip_current_dir_prefix(strip_ansi(entry))
    if os.path.isabs(clean):
        return clean
    return os.path.join(root, clean)


__all__ = [
    "FileLocation",
    "parse_chosen_line",
    "repoint",
    "strip_current_dir_prefix",
]
