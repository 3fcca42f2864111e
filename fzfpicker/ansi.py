"""ANSI escape handling for scanner and selector output.

The scanner colors its matches and the selector may echo them back verbatim.
Anything that parses a chosen line must see the plain text first.
"""

from __future__ import annotations

import re

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def strip_ansi(text: str) -> str:
    """Remove CSI escape sequences (colors, cursor moves) from ``text``."""
    if "\x1b" not in text:
        return text
    return ANSI_ESCAPE_RE.sub("", text)
