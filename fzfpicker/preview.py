"""Built-in preview command used when ``bat`` is not installed.

``python -m fzfpicker.preview PATH [--line N]`` prints the file with Pygments
highlighting and line numbers, marking line ``N``. The selector's preview
window offset (``+{2}+3/3``) scrolls to it.
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

DEFAULT_STYLE = "monokai"
MAX_PREVIEW_BYTES = 2 * 1024 * 1024
HIGHLIGHT_SGR = "\033[7m"
RESET_SGR = "\033[0m"


def read_text(path: Path) -> str:
    for encoding in ("utf-8", "utf-8-sig", "latin-1"):
        try:
            return path.read_text(encoding=encoding)
        except UnicodeDecodeError:
            continue
    return path.read_bytes().decode("utf-8", errors="replace")


def sanitize_terminal_text(source: str) -> str:
    """Escape terminal control bytes to avoid side effects (bell, cursor moves, etc.)."""
    if _CONTROL_RE.search(source) is None:
        return source

    out: list[str] = []
    for ch in source:
        code = ord(ch)
        if ch in {"\n", "\r", "\t"}:
            out.append(ch)
            continue
        # C0 controls + DEL + C1 controls.
        if code < 32 or code == 127 or 0x80 <= code <= 0x9F:
            out.append(f"\\x{code:02x}")
            continue
        out.append(ch)
    return "".join(out)


def colorize_source(source: str, target: Path, style: str = DEFAULT_STYLE) -> str:
    from pygments import highlight
    from pygments.formatters import TerminalFormatter
    from pygments.lexers import TextLexer, get_lexer_for_filename
    from pygments.styles import get_style_by_name
    from pygments.util import ClassNotFound

    try:
        get_style_by_name(style)
    except ClassNotFound:
        style = DEFAULT_STYLE
    try:
        lexer = get_lexer_for_filename(target.name, source)
    except ClassNotFound:
        lexer = TextLexer()
    return highlight(source, lexer, TerminalFormatter(style=style))


def render_preview(path: Path, line: int | None = None, style: str = DEFAULT_STYLE, no_color: bool = False) -> str:
    """Return numbered, optionally highlighted file text for the preview pane."""
    if path.is_dir():
        entries = sorted(child.name + ("/" if child.is_dir() else "") for child in path.iterdir())
        return "\n".join(entries) + ("\n" if entries else "")
    if path.stat().st_size > MAX_PREVIEW_BYTES:
        return f"{path}: file too large to preview\n"

    source = sanitize_terminal_text(read_text(path))
    rendered = source if no_color else colorize_source(source, path, style)
    rows = rendered.splitlines()
    width = len(str(max(1, len(rows))))
    out: list[str] = []
    for number, row in enumerate(rows, start=1):
        gutter = f"{number:>{width}} "
        if number == line:
            out.append(f"{HIGHLIGHT_SGR}{gutter}{RESET_SGR}{row}")
        else:
            out.append(f"{gutter}{row}")
    return "\n".join(out) + ("\n" if out else "")


def _line_number(value: str) -> int | None:
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="fzfpicker.preview", description="Preview a file for the selector.")
    parser.add_argument("path", help="File or directory to preview.")
    parser.add_argument("--line", type=_line_number, default=None, help="1-based line to mark.")
    parser.add_argument("--style", default=DEFAULT_STYLE, help="Pygments style name.")
    parser.add_argument("--no-color", action="store_true", help="Disable syntax highlighting.")
    args = parser.parse_args(argv)

    path = Path(args.path)
    try:
        text = render_preview(path, args.line, args.style, args.no_color)
    except OSError as exc:
        sys.stderr.write(f"Cannot preview {path}: {exc.strerror or exc}\n")
        return 1
    sys.stdout.write(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
