"""Per-mode scanner/selector wiring.

Every search mode shares one pipeline; a ``SearchStrategy`` only decides how
the scanner and selector are invoked and how candidate lines are shaped:

- files: ``rg --files`` streamed into ``fzf``
- content: ``fzf`` re-runs ``rg`` with the live query on every keystroke
- comments: ``fzf`` re-runs ``rg`` with a fixed TODO/FIXME pattern and
  fuzzy-filters the hits itself
- git status: ``git status --porcelain`` streamed into ``fzf``

Commands bound inside ``fzf`` are wrapped as ``sh -c '<script>' sh <args>`` so
they behave the same whatever ``$SHELL`` fzf hands them to.
"""

from __future__ import annotations

import abc
import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..config import DEFAULT_PREVIEWS, PickerSettings
from ..errors import NotAGitRepositoryError, ScannerSpawnError
from ..process import ProcessSpec, StderrMode, StdinMode
from .types import SearchMode, SearchRequest

TOGGLE_PREVIEW_KEY = "ctrl-g"
TOGGLE_IGNORE_KEY = "ctrl-t"
VCS_EXCLUDE_GLOB = "!**/.git/"
RELOAD_DEBOUNCE_SECONDS = "0.1"
GIT_EXECUTABLE = "git"
GIT_TIMEOUT_SECONDS = 10.0

# Bracket pairs fzf accepts around action arguments, tried in order.
_ACTION_DELIMITERS = (("(", ")"), ("[", "]"), ("{", "}"), ("<", ">"), ("~", "~"), ("!", "!"), ("@", "@"), ("#", "#"))

CandidateFilter = Callable[[str], "str | None"]


@dataclass(frozen=True)
class ScanPlan:
    """Everything the runner needs to start one search."""

    working_directory: Path | None
    root_prefix: str | None
    scanner: ProcessSpec | None
    selector_args: tuple[str, ...]
    candidate_filter: CandidateFilter | None = None

    @property
    def reload_driven(self) -> bool:
        """Candidates arrive through selector-bound reloads, not our stdin feed."""
        return self.scanner is None


def fzf_action(name: str, argument: str) -> str:
    """Render ``name(argument)`` with a delimiter that does not clash with ``argument``."""
    for opening, closing in _ACTION_DELIMITERS:
        if closing not in argument:
            return f"{name}{opening}{argument}{closing}"
    raise ValueError(f"cannot embed {argument!r} in an fzf {name} action")


def sh_command(script: str, *args: str) -> str:
    """Wrap ``script`` for ``sh``; ``args`` must already be shell-safe or fzf placeholders."""
    return " ".join(["sh", "-c", shlex.quote(script), "sh", *args])


def toggle_marker_command(marker: Path) -> str:
    script = 'if [ -e "$1" ]; then rm -f -- "$1"; else : > "$1"; fi'
    return sh_command(script, shlex.quote(str(marker)))


def builtin_preview_command(with_line: bool) -> str:
    base = f"{shlex.quote(sys.executable)} -m fzfpicker.preview"
    if with_line:
        return base + " {1} --line {2}"
    return base + " {}"


class SearchStrategy(abc.ABC):
    """Base for per-mode wiring; subclasses supply ``mode`` and ``scanner_flags``."""

    mode: SearchMode
    line_bearing = False
    supports_ignore_toggle = True

    def __init__(self, settings: PickerSettings) -> None:
        self.settings = settings

    @property
    def scanner_executable(self) -> str:
        return self.settings.scanner

    # Scanner side.

    def scan_paths(self, request: SearchRequest) -> list[str]:
        if request.single_root is not None:
            return ["."]
        # No shell sits between us and the scanner, so ``~`` is expanded here.
        return [os.path.expanduser(root) for root in request.roots]

    def working_directory(self, request: SearchRequest) -> Path | None:
        root = request.single_root
        return Path(root).expanduser() if root is not None else None

    def root_prefix(self, request: SearchRequest) -> str | None:
        root = request.single_root
        return os.path.expanduser(root) if root is not None else None

    @abc.abstractmethod
    def scanner_flags(self, request: SearchRequest, use_ignore_files: bool) -> list[str]:
        """Scanner arguments before the search paths."""

    def _common_flags(self, request: SearchRequest, use_ignore_files: bool) -> list[str]:
        flags = ["--hidden"]
        if not use_ignore_files:
            flags.append("--no-ignore")
        flags.extend(["--glob", VCS_EXCLUDE_GLOB])
        for file_type in sorted(request.filters.file_types):
            flags.extend(["--type", file_type])
        return flags

    # Selector side.

    def preview_command(self) -> str:
        preview = self.settings.preview_for(self.mode)
        default = DEFAULT_PREVIEWS[self.mode].command
        if preview.command == default and default.startswith("bat ") and shutil.which("bat") is None:
            return builtin_preview_command(self.line_bearing)
        return preview.command

    def selector_args(self, request: SearchRequest, marker: Path) -> list[str]:
        args = ["--cycle", "--multi", "--print-query", "--layout=reverse"]
        seed = request.seed_query or ""
        if seed.strip():
            args.extend(["--query", seed])
        if self.line_bearing:
            args.extend(["--ansi", "--delimiter", ":"])

        preview = self.settings.preview_for(self.mode)
        if preview.enabled:
            args.extend(
                [
                    "--preview",
                    self.preview_command(),
                    "--preview-window",
                    preview.window,
                    "--bind",
                    f"{TOGGLE_PREVIEW_KEY}:toggle-preview",
                ]
            )
        if self.supports_ignore_toggle:
            args.extend(["--bind", self.ignore_toggle_binding(request, marker)])
        args.extend(self.mode_selector_args(request, marker))
        return args

    def mode_selector_args(self, request: SearchRequest, marker: Path) -> list[str]:
        return []

    def reload_command(self, request: SearchRequest, marker: Path, debounce: bool = False) -> str:
        """Shell command that re-runs the scanner, honoring the ignore toggle marker."""
        default_flags = self.scanner_flags(request, request.filters.use_ignore_files)
        toggled_flags = self.scanner_flags(request, not request.filters.use_ignore_files)
        tail = self.reload_query_argument() + shlex.join(self.scan_paths(request))
        scanner = shlex.quote(self.scanner_executable)
        script = (
            f'if [ -e "$1" ]; then {scanner} {shlex.join(toggled_flags)} {tail}; '
            f"else {scanner} {shlex.join(default_flags)} {tail}; fi; exit 0"
        )
        if debounce:
            script = f"sleep {RELOAD_DEBOUNCE_SECONDS}; {script}"
        script = self.reload_guard() + script
        return sh_command(script, shlex.quote(str(marker)), *self.reload_placeholders())

    def reload_query_argument(self) -> str:
        return ""

    def reload_guard(self) -> str:
        return ""

    def reload_placeholders(self) -> list[str]:
        return []

    def ignore_toggle_binding(self, request: SearchRequest, marker: Path) -> str:
        toggle = fzf_action("execute-silent", toggle_marker_command(marker))
        return f"{TOGGLE_IGNORE_KEY}:{toggle}+reload:{self.reload_command(request, marker)}"

    # Assembly.

    def static_scanner(self, request: SearchRequest, working_directory: Path | None) -> ProcessSpec | None:
        return ProcessSpec(
            executable=self.scanner_executable,
            args=tuple(self.scanner_flags(request, request.filters.use_ignore_files) + self.scan_paths(request)),
            working_directory=working_directory,
            stdin=StdinMode.CLOSED,
            stderr=StderrMode.PIPE,
        )

    def plan(self, request: SearchRequest, marker: Path) -> ScanPlan:
        working_directory = self.working_directory(request)
        return ScanPlan(
            working_directory=working_directory,
            root_prefix=self.root_prefix(request),
            scanner=self.static_scanner(request, working_directory),
            selector_args=tuple(self.selector_args(request, marker)),
        )


class FileListStrategy(SearchStrategy):
    mode = SearchMode.FILES

    def scanner_flags(self, request: SearchRequest, use_ignore_files: bool) -> list[str]:
        return ["--files", *self._common_flags(request, use_ignore_files)]


class ContentSearchStrategy(SearchStrategy):
    """Live grep: the selector owns the query and re-runs the scanner per keystroke."""

    mode = SearchMode.CONTENT
    line_bearing = True

    def scanner_flags(self, request: SearchRequest, use_ignore_files: bool) -> list[str]:
        return [
            "--column",
            "--line-number",
            "--no-heading",
            "--color=always",
            "--smart-case",
            *self._common_flags(request, use_ignore_files),
        ]

    def reload_query_argument(self) -> str:
        return '-e "$2" '

    def reload_guard(self) -> str:
        return '[ -n "$2" ] || exit 0; '

    def reload_placeholders(self) -> list[str]:
        return ["{q}"]

    def static_scanner(self, request: SearchRequest, working_directory: Path | None) -> ProcessSpec | None:
        return None

    def mode_selector_args(self, request: SearchRequest, marker: Path) -> list[str]:
        args = [
            "--disabled",
            "--bind",
            f"change:reload:{self.reload_command(request, marker, debounce=True)}",
        ]
        if (request.seed_query or "").strip():
            args.extend(["--bind", f"start:reload:{self.reload_command(request, marker)}"])
        return args


class CommentSearchStrategy(ContentSearchStrategy):
    """TODO/FIXME search: fixed scanner pattern, fuzzy filtering left to the selector."""

    mode = SearchMode.COMMENTS

    def reload_query_argument(self) -> str:
        return f"-e {shlex.quote(self.settings.todo_search_pattern)} "

    def reload_guard(self) -> str:
        return ""

    def reload_placeholders(self) -> list[str]:
        return []

    def mode_selector_args(self, request: SearchRequest, marker: Path) -> list[str]:
        return [
            "--bind",
            f"start:reload:{self.reload_command(request, marker)}",
            "--bind",
            f"change:reload:{self.reload_command(request, marker, debounce=True)}",
        ]


def parse_porcelain_line(line: str) -> str | None:
    """Path a ``git status --porcelain`` line offers for opening, if any.

    Deleted entries have nothing to open; renames yield the new path.
    """
    if len(line) < 4:
        return None
    status, path = line[:2], line[3:]
    if "D" in status and status not in {"DU", "UD"}:
        return None
    if " -> " in path and ("R" in status or "C" in status):
        path = path.split(" -> ", 1)[1]
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    return path or None


class GitStatusStrategy(SearchStrategy):
    mode = SearchMode.GIT_STATUS
    supports_ignore_toggle = False

    @property
    def scanner_executable(self) -> str:
        return GIT_EXECUTABLE

    def scanner_flags(self, request: SearchRequest, use_ignore_files: bool) -> list[str]:
        return ["status", "--porcelain"]

    def scan_paths(self, request: SearchRequest) -> list[str]:
        return []

    def mode_selector_args(self, request: SearchRequest, marker: Path) -> list[str]:
        return ["--exit-0"]

    def repository_root(self, request: SearchRequest) -> Path:
        start = Path(request.roots[0]).expanduser() if request.roots else Path.cwd()
        try:
            proc = subprocess.run(
                [GIT_EXECUTABLE, "-C", str(start), "rev-parse", "--show-toplevel"],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except OSError as exc:
            raise ScannerSpawnError.from_os_error(GIT_EXECUTABLE, exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise NotAGitRepositoryError(str(start)) from exc
        top_level = proc.stdout.strip()
        if proc.returncode != 0 or not top_level:
            raise NotAGitRepositoryError(str(start))
        return Path(top_level)

    def plan(self, request: SearchRequest, marker: Path) -> ScanPlan:
        repo_root = self.repository_root(request)
        return ScanPlan(
            working_directory=repo_root,
            root_prefix=str(repo_root),
            scanner=self.static_scanner(request, repo_root),
            selector_args=tuple(self.selector_args(request, marker)),
            candidate_filter=parse_porcelain_line,
        )


_STRATEGIES: dict[SearchMode, type[SearchStrategy]] = {
    SearchMode.FILES: FileListStrategy,
    SearchMode.CONTENT: ContentSearchStrategy,
    SearchMode.COMMENTS: CommentSearchStrategy,
    SearchMode.GIT_STATUS: GitStatusStrategy,
}


def strategy_for(mode: SearchMode, settings: PickerSettings) -> SearchStrategy:
    return _STRATEGIES[mode](settings)


__all__ = [
    "CommentSearchStrategy",
    "ContentSearchStrategy",
    "FileListStrategy",
    "GitStatusStrategy",
    "ScanPlan",
    "SearchStrategy",
    "fzf_action",
    "parse_porcelain_line",
    "sh_command",
    "strategy_for",
]
