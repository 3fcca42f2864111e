"""Command-line front door for fzfpicker.

``fzfpicker <command> [root ...]`` translates the editor-exported environment
into ``PickerSettings``, runs one search (optionally resuming the last query)
and hands the chosen entries to the open command or prints them.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from .cache import CacheStore
from .config import PickerSettings, load_settings
from .editor import open_results
from .errors import PickerError
from .pipeline.resume import ResumeController
from .pipeline.runner import PipelineRunner
from .pipeline.types import SearchMode, SearchRequest

logger = logging.getLogger(__name__)

CLEAR_CACHE_COMMAND = "clearCache"
DEFAULT_LOG_FILE = "fzf.logs"

COMMANDS: dict[str, tuple[SearchMode, bool]] = {
    "findFiles": (SearchMode.FILES, False),
    "findWithinFiles": (SearchMode.CONTENT, False),
    "findTodoFixme": (SearchMode.COMMENTS, False),
    "pickFileFromGitStatus": (SearchMode.GIT_STATUS, False),
    "resumeFindFiles": (SearchMode.FILES, True),
    "resumeFindWithinFiles": (SearchMode.CONTENT, True),
    "resumeFindTodoFixme": (SearchMode.COMMENTS, True),
}


def configure_logging(environ: Mapping[str, str]) -> None:
    """Debug logs go to a file so they never draw over the selector UI."""
    package_logger = logging.getLogger("fzfpicker")
    if package_logger.handlers:
        return
    if environ.get("DEBUG_FZF_PICKER") == "1":
        handler: logging.Handler = logging.FileHandler(environ.get("FZF_PICKER_LOG_FILE") or DEFAULT_LOG_FILE)
        package_logger.setLevel(logging.DEBUG)
    else:
        handler = logging.StreamHandler(sys.stderr)
        package_logger.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)


def _mark_command_done(environ: Mapping[str, str]) -> None:
    """Reset the editor's PID marker file to ``0`` when it exists."""
    pid_file_name = environ.get("PID_FILE_NAME", "")
    if not pid_file_name:
        return
    pid_file = Path(environ.get("EXTENSION_PATH") or os.getcwd()) / "out" / pid_file_name
    if not pid_file.exists():
        logger.debug("PID file %s not found", pid_file)
        return
    try:
        pid_file.write_text("0", encoding="utf-8")
    except OSError as exc:
        logger.warning("failed to update PID file %s: %s", pid_file, exc)


def build_request(
    mode: SearchMode,
    roots: Sequence[str],
    settings: PickerSettings,
    seed_query: str | None,
    persist_query: bool,
) -> SearchRequest:
    return SearchRequest(
        roots=tuple(roots),
        mode=mode,
        seed_query=seed_query or None,
        persist_query=persist_query and mode is not SearchMode.GIT_STATUS,
        filters=settings.filters(),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fzfpicker",
        description="Fuzzy-pick files, matches, TODOs or git changes with rg and fzf.",
    )
    parser.add_argument("command", choices=[*COMMANDS, CLEAR_CACHE_COMMAND], help="Search to run.")
    parser.add_argument("roots", nargs="*", help="Directories to search. Defaults to the current directory.")
    parser.add_argument("--resume", action="store_true", help="Seed the search with the last saved query.")
    parser.add_argument("--query", default=None, help="Initial query (overrides $SELECTED_TEXT and resume).")
    parser.add_argument("--no-persist", action="store_true", help="Do not remember the typed query.")
    parser.add_argument("--print", dest="print_only", action="store_true", help="Print results instead of opening them.")
    return parser


def main(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> None:
    """Parse CLI arguments, run one search and deliver its results."""
    if environ is None:
        environ = os.environ
    args = _build_parser().parse_args(argv)
    configure_logging(environ)
    settings = load_settings(environ)

    if args.command == CLEAR_CACHE_COMMAND:
        CacheStore(SearchMode.FILES.value, settings.cache, environ).clear()
        return

    for root in args.roots:
        if not Path(root).expanduser().exists():
            raise SystemExit(f"Path not found: {root}")

    mode, resume = COMMANDS[args.command]
    # An explicit --query takes precedence over the cached one.
    resume = (resume or args.resume or environ.get("HAS_RESUME") == "1") and args.query is None
    seed_query = args.query
    if seed_query is None and not resume:
        seed_query = environ.get("SELECTED_TEXT") or None
    request = build_request(mode, args.roots, settings, seed_query, not args.no_persist)

    runner = PipelineRunner(settings, store_factory=lambda kind: CacheStore(kind, settings.cache, environ))
    controller = ResumeController(runner)
    logger.debug("running %s over %s (resume=%s)", mode.value, request.roots, resume)
    try:
        result = controller.run(request, resume=resume)
    except PickerError as exc:
        logger.debug("search failed: %s", exc)
        raise SystemExit(str(exc)) from exc
    finally:
        runner.wait_for_pending_writes()

    try:
        if settings.open_command and not args.print_only:
            for message in open_results(settings.open_command, result.results):
                sys.stderr.write(message + "\n")
        else:
            for entry in result.results:
                sys.stdout.write(entry + "\n")
    finally:
        _mark_command_done(environ)


if __name__ == "__main__":
    main()
