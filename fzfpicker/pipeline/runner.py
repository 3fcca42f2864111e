"""Scanner → selector pipeline shared by every search mode.

State flow::

    IDLE → SCANNER_STARTING → STREAMING → SELECTOR_RUNNING → COMPLETED
                                                           ↘ CANCELED
    (any spawn failure) → FAILED

The runner reacts to process callbacks and blocks on a single event until the
selector exits. A non-zero selector exit is a user cancel and yields an empty
result, never an exception.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path

from ..ansi import strip_ansi
from ..cache import CacheStore
from ..config import PickerSettings
from ..errors import PickerError, ScannerSpawnError, SelectorSpawnError, SpawnError
from ..process import ProcessHandle, ProcessSpec, StderrMode, StdinMode, start_process
from ..results import repoint
from .modes import CandidateFilter, ScanPlan, strategy_for
from .types import PipelineState, SearchRequest, SearchResult, SelectionOutcome

logger = logging.getLogger(__name__)

TOGGLE_MARKER_NAME = "ignore-toggled"

StoreFactory = Callable[[str], CacheStore]
ProcessStarter = Callable[[ProcessSpec], ProcessHandle]


def default_store_factory(settings: PickerSettings) -> StoreFactory:
    def factory(kind: str) -> CacheStore:
        return CacheStore(kind, settings.cache)

    return factory


def parse_selector_output(text: str) -> tuple[str, tuple[str, ...]]:
    """Split ``--print-query`` output into typed query and chosen lines.

    The first line is the query even when empty, so the text is never trimmed
    before splitting. Blank lines after it are dropped.
    """
    lines = text.split("\n")
    typed_query = lines[0].rstrip("\r")
    chosen = tuple(line.rstrip("\r") for line in lines[1:] if line.strip())
    return typed_query, chosen


class _CandidateFeed:
    """Forward scanner output to the selector, optionally reshaping whole lines."""

    def __init__(self, selector: ProcessHandle, candidate_filter: CandidateFilter | None) -> None:
        self._selector = selector
        self._filter = candidate_filter
        self._pending = b""

    def feed(self, chunk: bytes) -> None:
        if self._filter is None:
            self._selector.write_to_stdin(chunk)
            return
        data = self._pending + chunk
        lines = data.split(b"\n")
        self._pending = lines.pop()
        self._write_lines(lines)

    def finish(self, _exit_code: int) -> None:
        if self._filter is not None and self._pending:
            self._write_lines([self._pending])
            self._pending = b""
        self._selector.close_stdin()

    def _write_lines(self, lines: list[bytes]) -> None:
        assert self._filter is not None
        out: list[str] = []
        for raw in lines:
            candidate = self._filter(raw.decode("utf-8", errors="replace").rstrip("\r"))
            if candidate:
                out.append(candidate + "\n")
        if out:
            self._selector.write_to_stdin("".join(out).encode("utf-8"))


class PipelineRunner:
    """Run one search at a time through scanner and selector processes."""

    def __init__(
        self,
        settings: PickerSettings | None = None,
        store_factory: StoreFactory | None = None,
        start: ProcessStarter = start_process,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.settings = settings if settings is not None else PickerSettings()
        self.store_factory = store_factory if store_factory is not None else default_store_factory(self.settings)
        self._start = start
        self._which = which
        self.state = PipelineState.IDLE
        self._pending_writes: list[threading.Thread] = []

    def _transition(self, state: PipelineState) -> None:
        logger.debug("pipeline %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self, request: SearchRequest) -> SearchResult:
        """Execute ``request`` and return the chosen entries.

        Raises ``SpawnError`` (scanner or selector) and ``PickerError`` for
        setup failures; cancellation returns an empty, canceled result.
        """
        self.state = PipelineState.IDLE
        session_dir = Path(tempfile.mkdtemp(prefix="fzfpicker-"))
        try:
            return self._run(request, session_dir / TOGGLE_MARKER_NAME)
        except PickerError:
            self._transition(PipelineState.FAILED)
            raise
        finally:
            shutil.rmtree(session_dir, ignore_errors=True)

    def _run(self, request: SearchRequest, marker: Path) -> SearchResult:
        strategy = strategy_for(request.mode, self.settings)
        self._transition(PipelineState.SCANNER_STARTING)
        executable = strategy.scanner_executable
        if self._which(executable) is None:
            raise ScannerSpawnError(executable, "executable not found on PATH")

        plan = strategy.plan(request, marker)
        scanner: ProcessHandle | None = None
        if plan.scanner is not None:
            try:
                scanner = self._start(plan.scanner)
            except SpawnError as exc:
                raise ScannerSpawnError(exc.tool, exc.reason) from exc
            scanner.on_stderr_chunk(self._log_scanner_stderr)

        self._transition(PipelineState.STREAMING)
        selector = self._start_selector(plan, scanner)
        self._transition(PipelineState.SELECTOR_RUNNING)

        if scanner is None:
            selector.close_stdin()
        else:
            feed = _CandidateFeed(selector, plan.candidate_filter)
            scanner.on_stdout_chunk(feed.feed)
            scanner.on_exit(feed.finish)

        captured = bytearray()
        exit_codes: list[int] = []
        finished = threading.Event()

        def on_selector_exit(code: int) -> None:
            exit_codes.append(code)
            finished.set()

        selector.on_stdout_chunk(captured.extend)
        selector.on_exit(on_selector_exit)
        finished.wait()

        if scanner is not None:
            # Nobody reads the rest of a scan the user already answered.
            scanner.kill()

        return self._finish(request, plan, captured.decode("utf-8", errors="replace"), exit_codes[0])

    def _start_selector(self, plan: ScanPlan, scanner: ProcessHandle | None) -> ProcessHandle:
        spec = ProcessSpec(
            executable=self.settings.selector,
            args=plan.selector_args,
            working_directory=plan.working_directory,
            stdin=StdinMode.PIPE,
            stderr=StderrMode.INHERIT,
        )
        try:
            return self._start(spec)
        except SpawnError as exc:
            if scanner is not None:
                scanner.kill()
            raise SelectorSpawnError(exc.tool, exc.reason) from exc

    def _finish(self, request: SearchRequest, plan: ScanPlan, output: str, exit_code: int) -> SearchResult:
        if exit_code != 0:
            logger.debug("selector exited with %s, treating as cancel", exit_code)
            self._transition(PipelineState.CANCELED)
            return SearchResult(SelectionOutcome("", (), canceled=True), (), PipelineState.CANCELED)

        typed_query, chosen = parse_selector_output(output)
        if plan.root_prefix is not None:
            results = tuple(repoint(line, plan.root_prefix) for line in chosen)
        else:
            results = tuple(strip_ansi(line) for line in chosen)

        self._transition(PipelineState.COMPLETED)
        if request.persist_query and typed_query.strip() and results:
            self._persist_query(request, typed_query.strip())
        return SearchResult(SelectionOutcome(typed_query, chosen), results, PipelineState.COMPLETED)

    def _persist_query(self, request: SearchRequest, query: str) -> None:
        def write() -> None:
            try:
                store = self.store_factory(request.mode.value)
                store.save_last_query(query, request.project_path())
            except Exception:
                logger.warning("failed to save last %s query", request.mode.value, exc_info=True)

        worker = threading.Thread(target=write, name="fzfpicker-cache-write")
        self._pending_writes.append(worker)
        worker.start()

    def wait_for_pending_writes(self, timeout: float | None = None) -> None:
        """Join background cache writes started by earlier runs."""
        while self._pending_writes:
            self._pending_writes.pop(0).join(timeout)

    @staticmethod
    def _log_scanner_stderr(chunk: bytes) -> None:
        logger.debug("scanner stderr: %s", chunk.decode("utf-8", errors="replace").rstrip())


__all__ = [
    "PipelineRunner",
    "default_store_factory",
    "parse_selector_output",
]
