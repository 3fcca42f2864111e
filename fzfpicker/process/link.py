"""Spawn one external process and expose its stdio as callbacks.

Each piped output stream gets a daemon reader thread; a watcher thread reports
the exit status once every output chunk has been delivered.
"""

from __future__ import annotations

import enum
import logging
import os
import subprocess
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import SpawnError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

ChunkCallback = Callable[[bytes], None]
ExitCallback = Callable[[int], None]


class StdinMode(enum.Enum):
    INHERIT = "inherit"
    PIPE = "pipe"
    CLOSED = "closed"


class StdoutMode(enum.Enum):
    PIPE = "pipe"


class StderrMode(enum.Enum):
    INHERIT = "inherit"
    PIPE = "pipe"


@dataclass(frozen=True)
class ProcessSpec:
    """How to launch one external process."""

    executable: str
    args: tuple[str, ...] = ()
    working_directory: Path | None = None
    stdin: StdinMode = StdinMode.CLOSED
    stdout: StdoutMode = StdoutMode.PIPE
    stderr: StderrMode = StderrMode.INHERIT
    env: Mapping[str, str] | None = field(default=None, compare=False)

    def argv(self) -> list[str]:
        return [self.executable, *self.args]


_STDIN_TARGETS = {
    StdinMode.INHERIT: None,
    StdinMode.PIPE: subprocess.PIPE,
    StdinMode.CLOSED: subprocess.DEVNULL,
}
_STDERR_TARGETS = {
    StderrMode.INHERIT: None,
    StderrMode.PIPE: subprocess.PIPE,
}


class _ChunkStream:
    """Ordered chunk fan-out that replays the backlog to late listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._backlog: list[bytes] = []
        self._listeners: list[ChunkCallback] = []

    def add_listener(self, callback: ChunkCallback) -> None:
        # Holding the lock while replaying keeps late listeners in stream order.
        with self._lock:
            for chunk in self._backlog:
                callback(chunk)
            self._listeners.append(callback)

    def publish(self, chunk: bytes) -> None:
        with self._lock:
            if not self._listeners:
                self._backlog.append(chunk)
                return
            for callback in self._listeners:
                callback(chunk)


class ProcessHandle:
    """Live external process owned by one pipeline step."""

    def __init__(self, spec: ProcessSpec, proc: subprocess.Popen[bytes]) -> None:
        self.spec = spec
        self._proc = proc
        self._stdout = _ChunkStream()
        self._stderr = _ChunkStream() if proc.stderr is not None else None
        self._stdin_lock = threading.Lock()
        self._exit_lock = threading.Lock()
        self._exit_listeners: list[ExitCallback] = []
        self._exit_code: int | None = None
        self._exited = threading.Event()
        self._readers: list[threading.Thread] = []

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def _start_threads(self) -> None:
        name = Path(self.spec.executable).name
        assert self._proc.stdout is not None
        self._readers.append(self._spawn_reader(self._proc.stdout, self._stdout, f"fzfpicker-{name}-stdout"))
        if self._proc.stderr is not None and self._stderr is not None:
            self._readers.append(self._spawn_reader(self._proc.stderr, self._stderr, f"fzfpicker-{name}-stderr"))
        watcher = threading.Thread(target=self._watch_exit, name=f"fzfpicker-{name}-exit", daemon=True)
        watcher.start()

    def _spawn_reader(self, pipe, stream: _ChunkStream, name: str) -> threading.Thread:
        worker = threading.Thread(target=self._pump, args=(pipe, stream), name=name, daemon=True)
        worker.start()
        return worker

    def _pump(self, pipe, stream: _ChunkStream) -> None:
        try:
            while True:
                chunk = pipe.read1(READ_CHUNK_SIZE)
                if not chunk:
                    break
                try:
                    stream.publish(chunk)
                except Exception:
                    logger.exception("chunk listener for %s failed", self.spec.executable)
        except (OSError, ValueError):
            # Pipe closed underneath us by kill().
            pass
        finally:
            try:
                pipe.close()
            except OSError:
                pass

    def _watch_exit(self) -> None:
        for reader in self._readers:
            reader.join()
        exit_code = self._proc.wait()
        with self._exit_lock:
            self._exit_code = exit_code
            listeners = list(self._exit_listeners)
            self._exited.set()
        logger.debug("%s exited with %s", self.spec.executable, exit_code)
        for callback in listeners:
            callback(exit_code)

    def write_to_stdin(self, data: bytes) -> None:
        """Feed ``data`` to the process; dropped once the reader went away."""
        stdin = self._proc.stdin
        if stdin is None:
            raise ValueError(f"stdin of {self.spec.executable} is not piped")
        with self._stdin_lock:
            if stdin.closed:
                return
            try:
                stdin.write(data)
                stdin.flush()
            except (BrokenPipeError, ValueError):
                pass

    def close_stdin(self) -> None:
        stdin = self._proc.stdin
        if stdin is None:
            return
        with self._stdin_lock:
            if stdin.closed:
                return
            try:
                stdin.close()
            except BrokenPipeError:
                pass

    def on_stdout_chunk(self, callback: ChunkCallback) -> None:
        self._stdout.add_listener(callback)

    def on_stderr_chunk(self, callback: ChunkCallback) -> None:
        if self._stderr is None:
            raise ValueError(f"stderr of {self.spec.executable} is not piped")
        self._stderr.add_listener(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        """Register ``callback``; fires immediately when the process already exited."""
        with self._exit_lock:
            if not self._exited.is_set():
                self._exit_listeners.append(callback)
                return
            exit_code = self._exit_code
        assert exit_code is not None
        callback(exit_code)

    def kill(self) -> None:
        """Send SIGTERM; a process that already exited is left alone."""
        if self._proc.poll() is not None:
            return
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass

    def wait(self, timeout: float | None = None) -> int | None:
        """Block until exit listeners ran; ``None`` on timeout."""
        if not self._exited.wait(timeout):
            return None
        return self._exit_code


def start_process(spec: ProcessSpec) -> ProcessHandle:
    """Launch ``spec`` and start streaming its output.

    Raises ``SpawnError`` before any callback can fire when the executable is
    missing or not runnable.
    """
    env = None
    if spec.env is not None:
        env = {**os.environ, **spec.env}
    try:
        proc = subprocess.Popen(
            spec.argv(),
            cwd=str(spec.working_directory) if spec.working_directory is not None else None,
            stdin=_STDIN_TARGETS[spec.stdin],
            stdout=subprocess.PIPE,
            stderr=_STDERR_TARGETS[spec.stderr],
            env=env,
        )
    except OSError as exc:
        raise SpawnError.from_os_error(spec.executable, exc) from exc

    logger.debug("started %s (pid %s): %s", spec.executable, proc.pid, spec.args)
    handle = ProcessHandle(spec, proc)
    handle._start_threads()
    return handle


__all__ = [
    "ProcessHandle",
    "ProcessSpec",
    "StderrMode",
    "StdinMode",
    "StdoutMode",
    "start_process",
]
