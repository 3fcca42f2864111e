"""External process plumbing for scanner and selector invocations."""

from __future__ import annotations

from .link import (
    ProcessHandle,
    ProcessSpec,
    StderrMode,
    StdinMode,
    StdoutMode,
    start_process,
)

__all__ = [
    "ProcessHandle",
    "ProcessSpec",
    "StderrMode",
    "StdinMode",
    "StdoutMode",
    "start_process",
]
