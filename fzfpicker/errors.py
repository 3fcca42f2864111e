"""Error taxonomy for the search pipeline.

Spawn failures are fatal and reach the caller with the failing tool named.
Cache problems never appear here: the cache layer recovers locally.
"""

from __future__ import annotations


class PickerError(Exception):
    """Base class for errors surfaced to the caller of a search."""


class SpawnError(PickerError):
    """An external executable could not be started."""

    def __init__(self, tool: str, reason: str) -> None:
        self.tool = tool
        self.reason = reason
        super().__init__(f"Failed to start {tool}: {reason}")

    @classmethod
    def from_os_error(cls, tool: str, exc: OSError) -> SpawnError:
        return cls(tool, exc.strerror or str(exc))


class ScannerSpawnError(SpawnError):
    """The file/content scanner failed to start."""


class SelectorSpawnError(SpawnError):
    """The fuzzy selector failed to start."""


class NotAGitRepositoryError(PickerError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Not inside a git repository: {path}")


__all__ = [
    "NotAGitRepositoryError",
    "PickerError",
    "ScannerSpawnError",
    "SelectorSpawnError",
    "SpawnError",
]
