"""Value types shared by the search pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from pathlib import Path


class SearchMode(enum.Enum):
    """Kind of search; the value doubles as CLI command name and cache key."""

    FILES = "findFiles"
    CONTENT = "findWithinFiles"
    COMMENTS = "findTodoFixme"
    GIT_STATUS = "pickFileFromGitStatus"


class PipelineState(enum.Enum):
    IDLE = "idle"
    SCANNER_STARTING = "scanner_starting"
    STREAMING = "streaming"
    SELECTOR_RUNNING = "selector_running"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchFilters:
    use_ignore_files: bool = True
    file_types: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SearchRequest:
    """One search invocation. ``roots`` keep caller order."""

    roots: tuple[str, ...]
    mode: SearchMode = SearchMode.FILES
    seed_query: str | None = None
    persist_query: bool = True
    filters: SearchFilters = field(default_factory=SearchFilters)

    def with_seed_query(self, seed_query: str | None) -> SearchRequest:
        return replace(self, seed_query=seed_query)

    @property
    def single_root(self) -> str | None:
        """Root the scan is anchored at when exactly one was given."""
        if len(self.roots) == 1:
            return self.roots[0]
        return None

    def project_path(self) -> str:
        """Absolute path identifying the searched project in the query cache."""
        root = self.single_root
        if root is None:
            return str(Path.cwd())
        return str(Path(root).expanduser().absolute())


@dataclass(frozen=True)
class SelectionOutcome:
    typed_query: str
    chosen_lines: tuple[str, ...] = ()
    canceled: bool = False


@dataclass(frozen=True)
class SearchResult:
    """Final outcome of one pipeline run."""

    outcome: SelectionOutcome
    results: tuple[str, ...]
    state: PipelineState

    @property
    def canceled(self) -> bool:
        return self.outcome.canceled


__all__ = [
    "PipelineState",
    "SearchFilters",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "SelectionOutcome",
]
