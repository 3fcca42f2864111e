"""Search pipeline: request types, per-mode strategies, runner and resume.

Only the value types are imported eagerly; ``fzfpicker.config`` depends on
them, so the runner modules are imported from their own submodules.
"""

from __future__ import annotations

from .types import (
    PipelineState,
    SearchFilters,
    SearchMode,
    SearchRequest,
    SearchResult,
    SelectionOutcome,
)

__all__ = [
    "PipelineState",
    "SearchFilters",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "SelectionOutcome",
]
