"""Repeat the previous search of a mode with its last persisted query."""

from __future__ import annotations

import logging

from .runner import PipelineRunner, StoreFactory
from .types import SearchRequest, SearchResult

logger = logging.getLogger(__name__)


class ResumeController:
    """Seed a request from the query cache, then run it like any other search."""

    def __init__(self, runner: PipelineRunner, store_factory: StoreFactory | None = None) -> None:
        self.runner = runner
        self.store_factory = store_factory if store_factory is not None else runner.store_factory

    def last_query(self, request: SearchRequest) -> str | None:
        store = self.store_factory(request.mode.value)
        return store.last_query(request.project_path())

    def resume(self, request: SearchRequest) -> SearchResult:
        query = self.last_query(request)
        if query:
            logger.debug("resuming %s with %r", request.mode.value, query)
        else:
            logger.debug("no previous %s query, starting fresh", request.mode.value)
        return self.runner.run(request.with_seed_query(query or None))

    def run(self, request: SearchRequest, resume: bool = False) -> SearchResult:
        if resume:
            return self.resume(request)
        return self.runner.run(request)
