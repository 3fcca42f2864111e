"""Persistent last-query cache with directory fallback chain."""

from __future__ import annotations

from .directory import clear_cache_directory_cache, resolve_cache_directory
from .store import CACHE_FILENAME, CacheRecord, CacheStore

__all__ = [
    "CACHE_FILENAME",
    "CacheRecord",
    "CacheStore",
    "clear_cache_directory_cache",
    "resolve_cache_directory",
]
