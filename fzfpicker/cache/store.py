"""Durable last-query records, one per search mode.

Records live together in ``search-cache.json`` under the resolved cache
directory::

    {"findTodoFixme": {"lastQuery": "...", "timestamp": 1700000000000, "projectPath": "/repo"}}

Reads fail soft (``None``), writes replace the file atomically, and with no
usable directory every record stays in process memory.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from ..config import CacheSettings
from .directory import legacy_cache_directory, resolve_cache_directory

logger = logging.getLogger(__name__)

CACHE_FILENAME = "search-cache.json"
MAX_RECORD_AGE_MS = 365 * 24 * 60 * 60 * 1000

_memory_records: dict[str, CacheRecord] = {}
_document_lock = threading.Lock()
_legacy_unlink_failure_logged = False


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheRecord:
    last_query: str
    timestamp: int
    project_path: str

    def to_json(self) -> dict[str, object]:
        return {
            "lastQuery": self.last_query,
            "timestamp": self.timestamp,
            "projectPath": self.project_path,
        }

    @classmethod
    def from_json(cls, value: object) -> CacheRecord | None:
        """Decode one record; wrong shapes and types yield ``None``."""
        if not isinstance(value, dict):
            return None
        last_query = value.get("lastQuery")
        timestamp = value.get("timestamp")
        project_path = value.get("projectPath")
        if not isinstance(last_query, str) or not isinstance(project_path, str):
            return None
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            return None
        return cls(last_query=last_query, timestamp=timestamp, project_path=project_path)

    def is_fresh(self, now_ms: int) -> bool:
        return now_ms - MAX_RECORD_AGE_MS <= self.timestamp <= now_ms


def _load_document(path: Path) -> dict[str, object] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.debug("ignoring unreadable cache file %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def _replace_document(path: Path, document: Mapping[str, object]) -> None:
    """Write ``document`` to a sibling temp file and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def _remove_legacy(path: Path) -> None:
    global _legacy_unlink_failure_logged

    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        if not _legacy_unlink_failure_logged:
            _legacy_unlink_failure_logged = True
            logger.warning("failed to remove legacy cache file %s: %s", path, exc)


class CacheStore:
    """Last-query store for one cache kind (a ``SearchMode`` value)."""

    def __init__(
        self,
        kind: str,
        settings: CacheSettings | None = None,
        environ: Mapping[str, str] | None = None,
        now_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.kind = kind
        self.settings = settings if settings is not None else CacheSettings()
        self._environ = environ
        self._now_ms = now_ms

    def resolve_directory(self) -> Path | None:
        return resolve_cache_directory(self.settings, self._environ)

    def cache_file(self) -> Path | None:
        """Path of the backing file, or ``None`` in volatile mode."""
        directory = self.resolve_directory()
        if directory is None:
            return None
        return directory / CACHE_FILENAME

    def _fresh(self, record: CacheRecord | None) -> CacheRecord | None:
        if record is None:
            return None
        if not record.is_fresh(self._now_ms()):
            logger.debug("discarding out-of-range %s cache record (timestamp %s)", self.kind, record.timestamp)
            return None
        return record

    def read(self) -> CacheRecord | None:
        """Return this kind's record, or ``None`` when absent, malformed, or stale."""
        path = self.cache_file()
        if path is None:
            return self._fresh(_memory_records.get(self.kind))

        document = _load_document(path)
        if document is not None:
            record = self._fresh(CacheRecord.from_json(document.get(self.kind)))
            if record is not None:
                return record

        fallback = self._fresh(_memory_records.get(self.kind))
        if fallback is not None:
            return fallback
        return self.migrate_legacy()

    def write(self, record: CacheRecord) -> None:
        """Persist ``record``, replacing any previous record of this kind.

        Filesystem failures keep the record in memory instead; nothing raises.
        """
        path = self.cache_file()
        if path is None:
            _memory_records[self.kind] = record
            return

        with _document_lock:
            document = _load_document(path) or {}
            document[self.kind] = record.to_json()
            try:
                _replace_document(path, document)
            except OSError as exc:
                logger.warning("failed to write %s, keeping last query in memory: %s", path, exc)
                _memory_records[self.kind] = record
                return
            _memory_records.pop(self.kind, None)

    def clear(self) -> None:
        """Drop every stored record; a missing file is fine."""
        _memory_records.clear()
        path = self.cache_file()
        if path is None:
            return
        with _document_lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("failed to remove cache file %s: %s", path, exc)

    def migrate_legacy(self) -> CacheRecord | None:
        """Move this kind's record from the legacy location through ``write``.

        A legacy file holding nothing fresh is deleted so later misses stop
        reading it.
        """
        legacy_path = legacy_cache_directory() / CACHE_FILENAME
        if legacy_path == self.cache_file():
            return None
        document = _load_document(legacy_path)
        if document is None:
            return None
        record = self._fresh(CacheRecord.from_json(document.get(self.kind)))
        if record is None:
            now_ms = self._now_ms()
            others = (CacheRecord.from_json(value) for kind, value in document.items() if kind != self.kind)
            if not any(other is not None and other.is_fresh(now_ms) for other in others):
                logger.debug("removing stale legacy cache %s", legacy_path)
                _remove_legacy(legacy_path)
            return None

        logger.debug("migrating %s record from legacy cache %s", self.kind, legacy_path)
        self.write(record)
        _remove_legacy(legacy_path)
        return record

    def save_last_query(self, query: str, project_path: str) -> None:
        """Record ``query`` for ``project_path``; blank queries are not stored."""
        if not query or not query.strip():
            return
        self.write(CacheRecord(last_query=query, timestamp=self._now_ms(), project_path=project_path))

    def last_query(self, project_path: str) -> str | None:
        """Return the stored query when it was recorded for ``project_path``."""
        record = self.read()
        if record is None or record.project_path != project_path:
            return None
        return record.last_query


def clear_memory_records() -> None:
    _memory_records.clear()


__all__ = [
    "CACHE_FILENAME",
    "CacheRecord",
    "CacheStore",
    "MAX_RECORD_AGE_MS",
    "clear_memory_records",
]
