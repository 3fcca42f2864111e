"""Cache directory resolution with an ordered fallback chain.

Resolution order:

1. explicitly configured directory (``CacheSettings.directory``)
2. ``FZF_PICKER_CACHE_DIR`` environment override
3. platform cache directory (``platformdirs.user_cache_dir``)
4. per-user directory under the system temp dir
5. ``None``: callers keep state in memory only

Each candidate must be creatable and accept a probe write. Paths with ``..``
segments or inside OS directories are skipped. The outcome is memoized per
settings value for the life of the process.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path

from platformdirs import user_cache_dir

from ..config import APP_NAME, CacheSettings

logger = logging.getLogger(__name__)

CACHE_DIR_ENV = "FZF_PICKER_CACHE_DIR"
PROBE_FILENAME = ".fzf-picker-write-test"

_POSIX_SYSTEM_DIRS = (
    "/bin",
    "/boot",
    "/dev",
    "/etc",
    "/lib",
    "/lib32",
    "/lib64",
    "/proc",
    "/sbin",
    "/sys",
    "/usr",
    "/System",
)

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

_UNRESOLVED = object()
_resolution_lock = threading.Lock()
_resolved: dict[tuple[str, str, bool], Path | None] = {}


def _system_directories() -> list[Path]:
    if sys.platform == "win32":
        dirs = []
        for var in ("SystemRoot", "windir", "ProgramFiles", "ProgramFiles(x86)"):
            value = os.environ.get(var)
            if value:
                dirs.append(Path(value))
        return dirs
    return [Path(item) for item in _POSIX_SYSTEM_DIRS]


def _expand(raw: str, environ: Mapping[str, str]) -> str:
    """Expand ``$VAR``, ``${VAR}`` and ``~``; unknown variables stay literal."""
    def substitute(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        return environ.get(name, match.group(0))

    return os.path.expanduser(_ENV_VAR_RE.sub(substitute, raw))


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def is_safe_cache_path(path: Path) -> bool:
    """Reject traversal segments and anything that normalizes into an OS directory."""
    if ".." in path.parts:
        return False
    normalized = Path(os.path.realpath(os.path.abspath(path)))
    if normalized == Path(normalized.anchor):
        return False
    for system_dir in _system_directories():
        if _is_within(normalized, system_dir):
            return False
    return True


def is_directory_writable(path: Path) -> bool:
    """Create ``path`` if needed and prove it accepts a write+delete probe."""
    try:
        path.mkdir(parents=True, exist_ok=True)
        probe = path / PROBE_FILENAME
        probe.write_text("test", encoding="utf-8")
        probe.unlink()
        return True
    except OSError as exc:
        logger.debug("cache directory %s is not writable: %s", path, exc)
        return False


def platform_cache_directory() -> Path:
    return Path(user_cache_dir(APP_NAME, appauthor=False))


def temp_cache_directory() -> Path:
    getuid = getattr(os, "getuid", None)
    if getuid is not None:
        user_id = str(getuid())
    else:
        user_id = os.environ.get("USERNAME") or os.environ.get("USER") or "default"
    return Path(tempfile.gettempdir()) / f"{APP_NAME}-{user_id}"


def legacy_cache_directory() -> Path:
    """Directory older releases kept ``search-cache.json`` in."""
    return Path.home() / ".config" / APP_NAME


def _candidates(settings: CacheSettings, environ: Mapping[str, str]) -> list[tuple[str, Path]]:
    candidates: list[tuple[str, Path]] = []
    if settings.directory:
        candidates.append(("configured", Path(_expand(settings.directory, environ))))
    env_value = environ.get(CACHE_DIR_ENV, "")
    if env_value:
        candidates.append(("environment", Path(_expand(env_value, environ))))
    candidates.append(("platform default", platform_cache_directory()))
    candidates.append(("temporary", temp_cache_directory()))
    return candidates


def _resolve_uncached(settings: CacheSettings, environ: Mapping[str, str]) -> Path | None:
    if not settings.enabled:
        logger.debug("cache disabled by configuration")
        return None

    for label, candidate in _candidates(settings, environ):
        if not is_safe_cache_path(candidate):
            logger.warning("refusing %s cache directory %s", label, candidate)
            continue
        if is_directory_writable(candidate):
            logger.debug("using %s cache directory %s", label, candidate)
            return candidate
        logger.debug("%s cache directory %s is not writable", label, candidate)

    logger.warning("no writable cache directory found; last queries are kept in memory only")
    return None


def resolve_cache_directory(
    settings: CacheSettings | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """Return the cache directory for ``settings`` or ``None`` for volatile mode.

    Concurrent callers share one resolution: the lock is held while probing, so
    a second caller waits for the first and reads its memoized answer.
    """
    if settings is None:
        settings = CacheSettings()
    if environ is None:
        environ = os.environ
    key = (settings.directory, environ.get(CACHE_DIR_ENV, ""), settings.enabled)

    cached = _resolved.get(key, _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached  # type: ignore[return-value]

    with _resolution_lock:
        cached = _resolved.get(key, _UNRESOLVED)
        if cached is not _UNRESOLVED:
            return cached  # type: ignore[return-value]
        resolved = _resolve_uncached(settings, environ)
        _resolved[key] = resolved
        return resolved


def clear_cache_directory_cache() -> None:
    """Forget memoized resolutions (tests, configuration changes)."""
    with _resolution_lock:
        _resolved.clear()


__all__ = [
    "CACHE_DIR_ENV",
    "clear_cache_directory_cache",
    "is_directory_writable",
    "is_safe_cache_path",
    "legacy_cache_directory",
    "platform_cache_directory",
    "resolve_cache_directory",
    "temp_cache_directory",
]
