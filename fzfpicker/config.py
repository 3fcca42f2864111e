"""Picker settings: persisted JSON config plus environment overrides.

The editor integration hands settings over through environment variables; a
JSON file in the platform config directory supplies user defaults. Both are
folded into one immutable ``PickerSettings`` value passed into each search.
All file access is defensive: malformed or missing config falls back safely.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from platformdirs import user_config_dir

from .pipeline.types import SearchFilters, SearchMode

APP_NAME = "fzf-picker"
CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
CONFIG_PATH = DEFAULT_CONFIG_PATH

DEFAULT_TODO_SEARCH_PATTERN = r"(TODO|FIXME|HACK|FIX):\s"

_BAT_LINE_PREVIEW = "bat --decorations=always --color=always {1} --highlight-line {2} --style=header,grid"
_LINE_PREVIEW_WINDOW = "right:border-left:50%:+{2}+3/3:~3"


@dataclass(frozen=True)
class PreviewSettings:
    enabled: bool
    command: str
    window: str


DEFAULT_PREVIEWS: dict[SearchMode, PreviewSettings] = {
    SearchMode.FILES: PreviewSettings(
        enabled=False,
        command="bat --decorations=always --color=always --plain {}",
        window="right:50%:border-left",
    ),
    SearchMode.CONTENT: PreviewSettings(enabled=True, command=_BAT_LINE_PREVIEW, window=_LINE_PREVIEW_WINDOW),
    SearchMode.COMMENTS: PreviewSettings(enabled=True, command=_BAT_LINE_PREVIEW, window=_LINE_PREVIEW_WINDOW),
    SearchMode.GIT_STATUS: PreviewSettings(
        enabled=True,
        command="git diff --color=always -- {}",
        window="right:50%:border-left",
    ),
}

# Environment variable prefix per mode, e.g. ``FIND_FILES_PREVIEW_ENABLED``.
PREVIEW_ENV_PREFIXES: dict[SearchMode, str] = {
    SearchMode.FILES: "FIND_FILES",
    SearchMode.CONTENT: "FIND_WITHIN_FILES",
    SearchMode.COMMENTS: "FIND_TODO_FIXME",
    SearchMode.GIT_STATUS: "PICK_FILE_FROM_GIT_STATUS",
}


@dataclass(frozen=True)
class CacheSettings:
    directory: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class PickerSettings:
    """Everything one pipeline run needs to know about the environment."""

    scanner: str = "rg"
    selector: str = "fzf"
    use_ignore_files: bool = True
    file_types: tuple[str, ...] = ()
    todo_search_pattern: str = DEFAULT_TODO_SEARCH_PATTERN
    open_command: str = ""
    previews: Mapping[SearchMode, PreviewSettings] = field(default_factory=lambda: dict(DEFAULT_PREVIEWS))
    cache: CacheSettings = field(default_factory=CacheSettings)

    def preview_for(self, mode: SearchMode) -> PreviewSettings:
        return self.previews.get(mode, DEFAULT_PREVIEWS[mode])

    def filters(self) -> SearchFilters:
        return SearchFilters(use_ignore_files=self.use_ignore_files, file_types=frozenset(self.file_types))


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object.

    Returns an empty dict when the file is missing, unreadable, malformed, or
    does not decode to a top-level JSON object.
    """
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def _parse_flag(value: object, default: bool) -> bool:
    """Accept JSON booleans and the ``"0"``/``"1"`` strings the editor exports."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip().lower()
        if stripped in {"1", "true", "yes", "on"}:
            return True
        if stripped in {"0", "false", "no", "off"}:
            return False
    return default


def _parse_type_filter(value: object) -> tuple[str, ...] | None:
    if isinstance(value, str):
        parts = value.split(":")
    elif isinstance(value, list):
        parts = [item for item in value if isinstance(item, str)]
    else:
        return None
    return tuple(part.strip() for part in parts if part.strip())


def _non_empty_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _apply_preview(base: PreviewSettings, enabled: object, command: object, window: object) -> PreviewSettings:
    return PreviewSettings(
        enabled=_parse_flag(enabled, base.enabled),
        command=_non_empty_str(command) or base.command,
        window=_non_empty_str(window) or base.window,
    )


def settings_from_config(data: Mapping[str, object]) -> PickerSettings:
    """Build settings from a decoded config file; unknown or invalid keys are ignored."""
    settings = PickerSettings()
    type_filter = _parse_type_filter(data.get("type_filter"))

    previews = dict(settings.previews)
    raw_previews = data.get("previews")
    if isinstance(raw_previews, dict):
        for mode in SearchMode:
            raw = raw_previews.get(mode.value)
            if isinstance(raw, dict):
                previews[mode] = _apply_preview(previews[mode], raw.get("enabled"), raw.get("command"), raw.get("window"))

    return replace(
        settings,
        scanner=_non_empty_str(data.get("scanner")) or settings.scanner,
        selector=_non_empty_str(data.get("selector")) or settings.selector,
        use_ignore_files=_parse_flag(data.get("use_gitignore"), settings.use_ignore_files),
        file_types=type_filter if type_filter is not None else settings.file_types,
        todo_search_pattern=_non_empty_str(data.get("todo_search_pattern")) or settings.todo_search_pattern,
        open_command=_non_empty_str(data.get("open_command")) or settings.open_command,
        previews=previews,
        cache=CacheSettings(
            directory=_non_empty_str(data.get("cache_directory")) or "",
            enabled=_parse_flag(data.get("cache_enabled"), True),
        ),
    )


def apply_environment(settings: PickerSettings, environ: Mapping[str, str]) -> PickerSettings:
    """Overlay the editor-exported environment variables on ``settings``."""
    previews = dict(settings.previews)
    for mode, prefix in PREVIEW_ENV_PREFIXES.items():
        previews[mode] = _apply_preview(
            settings.preview_for(mode),
            environ.get(f"{prefix}_PREVIEW_ENABLED"),
            environ.get(f"{prefix}_PREVIEW_COMMAND"),
            environ.get(f"{prefix}_PREVIEW_WINDOW_CONFIG"),
        )

    type_filter = _parse_type_filter(environ.get("TYPE_FILTER"))
    return replace(
        settings,
        use_ignore_files=_parse_flag(environ.get("USE_GITIGNORE"), settings.use_ignore_files),
        file_types=type_filter if type_filter else settings.file_types,
        todo_search_pattern=_non_empty_str(environ.get("FIND_TODO_FIXME_SEARCH_PATTERN")) or settings.todo_search_pattern,
        open_command=_non_empty_str(environ.get("OPEN_COMMAND_CLI")) or settings.open_command,
        previews=previews,
        cache=CacheSettings(
            directory=settings.cache.directory,
            enabled=_parse_flag(environ.get("FZF_PICKER_CACHE_ENABLED"), settings.cache.enabled),
        ),
    )


def load_settings(environ: Mapping[str, str]) -> PickerSettings:
    return apply_environment(settings_from_config(load_config()), environ)


__all__ = [
    "CONFIG_PATH",
    "CacheSettings",
    "DEFAULT_PREVIEWS",
    "DEFAULT_TODO_SEARCH_PATTERN",
    "PickerSettings",
    "PreviewSettings",
    "apply_environment",
    "load_config",
    "load_settings",
    "settings_from_config",
]
