"""Persistent JSON config helpers.

Stores preview pipeline tunables under the ``"preview"`` object. All access
is defensive: a missing or malformed file, or an invalid value, falls back to
the built-in default.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "contextui"
CONFIG_FILENAME = "config.json"
CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
PREVIEW_SECTION = "preview"
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class PreviewSettings:
    style: str = "monokai"
    debounce_seconds: float = 0.1
    quick_diff_context: int = 10
    full_diff_context: int = 99999
    image_viewport_tolerance: int = 5
    max_preview_bytes: int = 512 * 1024
    max_preview_lines: int = 2000
    git_timeout_seconds: float | None = None
    cache_max_entries: int | None = None
    max_workers: int = 4
    log_level: str = "WARNING"


def load_config() -> dict[str, object]:
    """Load the persisted JSON config object, or ``{}`` when unusable."""
    try:
        data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict[str, object]) -> None:
    """Persist config as pretty-printed JSON; write failures are ignored."""
    try:
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        CONFIG_PATH.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except Exception as exc:
        logger.debug("config save failed: %s", exc)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_count(value: object, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


def validate_setting(key: str, value: object) -> bool:
    """Return whether ``value`` is acceptable for the preview setting ``key``."""
    if key == "style":
        return isinstance(value, str) and bool(value.strip())
    if key == "log_level":
        return isinstance(value, str) and value.upper() in LOG_LEVELS
    if key == "debounce_seconds":
        return _is_number(value) and 0 < value <= 10
    if key == "git_timeout_seconds":
        return value is None or (_is_number(value) and value > 0)
    if key == "cache_max_entries":
        return value is None or _is_count(value, 1)
    if key in {"quick_diff_context", "image_viewport_tolerance"}:
        return _is_count(value, 0)
    if key in {"full_diff_context", "max_preview_bytes", "max_preview_lines", "max_workers"}:
        return _is_count(value, 1)
    return False


def load_preview_settings() -> PreviewSettings:
    """Build settings from the config file, skipping invalid keys."""
    section = load_config().get(PREVIEW_SECTION)
    if not isinstance(section, dict):
        return PreviewSettings()

    overrides: dict[str, object] = {}
    for setting in fields(PreviewSettings):
        if setting.name not in section:
            continue
        value = section[setting.name]
        if not validate_setting(setting.name, value):
            logger.warning("ignoring invalid config value %s=%r", setting.name, value)
            continue
        if setting.name == "debounce_seconds" or (setting.name == "git_timeout_seconds" and value is not None):
            value = float(value)
        elif setting.name == "log_level":
            value = value.upper()
        overrides[setting.name] = value
    return replace(PreviewSettings(), **overrides)


def save_preview_setting(key: str, value: object) -> bool:
    """Persist one preview setting. Returns ``False`` for unknown or invalid values."""
    if not validate_setting(key, value):
        return False
    config = load_config()
    section = config.get(PREVIEW_SECTION)
    if not isinstance(section, dict):
        section = {}
    section[key] = value
    config[PREVIEW_SECTION] = section
    save_config(config)
    return True


__all__ = [
    "CONFIG_PATH",
    "PreviewSettings",
    "load_config",
    "load_preview_settings",
    "save_config",
    "save_preview_setting",
    "validate_setting",
]
