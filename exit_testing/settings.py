"""Load exit_testing settings from config/settings.yaml."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "EXIT_TESTING_CONFIG_DIR"

_DEFAULTS: dict[str, Any] = {
    "exit_tests": {
        # Seconds to wait after SIGTERM before killing a child of a cancelled exit test
        "terminate_timeout": 5.0,
        # Exit status of a child that found no body at its source location
        "registry_miss_exit_code": 125,
    },
    "runner": {
        # Per-test-case timeout in seconds; null disables it
        "test_timeout": None,
    },
    "logging": {
        "file": "",
        "level": "WARNING",
        "log_to_console": True,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

_cached: dict[str, Any] | None = None


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base recursively. Mutates base."""
    for key, value in overlay.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_default_settings() -> dict[str, Any]:
    """Return a deep copy of default settings."""
    return _deep_copy_nested(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'exit_tests.terminate_timeout')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def reload_settings() -> None:
    """Clear the settings cache."""
    global _cached
    _cached = None


def _default_config_dir() -> Path:
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "config"


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Load settings.yaml. Returns merged defaults + file values.

    Only the default location is cached; an explicit config_dir is always read.
    """
    global _cached
    if config_dir is None and _cached is not None:
        return _cached

    path = (config_dir or _default_config_dir()) / "settings.yaml"

    result = get_default_settings()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _deep_merge(result, data)
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)

    if config_dir is None:
        _cached = result
    return result


def _deep_copy_nested(obj: Any) -> Any:
    """Return a deep copy of nested dicts/lists for defaults."""
    if isinstance(obj, dict):
        return {k: _deep_copy_nested(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_deep_copy_nested(x) for x in obj]
    return obj
