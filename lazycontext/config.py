from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import yaml

from .log_store import LOG_LEVELS
from .models import MAX_LOG_ENTRIES, TARGET_DIR
from .registry import DEFAULT_REGISTRY_PATH


DEFAULT_CONFIG_PATHS = (
    Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    / "lazycontext"
    / "config.yaml",
    Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
    / "lazycontext"
    / "config.yml",
)


def _coerce_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"1", "true", "yes", "y", "on"}:
            return True
        if text in {"0", "false", "no", "n", "off"}:
            return False
    return default


def _coerce_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(text)
        except ValueError:
            return default
    return default


def _coerce_str(value: object, default: str) -> str:
    if isinstance(value, str):
        return value.strip() or default
    return default


@dataclass(frozen=True)
class AppConfig:
    target_dir: str = TARGET_DIR
    registry_path: str = DEFAULT_REGISTRY_PATH
    clone_depth: int = 0
    fetch_on_check: bool = False
    clone_on_add: bool = True
    sync_concurrency: int = 4
    max_log_entries: int = MAX_LOG_ENTRIES
    log_level: str = "info"


def _parse_config(data: object) -> AppConfig:
    if not isinstance(data, dict):
        return AppConfig()
    target_dir = os.path.expanduser(_coerce_str(data.get("target_dir"), TARGET_DIR))
    registry_path = os.path.expanduser(
        _coerce_str(data.get("registry_path"), DEFAULT_REGISTRY_PATH)
    )
    clone_depth = _coerce_int(data.get("clone_depth"), 0)
    fetch_on_check = _coerce_bool(data.get("fetch_on_check"), False)
    clone_on_add = _coerce_bool(data.get("clone_on_add"), True)
    sync_concurrency = _coerce_int(data.get("sync_concurrency"), 4)
    max_log_entries = _coerce_int(data.get("max_log_entries"), MAX_LOG_ENTRIES)
    log_level = _coerce_str(data.get("log_level"), "info").lower()
    if clone_depth < 0:
        clone_depth = 0
    if sync_concurrency < 1:
        sync_concurrency = 1
    if max_log_entries < 1:
        max_log_entries = 1
    if log_level not in LOG_LEVELS:
        log_level = "info"
    return AppConfig(
        target_dir=target_dir,
        registry_path=registry_path,
        clone_depth=clone_depth,
        fetch_on_check=fetch_on_check,
        clone_on_add=clone_on_add,
        sync_concurrency=sync_concurrency,
        max_log_entries=max_log_entries,
        log_level=log_level,
    )


def load_config(config_path: str | None = None) -> AppConfig:
    paths = [Path(config_path).expanduser()] if config_path else DEFAULT_CONFIG_PATHS
    for path in paths:
        if not path.exists():
            continue
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError):
            return AppConfig()
        return _parse_config(data)
    return AppConfig()
