from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError, ParseError
from .log_store import SUCCESS
from .models import REGISTRY_FILENAME, TARGET_DIR, RepositoryReference
from .url import RESERVED_NAMES, parse_github_url

_LOGGER = logging.getLogger(__name__)

REGISTRY_VERSION = 1
DEFAULT_REGISTRY_PATH = os.path.join(TARGET_DIR, REGISTRY_FILENAME)


@dataclass(frozen=True)
class RegistryData:
    repos: tuple[RepositoryReference, ...] = ()

    def find(self, name: str) -> Optional[RepositoryReference]:
        return next((ref for ref in self.repos if ref.name == name), None)


def derive_name(url: str) -> str:
    try:
        return parse_github_url(url).repo
    except ParseError:
        tail = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        return tail[: -len(".git")] if tail.endswith(".git") else tail


def _parse_repo(item: object, index: int) -> RepositoryReference:
    if isinstance(item, str):
        raise ConfigError(
            "Registry uses the legacy list-of-URLs format; "
            'expected {"repos": [{"name": ..., "url": ...}]}'
        )
    if not isinstance(item, dict):
        raise ConfigError(f"Registry entry {index} is not an object")
    url = item.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigError(f"Registry entry {index} has no url")
    name = item.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigError(f"Registry entry {index} has a non-string name")
    url = url.strip()
    name = name or derive_name(url)
    if not name or name in RESERVED_NAMES or "/" in name or "\\" in name:
        raise ConfigError(f"Registry entry {index} has an unusable name: {name!r}")
    return RepositoryReference(url=url, name=name)


def _parse_registry(data: object) -> RegistryData:
    if not isinstance(data, dict):
        raise ConfigError("Registry file must contain a JSON object")
    version = data.get("version", REGISTRY_VERSION)
    if version != REGISTRY_VERSION:
        raise ConfigError(f"Unsupported registry version: {version!r}")
    repos = data.get("repos")
    if not isinstance(repos, list):
        raise ConfigError('Registry file must contain a "repos" array')
    return RegistryData(
        repos=tuple(_parse_repo(item, i) for i, item in enumerate(repos))
    )


class Registry:
    """Tracked repositories, persisted as a single JSON file."""

    def __init__(self, path: str = DEFAULT_REGISTRY_PATH) -> None:
        self.path = path

    def _ensure_dir(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Failed to create {directory}: {exc}") from exc

    def _read(self) -> RegistryData:
        if not os.path.exists(self.path):
            _LOGGER.info("Registry not found at %s, starting empty", self.path)
            return RegistryData()
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid registry file format: {exc}") from exc
        except OSError as exc:
            raise ConfigError(f"Failed to read registry file: {exc}") from exc
        return _parse_registry(data)

    def _write(self, registry: RegistryData) -> None:
        self._ensure_dir()
        payload = {
            "version": REGISTRY_VERSION,
            "repos": [{"name": ref.name, "url": ref.url} for ref in registry.repos],
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(
            prefix=".registry-", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigError(f"Failed to write registry file: {exc}") from exc

    def load(self) -> RegistryData:
        self._ensure_dir()
        return self._read()

    def add_repo(self, url: str) -> RegistryData:
        url = url.strip()
        name = parse_github_url(url).repo
        registry = self._read()
        if any(ref.url == url for ref in registry.repos):
            return registry
        existing = registry.find(name)
        if existing is not None:
            raise ConfigError(
                f"Repository {name} already exists (tracked from {existing.url})"
            )
        updated = RegistryData(
            repos=registry.repos + (RepositoryReference(url=url, name=name),)
        )
        self._write(updated)
        _LOGGER.info("Added %s", name, extra={"kind": SUCCESS})
        return updated

    def remove_repo(self, name: str) -> RegistryData:
        registry = self._read()
        filtered = tuple(ref for ref in registry.repos if ref.name != name)
        if len(filtered) == len(registry.repos):
            raise ConfigError(f"Repository {name} not found")
        updated = RegistryData(repos=filtered)
        self._write(updated)
        _LOGGER.info("Removed %s", name, extra={"kind": SUCCESS})
        return updated
