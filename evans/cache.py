"""Persistent cache of update information and command history."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import tomli
import tomli_w

from evans import xdg

APP_NAME = "evans"
VERSION = "0.10.3"
DEFAULT_FILE_NAME = "cache.toml"
MEANS_TYPE_UNDEFINED = ""


class CacheError(Exception):
    """Raised when the cache file cannot be read or created."""


@dataclass
class UpdateInfo:
    latest_version: str = ""
    installed_by: str = MEANS_TYPE_UNDEFINED

    def update_available(self) -> bool:
        """Whether a newer version has been recorded."""
        return self.latest_version != ""


@dataclass
class Cache:
    version: str = ""
    update_info: UpdateInfo = field(default_factory=UpdateInfo)
    command_history: list[str] = field(default_factory=list)
    save_func: Callable[[], None] | None = field(
        default=None, compare=False, repr=False
    )

    def save(self) -> None:
        """Write the cache to the cache file, or call ``save_func`` if set."""
        if self.save_func is not None:
            self.save_func()
            return
        with open(resolve_path(), "wb") as f:
            tomli_w.dump(self.to_dict(), f)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "updateInfo": {
                "latestVersion": self.update_info.latest_version,
                "installedBy": self.update_info.installed_by,
            },
            "commandHistory": list(self.command_history),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cache:
        info = data.get("updateInfo") or {}
        return cls(
            version=str(data.get("version", "")),
            update_info=UpdateInfo(
                latest_version=str(info.get("latestVersion", "")),
                installed_by=str(info.get("installedBy", MEANS_TYPE_UNDEFINED)),
            ),
            command_history=[str(s) for s in data.get("commandHistory") or []],
        )


def resolve_path() -> str:
    """Path of the cache file."""
    return os.path.join(xdg.cache_home(), APP_NAME, DEFAULT_FILE_NAME)


def init_cache_file(path: str | os.PathLike[str]) -> None:
    """Create or overwrite the cache file at ``path`` with default values."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wb") as f:
        tomli_w.dump(Cache(version=VERSION).to_dict(), f)


def _read(path: str) -> Cache:
    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
    except OSError as err:
        raise CacheError(f"failed to open the cache file: {err}") from err
    except tomli.TOMLDecodeError as err:
        raise CacheError(f"failed to decode loaded cache content: {err}") from err
    return Cache.from_dict(data)


def get() -> Cache:
    """Load the cache, creating it or clearing it when it is missing or stale."""
    path = resolve_path()
    try:
        exists = Path(path).exists()
    except OSError as err:
        raise CacheError(
            f"failed to check the existence of cache file '{path}': {err}"
        ) from err
    if not exists:
        try:
            init_cache_file(path)
        except OSError as err:
            raise CacheError(f"failed to create a new cache file: {err}") from err

    cache = _read(path)
    if cache.version == "" or cache.version != VERSION:
        try:
            init_cache_file(path)
        except OSError as err:
            raise CacheError(f"failed to clear the cache file: {err}") from err
        cache = _read(path)
    return cache