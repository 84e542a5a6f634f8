"""Base directories following the XDG convention."""

from __future__ import annotations

import os
from pathlib import Path


def _resolve(env_name: str, *fallback: str) -> str:
    value = os.environ.get(env_name, "")
    if value:
        return value
    return str(Path.home().joinpath(*fallback))


def cache_home() -> str:
    """Return $XDG_CACHE_HOME, or the default cache directory."""
    return _resolve("XDG_CACHE_HOME", ".cache")


def config_home() -> str:
    """Return $XDG_CONFIG_HOME, or the default config directory."""
    return _resolve("XDG_CONFIG_HOME", ".config")