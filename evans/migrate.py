"""Migration of old config file layouts to the current one."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


def _find_key(mapping: dict[str, Any], key: str) -> str | None:
    lowered = key.lower()
    for existing in mapping:
        if isinstance(existing, str) and existing.lower() == lowered:
            return existing
    return None


def _get(mapping: dict[str, Any], key: str) -> Any:
    found = _find_key(mapping, key)
    return None if found is None else mapping[found]


def _set(mapping: dict[str, Any], key: str, value: Any) -> None:
    _pop(mapping, key)
    mapping[key] = value


def _pop(mapping: dict[str, Any], key: str) -> None:
    while (found := _find_key(mapping, key)) is not None:
        del mapping[found]


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = _get(data, name)
    if not isinstance(section, dict):
        section = {}
        _set(data, name, section)
    return section


def migrate_0610_to_0611(old: str, data: dict[str, Any]) -> str:
    """Migrate a v0.6.10 or older config to the v0.6.11 layout.

    Returns the version the data now has, or "" if the data cannot be migrated.
    """
    updated = "0.6.11"
    _set(_section(data, "meta"), "configVersion", updated)

    request = _section(data, "request")
    raw_header = _get(request, "header")
    if raw_header is None:
        entries: list[dict[str, Any]] = []
    elif isinstance(raw_header, list) and all(isinstance(e, dict) for e in raw_header):
        entries = raw_header
    else:
        logger.debug("failed to unmarshal 'request.header' in v%s", old)
        return ""

    # The old layout is a list of {key, val} tables; the new one is a map.
    header: dict[str, list[str]] = {}
    for entry in entries:
        key = _get(entry, "key")
        val = _get(entry, "val")
        header["" if key is None else str(key)] = ["" if val is None else str(val)]
    _set(request, "header", header)

    # input.promptFormat moved to repl.inputPromptFormat and input was removed.
    old_input = _get(data, "input")
    if isinstance(old_input, dict):
        prompt_format = _get(old_input, "promptFormat")
        if prompt_format is not None:
            _set(_section(data, "repl"), "inputPromptFormat", prompt_format)
    _pop(data, "input")

    return updated


MIGRATION_SCRIPTS: dict[str, Callable[[str, dict[str, Any]], str]] = {
    "0.6.10": migrate_0610_to_0611,
}


def migrate(old: str, data: dict[str, Any]) -> None:
    """Apply migration scripts to ``data`` in place, starting from version ``old``.

    Each script returns the version it migrated to; migration continues from that
    version until no script is registered for it.
    """
    version = old
    while (script := MIGRATION_SCRIPTS.get(version)) is not None:
        version = script(version, data)