"""Command line flag definitions and the repeatable key=value header flag."""

from __future__ import annotations

from dataclasses import dataclass, field


class FlagError(ValueError):
    """Raised for malformed flag values or invalid flag combinations."""


@dataclass
class _ModeFlags:
    repl: bool = False
    cli: bool = False


@dataclass
class _CLIFlags:
    call: str = ""
    file: str = ""


@dataclass
class _REPLFlags:
    silent: bool = False


@dataclass
class _CommonFlags:
    pkg: str = ""
    service: str = ""
    path: list[str] = field(default_factory=list)
    proto: list[str] = field(default_factory=list)
    host: str = ""
    port: str = "50051"
    header: dict[str, list[str]] = field(default_factory=dict)
    web: bool = False
    reflection: bool = False
    tls: bool = False
    cacert: str = ""
    cert: str = ""
    cert_key: str = ""
    server_name: str = ""


@dataclass
class _MetaFlags:
    edit: bool = False
    edit_global: bool = False
    verbose: bool = False
    version: bool = False
    help: bool = False


@dataclass
class Flags:
    """All command line flags the application accepts."""

    mode: _ModeFlags = field(default_factory=_ModeFlags)
    cli: _CLIFlags = field(default_factory=_CLIFlags)
    repl: _REPLFlags = field(default_factory=_REPLFlags)
    common: _CommonFlags = field(default_factory=_CommonFlags)
    meta: _MetaFlags = field(default_factory=_MetaFlags)

    def validate(self) -> None:
        """Raise FlagError listing every invalid flag combination."""
        checks = [
            ("cannot specify both of --cli and --repl", self.mode.cli and self.mode.repl),
        ]
        errors = [name for name, failed in checks if failed]
        if errors:
            raise FlagError("; ".join(errors))


_QUOTE_ERROR = 'extraneous or missing " in quoted-field'


def _read_csv_record(text: str) -> list[str]:
    """Read the first comma separated record of ``text`` with strict quoting."""
    fields: list[str] = []
    i, n = 0, len(text)
    while True:
        if i < n and text[i] == '"':
            i += 1
            parts: list[str] = []
            while True:
                j = text.find('"', i)
                if j < 0:
                    raise FlagError(_QUOTE_ERROR)
                parts.append(text[i:j])
                i = j + 1
                if i < n and text[i] == '"':
                    parts.append('"')
                    i += 1
                    continue
                break
            if i < n and text[i] not in ",\r\n":
                raise FlagError(_QUOTE_ERROR)
            value = "".join(parts)
        else:
            end = i
            while end < n and text[end] not in ",\r\n":
                end += 1
            value = text[i:end]
            if '"' in value:
                raise FlagError('bare " in non-quoted-field')
            i = end
        fields.append(value)
        if i < n and text[i] == ",":
            i += 1
            continue
        return fields


def _csv_field(value: str) -> str:
    if value == "":
        return value
    needs_quotes = (
        value == r"\."
        or any(c in value for c in '"\r\n,')
        or value[0].isspace()
    )
    if needs_quotes:
        return '"' + value.replace('"', '""') + '"'
    return value


class StringToStringSliceValue:
    """A flag value collecting ``key=value`` pairs into a map of lists."""

    def __init__(self, value: dict[str, list[str]] | None = None) -> None:
        self.value: dict[str, list[str]] = dict(value) if value else {}
        self.changed = False

    def set(self, val: str) -> None:
        """Parse ``val`` (formatted as a=1,b=2) and merge it into the value."""
        count = val.count("=")
        if count == 0:
            raise FlagError(f"{val} must be formatted as key=value")
        if count == 1:
            pairs = [val.strip('"')]
        else:
            pairs = _read_csv_record(val)

        out: dict[str, list[str]] = {}
        for pair in pairs:
            kv = pair.split("=", 1)
            if len(kv) != 2:
                raise FlagError(f"{pair} must be formatted as key=value")
            out.setdefault(kv[0], []).append(kv[1])

        if not self.changed:
            self.value = out
        else:
            self.value.update(out)
        self.changed = True

    def type_name(self) -> str:
        return "slice of strings"

    def __str__(self) -> str:
        records = [f"{k}={','.join(v)}" for k, v in self.value.items()]
        line = ",".join(_csv_field(r) for r in records)
        return "[" + line.strip() + "]"