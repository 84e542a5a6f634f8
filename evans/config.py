"""Config structures, and loading that merges the global config file, a project
local config file and command line flags."""

from __future__ import annotations

import copy
import csv
import io
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import tomli
import tomli_w

from evans import xdg
from evans.cache import APP_NAME, VERSION
from evans.migrate import migrate

logger = logging.getLogger(__name__)

LOCAL_CONFIG_NAME = ".evans.toml"
GLOBAL_CONFIG_NAME = "config.toml"


class ConfigError(Exception):
    """Raised when a config cannot be loaded, written or edited."""


class ValidationError(ConfigError):
    """Raised when a config holds invalid conditions."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors = list(errors)
        super().__init__("invalid config condition: " + "; ".join(self.errors))


@dataclass(frozen=True)
class Flag:
    """A parsed command line flag: its type name and its string form."""

    name: str
    type_name: str
    value: str
    changed: bool = False


@dataclass
class Server:
    host: str = ""
    port: str = ""
    reflection: bool = False
    tls: bool = False
    name: str = ""


@dataclass
class Request:
    header: dict[str, list[str]] = field(default_factory=dict)
    web: bool = False
    ca_cert_file: str = ""
    cert_file: str = ""
    cert_key_file: str = ""


@dataclass
class REPL:
    prompt_format: str = ""
    input_prompt_format: str = ""
    colored_output: bool = False
    silent: bool = False
    splash_text_path: str = ""
    history_size: int = 0


@dataclass
class Meta:
    config_version: str = ""
    auto_update: bool = False
    update_level: str = ""


@dataclass
class Default:
    proto_path: list[str] = field(default_factory=list)
    proto_file: list[str] = field(default_factory=list)
    package: str = ""
    service: str = ""


@dataclass
class Log:
    prefix: str = ""


def default_values() -> dict[str, Any]:
    """The default config as a nested mapping keyed like the config file."""
    return {
        "default": {
            "protoPath": [""],
            "protoFile": [""],
            "package": "",
            "service": "",
        },
        # The layout of the config changed at v0.6.11.
        "meta": {
            "configVersion": "0.6.10",
            "autoUpdate": False,
            "updateLevel": "patch",
        },
        "repl": {
            "promptFormat": "{package}.{service}@{addr}:{port}",
            "inputPromptFormat": "{ancestor}{name} ({type}) => ",
            "coloredOutput": True,
            "silent": False,
            "splashTextPath": "",
            "historySize": 100,
        },
        "server": {
            "host": "127.0.0.1",
            "port": "50051",
            "reflection": False,
            "tls": False,
            "name": "",
        },
        "log": {"prefix": "evans: "},
        "request": {
            "header": {"grpc-client": ["evans"]},
            "web": False,
            "caCertFile": "",
            "certFile": "",
            "certKeyFile": "",
        },
    }


_CANONICAL: dict[str, dict[str, str]] = {
    section: {name.lower(): name for name in fields}
    for section, fields in default_values().items()
}

_FLAG_KEYS = {
    "default.protoPath": "path",
    "default.protoFile": "proto",
    "default.package": "package",
    "default.service": "service",
    "server.host": "host",
    "server.port": "port",
    "server.reflection": "reflection",
    "server.tls": "tls",
    "server.name": "servername",
    "request.header": "header",
    "request.web": "web",
    "request.caCertFile": "cacert",
    "request.certFile": "cert",
    "request.certKeyFile": "certkey",
    "repl.silent": "silent",
}


def _normalize(data: dict[str, Any]) -> dict[str, Any]:
    """Map section and field names to their canonical spelling, ignoring case."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        section = key.lower()
        names = _CANONICAL.get(section)
        if names is not None and isinstance(value, dict):
            target = out.setdefault(section, {})
            for name, item in value.items():
                target[names.get(name.lower(), name)] = item
        else:
            out[section] = value
    return out


def _merge(base: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in other.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _overlay(defaults: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(defaults)
    for section, value in data.items():
        if isinstance(value, dict) and isinstance(out.get(section), dict):
            out[section].update(copy.deepcopy(value))
        else:
            out[section] = copy.deepcopy(value)
    return out


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "t", "true")
    return bool(value)


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"invalid integer value: {value!r}") from err


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [_as_str(v) for v in value]
    return [_as_str(value)]


def _as_header(value: Any) -> dict[str, list[str]]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"failed to decode request.header: {value!r}")
    return {str(k): _as_str_list(v) for k, v in value.items()}


@dataclass
class Config:
    default: Default = field(default_factory=Default)
    meta: Meta = field(default_factory=Meta)
    repl: REPL = field(default_factory=REPL)
    server: Server = field(default_factory=Server)
    log: Log = field(default_factory=Log)
    request: Request = field(default_factory=Request)

    def validate(self) -> None:
        """Raise ValidationError listing every invalid condition of the config."""
        checks = [
            ("port must not be empty", not self.server.port),
            (
                "certFile config or --cert flag required",
                self.request.cert_file == "" and self.request.cert_key_file != "",
            ),
            (
                "certKeyFile config or --certkey flag required",
                self.request.cert_file != "" and self.request.cert_key_file == "",
            ),
            (
                "one or more proto files, or gRPC reflection required",
                not self.default.proto_file and not self.server.reflection,
            ),
            (
                "currently, gRPC-Web with TLS communication is not supported",
                self.request.web and self.server.tls,
            ),
        ]
        errors = [name for name, failed in checks if failed]
        if errors:
            raise ValidationError(errors)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        normalized = _normalize(data)

        def section(name: str) -> dict[str, Any]:
            value = normalized.get(name)
            return value if isinstance(value, dict) else {}

        default = section("default")
        meta = section("meta")
        repl = section("repl")
        server = section("server")
        log = section("log")
        request = section("request")
        return cls(
            default=Default(
                proto_path=_as_str_list(default.get("protoPath")),
                proto_file=_as_str_list(default.get("protoFile")),
                package=_as_str(default.get("package")),
                service=_as_str(default.get("service")),
            ),
            meta=Meta(
                config_version=_as_str(meta.get("configVersion")),
                auto_update=_as_bool(meta.get("autoUpdate")),
                update_level=_as_str(meta.get("updateLevel")),
            ),
            repl=REPL(
                prompt_format=_as_str(repl.get("promptFormat")),
                input_prompt_format=_as_str(repl.get("inputPromptFormat")),
                colored_output=_as_bool(repl.get("coloredOutput")),
                silent=_as_bool(repl.get("silent")),
                splash_text_path=_as_str(repl.get("splashTextPath")),
                history_size=_as_int(repl.get("historySize")),
            ),
            server=Server(
                host=_as_str(server.get("host")),
                port=_as_str(server.get("port")),
                reflection=_as_bool(server.get("reflection")),
                tls=_as_bool(server.get("tls")),
                name=_as_str(server.get("name")),
            ),
            log=Log(prefix=_as_str(log.get("prefix"))),
            request=Request(
                header=_as_header(request.get("header")),
                web=_as_bool(request.get("web")),
                ca_cert_file=_as_str(request.get("caCertFile")),
                cert_file=_as_str(request.get("certFile")),
                cert_key_file=_as_str(request.get("certKeyFile")),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "default": {
                "protoPath": list(self.default.proto_path),
                "protoFile": list(self.default.proto_file),
                "package": self.default.package,
                "service": self.default.service,
            },
            "meta": {
                "configVersion": self.meta.config_version,
                "autoUpdate": self.meta.auto_update,
                "updateLevel": self.meta.update_level,
            },
            "repl": {
                "promptFormat": self.repl.prompt_format,
                "inputPromptFormat": self.repl.input_prompt_format,
                "coloredOutput": self.repl.colored_output,
                "silent": self.repl.silent,
                "splashTextPath": self.repl.splash_text_path,
                "historySize": self.repl.history_size,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "reflection": self.server.reflection,
                "tls": self.server.tls,
                "name": self.server.name,
            },
            "log": {"prefix": self.log.prefix},
            "request": {
                "header": {k: list(v) for k, v in self.request.header.items()},
                "web": self.request.web,
                "caCertFile": self.request.ca_cert_file,
                "certFile": self.request.cert_file,
                "certKeyFile": self.request.cert_key_file,
            },
        }


def setup_config(cfg: Config) -> None:
    """Drop the leading empty entry of proto files and paths kept for display."""
    if cfg.default.proto_file is None:
        cfg.default.proto_file = []
    if cfg.default.proto_file and cfg.default.proto_file[0] == "":
        cfg.default.proto_file = cfg.default.proto_file[1:]
    if cfg.default.proto_path is None:
        cfg.default.proto_path = []
    if cfg.default.proto_path and cfg.default.proto_path[0] == "":
        cfg.default.proto_path = cfg.default.proto_path[1:]


def _read_csv_record(val: str) -> list[str] | None:
    try:
        return next(csv.reader(io.StringIO(val), strict=True))
    except (StopIteration, csv.Error):
        return None


def string_to_string_slice_to_map(val: str) -> dict[str, list[str]]:
    """Parse the text form of a header flag ("[a=1,b=2]"); {} on malformed input."""
    val = val.strip("[]")
    if not val:
        return {}
    pairs = _read_csv_record(val)
    if pairs is None:
        return {}
    out: dict[str, list[str]] = {}
    for pair in pairs:
        kv = pair.split("=", 1)
        if len(kv) != 2:
            return {}
        out[kv[0]] = kv[1].split(",")
    return out


def string_to_string_to_map(val: str) -> dict[str, str]:
    """Parse the text form of a key=value map flag; {} on malformed input."""
    val = val.strip("[]")
    if not val:
        return {}
    pairs = _read_csv_record(val)
    if pairs is None:
        return {}
    out: dict[str, str] = {}
    for pair in pairs:
        kv = pair.split("=", 1)
        if len(kv) != 2:
            return {}
        out[kv[0]] = kv[1]
    return out


def string_slice_to_slice(val: str) -> list[str]:
    """Parse the text form of a string slice flag ("[a,b]"); [] on malformed input."""
    val = val[1:-1]
    if not val:
        return []
    records = _read_csv_record(val)
    return records if records is not None else []


def _flag_value(flag: Flag) -> Any:
    if flag.type_name == "bool":
        return flag.value.strip().lower() == "true"
    if flag.type_name == "int":
        return _as_int(flag.value)
    return flag.value


def bind_flags(data: dict[str, Any], flags: Iterable[Flag]) -> None:
    """Apply parsed flags onto the config mapping ``data`` in place."""
    by_name = {f.name: f for f in flags}
    for key, name in _FLAG_KEYS.items():
        flag = by_name.get(name)
        if flag is None:
            logger.debug("flag is not found: %s-%s", key, name)
            continue
        section, item = key.split(".", 1)
        target = data.get(section)
        if not isinstance(target, dict):
            target = data[section] = {}

        if flag.type_name == "slice of strings":
            current = _as_header(target.get(item))
            encountered = {k: set(v) for k, v in current.items()}
            for k, values in string_to_string_slice_to_map(flag.value).items():
                for value in values:
                    if value in encountered.get(k, ()):
                        continue
                    current.setdefault(k, []).append(value)
            target[item] = current
        elif flag.type_name == "stringToString":
            current_map = {
                k: ",".join(v) for k, v in _as_header(target.get(item)).items()
            }
            current_map.update(string_to_string_to_map(flag.value))
            target[item] = current_map
        elif flag.type_name == "stringSlice":
            target[item] = _as_str_list(target.get(item)) + string_slice_to_slice(
                flag.value
            )
        elif flag.changed:
            target[item] = _flag_value(flag)


def _load(path: str | os.PathLike[str]) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return _normalize(tomli.load(f))
    except OSError as err:
        raise ConfigError(f"failed to open config file {path}: {err}") from err
    except tomli.TOMLDecodeError as err:
        raise ConfigError(f"failed to decode config file {path}: {err}") from err


def _write_toml(path: str | os.PathLike[str], data: dict[str, Any]) -> None:
    try:
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
    except (OSError, TypeError, ValueError) as err:
        raise ConfigError(f"failed to write config to {path}: {err}") from err


def write_latest_default_config(path: str | os.PathLike[str]) -> Config:
    """Write the default config, stamped with the current version, to ``path``."""
    data = default_values()
    data["meta"]["configVersion"] = VERSION
    cfg = Config.from_dict(data)
    setup_config(cfg)
    try:
        _write_toml(path, data)
    except ConfigError as err:
        raise ConfigError(
            f"failed to write the latest default config to {path}: {err}"
        ) from err
    return cfg


def _global_config_dir() -> Path:
    return Path(xdg.config_home()) / APP_NAME


def get(flags: Iterable[Flag] | None = None) -> Config:
    """Load the config from the global and local files and the given flags.

    Priority is flags > local > global > defaults.
    """
    defaults = default_values()
    cfg_dir = _global_config_dir()
    global_path = cfg_dir / GLOBAL_CONFIG_NAME

    logger.debug("load global config from %s", cfg_dir)
    if not global_path.exists():
        logger.debug("global config is not found, create a new one: %s", global_path)
        try:
            cfg_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ConfigError(f"failed to create config dirs: {err}") from err
        write_latest_default_config(global_path)

    file_data = _load(global_path)

    old = _as_str(_overlay(defaults, file_data)["meta"].get("configVersion"))
    if old != VERSION:
        migrate(old, file_data)
        logger.debug("migrated the global config to the structure of the latest version")
        _write_toml(global_path, _overlay(defaults, file_data))

    local_path = get_local_config_path()
    if local_path is None:
        logger.debug("local config is not found")
    else:
        logger.debug("load local config from %s", local_path)
        file_data = _merge(file_data, _load(local_path))

    effective = _overlay(defaults, file_data)
    if flags is None:
        logger.debug("flagset is not found")
    else:
        bind_flags(effective, flags)

    cfg = Config.from_dict(effective)
    setup_config(cfg)
    logger.debug("the conclusive config: %r", cfg)
    return cfg


def run_editor(editor: str, path: str) -> None:
    """Open ``path`` with ``editor`` attached to the terminal."""
    try:
        subprocess.run([editor, path], check=True)
    except (OSError, subprocess.CalledProcessError) as err:
        raise ConfigError(f"failed to execute {editor}: {err}") from err


def _open_in_editor(path: str, runner: Callable[[str, str], None] | None) -> None:
    editor = get_editor()
    if not editor:
        raise ConfigError("--edit requires one of $EDITOR value or Vim")
    (runner or run_editor)(editor, path)


def edit(runner: Callable[[str, str], None] | None = None) -> None:
    """Open the project local config, creating it at the project root if missing."""
    path = get_local_config_path()
    if path is None:
        logger.debug("local config is not found. create a new one in the project root.")
        root = lookup_project_root_path()
        if root is None:
            raise ConfigError("--edit must be call inside a Git project")
        path = os.path.join(root, LOCAL_CONFIG_NAME)
        logger.debug("create a new local config to %s", path)
        write_latest_default_config(path)
    _open_in_editor(path, runner)


def edit_global(runner: Callable[[str, str], None] | None = None) -> None:
    """Open the global config, creating it if missing."""
    path, found = get_global_config_path()
    if not found:
        logger.debug("global config is not found. create a new one to %s", path)
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise ConfigError(f"failed to create config dirs: {err}") from err
        write_latest_default_config(path)
    _open_in_editor(path, runner)


def get_local_config_path() -> str | None:
    """Path of the local config in the working directory or project root, if any."""
    local = Path(LOCAL_CONFIG_NAME)
    try:
        local.stat()
    except FileNotFoundError:
        root = lookup_project_root_path()
        if root is None:
            return None
        path = os.path.join(root, LOCAL_CONFIG_NAME)
        return path if os.path.exists(path) else None
    except OSError:
        return None
    return os.path.abspath(LOCAL_CONFIG_NAME)


def get_global_config_path() -> tuple[str, bool]:
    """Path of the global config and whether that file exists."""
    path = _global_config_dir() / GLOBAL_CONFIG_NAME
    return str(path), path.exists()


def lookup_project_root_path() -> str | None:
    """Relative path to the Git project root, or None outside a project."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-cdup"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return result.stdout.strip()


def get_editor() -> str:
    """$EDITOR if set, else the path of Vim, else ""."""
    env = os.environ.get("EDITOR", "")
    if env:
        return env
    return shutil.which("vim") or ""