# evans

Support code for an interactive gRPC client: layered TOML configuration,
a persistent cache, console output helpers, command-line flag state and a
self-update workflow.

## Modules

- `evans.cui` — console output. `UI(writer=None, err_writer=None)` writes
  `output` and `info` to `writer` (standard output by default) and `warn` and
  `error` to `err_writer` (standard error by default), each followed by a line
  break. `new_colored(ui)` returns a `ColoredUI` that paints info blue,
  warnings yellow and errors red; an already coloured UI is returned as it is.
  Colour is used only when standard output is a terminal, `$NO_COLOR` is unset
  and `$TERM` is not `dumb`, unless `ColoredUI(ui, enabled=...)` says otherwise.
- `evans.xdg` — `cache_home()` and `config_home()` return `$XDG_CACHE_HOME`
  and `$XDG_CONFIG_HOME`, falling back to `~/.cache` and `~/.config`.
- `evans.cache` — the cache file, `evans/cache.toml` under the cache home.
  `get()` loads it as a `Cache`, creating the file when it is missing and
  resetting it when it was written by a different version. `Cache.save()`
  writes it back (or calls `save_func` when one is set).
  `UpdateInfo.update_available()` tells whether a latest version is recorded.
  Failures raise `CacheError`.
- `evans.migrate` — `migrate(old, data)` rewrites an old global config mapping
  in place, step by step, to the current layout.
- `evans.config` — the `Config` dataclass and its sections (`Default`, `Meta`,
  `REPL`, `Server`, `Log`, `Request`). `get(flags)` merges built-in defaults,
  the global config file (created when missing, migrated when older), a local
  `.evans.toml` in the working directory or the Git project root, and the given
  `Flag` values, in rising order of priority. `Config.validate()` raises
  `ValidationError` listing every invalid condition. `edit()` and
  `edit_global()` open the local or global config with `$EDITOR`, falling back
  to Vim; both accept a `runner` callable in place of starting the editor.
  Other failures raise `ConfigError`.
- `evans.flags` — `Flags` holds the command-line flag state;
  `Flags.validate()` raises `FlagError` when both `--cli` and `--repl` are
  given. `StringToStringSliceValue` parses `key=value` header flags, collecting
  several values per key, and renders them back as `[key=v1,v2,...]`.
- `evans.update` — checking for and applying updates. `check_update` picks an
  installation `Means` (or uses the one recorded in the cache) and records the
  latest version when an update exists at the configured level (`patch`,
  `minor` or `major`, see `new_updater`). `process_update` applies a recorded
  update, either automatically or after asking through a prompt, and
  `print_update_info` tells the user about it. `DummyMeans` pretends to update
  and reports `$DEV_LATEST_VERSION` (or the current version) as the latest.

## Example

```python
from evans import cache, config, cui

ui = cui.new_colored(cui.UI())

cfg = config.get(None)
try:
    cfg.validate()
except config.ValidationError as err:
    ui.error(str(err))

c = cache.get()
c.save()
```

With the built-in defaults `validate()` reports that proto files or gRPC
reflection are required.

## Defaults

The server defaults to `127.0.0.1:50051`, the prompt format to
`{package}.{service}@{addr}:{port}`, requests carry the header
`grpc-client: evans`, the update level is `patch` and the REPL keeps 100
history entries.

## What this package does not do

It installs no command and makes no gRPC calls: there is no REPL, no CLI mode
that sends requests, and no reading of proto files or server reflection. The
only real installation means provided is `DummyMeans`; other means have to be
supplied as builders to `check_update` and `process_update`.