"""Checking for and applying updates of the application."""

from __future__ import annotations

import io
import itertools
import logging
import os
import signal
import sys
import threading
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError
from typing import Any, Callable, Iterable, Mapping, Protocol, TextIO

from packaging.version import Version

from evans.cache import VERSION, Cache, UpdateInfo
from evans.config import Config

logger = logging.getLogger(__name__)

MEANS_TYPE_DUMMY = "dummy"

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

_UPDATE_INFO_FORMAT = """
new update available:
  current version: {current}
   latest version: {latest}

"""


class UpdateError(Exception):
    """Raised when checking for or applying an update fails."""


class MeansUnavailable(UpdateError):
    """Raised when no installation means is available."""


class Means(ABC):
    """A way the application was installed and can be updated."""

    @abstractmethod
    def installed(self) -> bool:
        """Whether the application was installed by this means."""

    @abstractmethod
    def type(self) -> str:
        """The name of this means."""

    @abstractmethod
    def latest_tag(self) -> Version:
        """The latest released version."""

    @abstractmethod
    def update(self, version: Version) -> None:
        """Install ``version``."""


class DummyMeans(Means):
    """A means for development builds that pretends to update.

    The latest version is ``latest_version``, else $DEV_LATEST_VERSION,
    else the current version.
    """

    def __init__(self, latest_version: str | None = None, delay: float = 1.0) -> None:
        if not latest_version:
            latest_version = os.environ.get("DEV_LATEST_VERSION", "") or VERSION
        self.latest_version = latest_version
        self.delay = delay

    def installed(self) -> bool:
        return True

    def type(self) -> str:
        return MEANS_TYPE_DUMMY

    def latest_tag(self) -> Version:
        return Version(self.latest_version)

    def update(self, version: Version) -> None:
        threading.Event().wait(self.delay)


MeansBuilder = Callable[[], Means]


class Prompt(Protocol):
    def select(self, message: str, options: list[str]) -> tuple[int, str]: ...


def found_patch_update(current: Version, latest: Version) -> bool:
    """Any newer version counts."""
    return latest > current


def found_minor_update(current: Version, latest: Version) -> bool:
    """A newer major or minor version counts."""
    return (latest.major, latest.minor) > (current.major, current.minor)


def found_major_update(current: Version, latest: Version) -> bool:
    """Only a newer major version counts."""
    return latest.major > current.major


class Updater:
    """Decides whether an update exists and applies it through a means."""

    def __init__(
        self,
        current: Version,
        means: Means,
        update_if: Callable[[Version, Version], bool] = found_patch_update,
    ) -> None:
        self.current = current
        self.means = means
        self.update_if = update_if

    def _latest(self) -> Version:
        try:
            return self.means.latest_tag()
        except Exception as err:
            raise UpdateError(f"failed to get the latest version: {err}") from err

    def updatable(self) -> tuple[bool, Version]:
        """Whether an update is wanted, and the latest version."""
        latest = self._latest()
        return self.update_if(self.current, latest), latest

    def update(self, cancel: threading.Event | None = None) -> None:
        """Install the latest version unless ``cancel`` is set."""
        if cancel is not None and cancel.is_set():
            raise CancelledError()
        latest = self._latest()
        if cancel is not None and cancel.is_set():
            raise CancelledError()
        self.means.update(latest)


def select_available_means(builders: Iterable[MeansBuilder]) -> Means:
    """Return the first built means that reports itself installed."""
    builders = list(builders)
    errors: list[str] = []
    for build in builders:
        try:
            means = build()
        except Exception as err:
            errors.append(str(err))
            continue
        if means.installed():
            return means
    if builders and len(errors) == len(builders):
        raise UpdateError("all means failed: " + "; ".join(errors))
    raise MeansUnavailable("no available means")


def new_updater(cfg: Config, version: Version, means: Means) -> Updater:
    """Build an updater honouring the configured update level."""
    levels = {
        "patch": found_patch_update,
        "minor": found_minor_update,
        "major": found_major_update,
    }
    update_if = levels.get(cfg.meta.update_level)
    if update_if is None:
        raise ValueError(f"unknown update level: '{cfg.meta.update_level}'")
    return Updater(version, means, update_if)


def _save(cache: Cache, message: str) -> None:
    try:
        cache.save()
    except Exception as err:
        raise UpdateError(f"{message}: {err}") from err


def _build(builder: MeansBuilder) -> Means | None:
    try:
        return builder()
    except Exception as err:
        logger.debug("failed to build a new means: %s", err)
        return None


def check_update(
    cfg: Config,
    cache: Cache,
    means_builders: Mapping[str, MeansBuilder],
    current: Version | None = None,
) -> None:
    """Record the latest version in ``cache`` if an update exists."""
    current = current if current is not None else Version(VERSION)
    if cache.update_info.installed_by == "":
        try:
            means = select_available_means(means_builders.values())
        except MeansUnavailable:
            return
        except UpdateError as err:
            raise UpdateError(
                f"failed to instantiate new means, available means not found: {err}"
            ) from err
        cache.update_info.installed_by = means.type()
        _save(cache, "failed to save a cache")
    else:
        builder = means_builders.get(cache.update_info.installed_by)
        if builder is None:
            return
        found = _build(builder)
        if found is None:
            return
        means = found

    updater = new_updater(cfg, current, means)
    try:
        updatable, latest = updater.updatable()
    except CancelledError:
        return
    except UpdateError as err:
        raise UpdateError(f"failed to check updatable: {err}") from err
    if updatable:
        cache.update_info.latest_version = str(latest)
        _save(cache, "failed to save a cache")


def _restart() -> None:
    os.execve(sys.argv[0], sys.argv, dict(os.environ))


def process_update(
    cfg: Config,
    writer: TextIO,
    cache: Cache,
    prompt: Prompt,
    means_builders: Mapping[str, MeansBuilder],
    current: Version | None = None,
    restart: Callable[[], Any] | None = None,
) -> None:
    """Apply a cached update, automatically or after asking the user."""
    if not cache.update_info.update_available():
        return
    current = current if current is not None else Version(VERSION)

    latest = Version(cache.update_info.latest_version)
    if latest <= current:
        cache.update_info = UpdateInfo()
        _save(cache, "failed to clear the cache")
        return

    builder = means_builders.get(cache.update_info.installed_by)
    if builder is None:
        return
    means = _build(builder)
    if means is None:
        return

    if cfg.meta.auto_update:
        try:
            update(io.StringIO(), new_updater(cfg, current, means), cache)
        except CancelledError:
            return
        return

    print_update_info(writer, cache.update_info.latest_version, current)

    try:
        _, selected = prompt.select("update?", ["yes", "no"])
    except Exception:
        return
    if selected == "no":
        return

    try:
        update(writer, new_updater(cfg, current, means), cache)
    except CancelledError:
        return
    except UpdateError as err:
        raise UpdateError(f"failed to update binary: {err}") from err

    try:
        (restart or _restart)()
    except OSError as err:
        raise UpdateError(f"failed to exec the command: args={sys.argv}: {err}") from err


def update(
    writer: TextIO,
    updater: Updater,
    cache: Cache,
    cancel: threading.Event | None = None,
) -> None:
    """Update to the latest version, showing a spinner; an interrupt cancels."""
    cancel = cancel if cancel is not None else threading.Event()
    outcome: dict[str, BaseException | None] = {}

    def work() -> None:
        try:
            updater.update(cancel)
            outcome["error"] = None
        except BaseException as err:
            outcome["error"] = err

    previous: dict[int, Any] = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, lambda *_: cancel.set())

    try:
        worker = threading.Thread(target=work, daemon=True)
        worker.start()
        frames = itertools.cycle(_SPINNER_FRAMES)
        while True:
            if cancel.is_set():
                raise CancelledError()
            worker.join(0.1)
            if not worker.is_alive():
                break
            writer.write(f"\r{next(frames)} updating...")
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    error = outcome.get("error")
    if error is not None and not isinstance(error, CancelledError):
        raise UpdateError(f"failed to update Evans: {error}") from error

    writer.write("\r             \r✔ updated!\n\n")
    cache.update_info = UpdateInfo()
    _save(cache, "failed to clear the cache")


def print_update_info(
    writer: TextIO, latest: str, current: Version | None = None
) -> None:
    """Tell the user that ``latest`` is available."""
    current = current if current is not None else Version(VERSION)
    writer.write(_UPDATE_INFO_FORMAT.format(current=current, latest=latest))