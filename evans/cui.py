"""Character user interfaces for formatted output."""

from __future__ import annotations

import os
import sys
from typing import TextIO

_BLUE = "\x1b[34m"
_YELLOW = "\x1b[33m"
_RED = "\x1b[31m"
_RESET = "\x1b[0m"


class UI:
    """Writes regular output to ``writer`` and errors to ``err_writer``."""

    def __init__(
        self,
        writer: TextIO | None = None,
        err_writer: TextIO | None = None,
    ) -> None:
        self.writer: TextIO = writer if writer is not None else sys.stdout
        self.err_writer: TextIO = err_writer if err_writer is not None else sys.stderr

    def output(self, s: str) -> None:
        """Write ``s`` followed by a line break to the writer."""
        print(s, file=self.writer)

    def info(self, s: str) -> None:
        """Same as :meth:`output`, kept distinct for composition."""
        self.output(s)

    def warn(self, s: str) -> None:
        """Same as :meth:`error`, kept distinct for composition."""
        self.error(s)

    def error(self, s: str) -> None:
        """Write ``s`` followed by a line break to the error writer."""
        print(s, file=self.err_writer)


def _colors_enabled() -> bool:
    if "NO_COLOR" in os.environ:
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


class ColoredUI:
    """Wraps a UI and colours info, warning and error messages."""

    def __init__(self, ui: UI, enabled: bool | None = None) -> None:
        self.ui = ui
        self.enabled = _colors_enabled() if enabled is None else enabled

    @property
    def writer(self) -> TextIO:
        return self.ui.writer

    @property
    def err_writer(self) -> TextIO:
        return self.ui.err_writer

    def _paint(self, code: str, s: str) -> str:
        return f"{code}{s}{_RESET}" if self.enabled else s

    def output(self, s: str) -> None:
        self.ui.output(s)

    def info(self, s: str) -> None:
        self.ui.info(self._paint(_BLUE, s))

    def warn(self, s: str) -> None:
        self.ui.warn(self._paint(_YELLOW, s))

    def error(self, s: str) -> None:
        self.ui.error(self._paint(_RED, s))


def new_colored(ui: UI | ColoredUI) -> ColoredUI:
    """Wrap ``ui`` with colour; an already coloured UI is returned as is."""
    if isinstance(ui, ColoredUI):
        return ui
    return ColoredUI(ui)