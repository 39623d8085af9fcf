"""Colored logging formatter for console output."""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any


class ColoredFormatter(logging.Formatter):
    """Logging formatter that applies ANSI color codes to the level name.

    Colors are disabled when the ``NO_COLOR`` environment variable is set or
    when the output stream is not a TTY. ``force_color`` overrides detection
    either way, which is how tests pin the behaviour.
    """

    COLORS: dict[int, str] = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: Any = "%",
        *,
        stream: IO[str] | None = None,
        force_color: bool | None = None,
        dim_names: bool = True,
    ) -> None:
        super().__init__(fmt, datefmt, style)
        self._stream = stream
        self._force_color = force_color
        self._dim_names = dim_names

    def _use_color(self) -> bool:
        if self._force_color is not None:
            return self._force_color
        if os.environ.get("NO_COLOR") is not None:
            return False
        stream = self._stream or sys.stdout
        return hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self._use_color():
            return super().format(record)

        # Work on a copy so other handlers still see the plain record.
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        if self._dim_names:
            colored.name = f"{self.DIM}{record.name}{self.RESET}"
        return super().format(colored)
