from __future__ import annotations

import logging
import sys
from typing import IO

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]


class PeerTlsFormatter(logging.Formatter):
    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"[{time}] {message}"


class TermLogHandler(logging.Handler):
    """Prints log records to a terminal, or any other text stream."""

    def __init__(self, out: IO[str] | None = None, verbosity: str = "info"):
        super().__init__()
        self.file: IO[str] = out or sys.stderr
        self.formatter = PeerTlsFormatter()
        self.set_verbosity(verbosity)

    def set_verbosity(self, verbosity: str) -> None:
        if verbosity not in LogLevels:
            raise ValueError(f"Invalid log verbosity: {verbosity!r}")
        self.setLevel(verbosity.upper())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print(self.format(record), file=self.file)
        except OSError:
            # We cannot print, exit immediately.
            sys.exit(1)

    def install(self) -> None:
        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)
