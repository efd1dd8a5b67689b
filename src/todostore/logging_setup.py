# src/todostore/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "todostore.log"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3

# Loggers whose output is file-only below WARNING: the gateway logs every
# failed statement with its SQL at DEBUG, schema logs each migration step.
FILE_ONLY_LOGGERS: tuple[str, ...] = ("todostore.storage.gateway", "todostore.storage.schema")

_HANDLER_TAG = "_todostore_handler"


class ConsoleFilter(logging.Filter):
    """Own loggers pass (storage internals only from WARNING); anything else only from ERROR."""

    def __init__(self, file_only: tuple[str, ...] = FILE_ONLY_LOGGERS) -> None:
        super().__init__()
        self._file_only = file_only

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not (name == "todostore" or name.startswith("todostore.")):
            return record.levelno >= logging.ERROR
        if any(name == p or name.startswith(p + ".") for p in self._file_only):
            return record.levelno >= logging.WARNING
        return True


def _tagged(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console on stderr (filtered, so prompts stay readable) plus a rotating
    file with everything at file_level. Returns the log file path.

    Calling it again replaces the handlers from the previous call and leaves
    handlers installed by anyone else alone.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = _tagged(logging.StreamHandler(sys.stderr))
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(ConsoleFilter())
    root.addHandler(ch)

    fh = _tagged(
        RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
    )
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    return log_file
