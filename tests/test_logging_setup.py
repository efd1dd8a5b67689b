# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from todostore.logging_setup import LOG_FILE_NAME, ConsoleFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("todostore.todos.store", logging.DEBUG, True),
        ("todostore.storage.gateway", logging.DEBUG, False),
        ("todostore.storage.gateway", logging.WARNING, True),
        ("todostore.storage.schema", logging.INFO, False),
        ("todostore.storage.backup", logging.DEBUG, True),
        ("asyncio", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
        ("todostorex", logging.INFO, False),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert ConsoleFilter().filter(_record(name, level)) is shown


def test_setup_logging_replaces_only_its_own_handlers(tmp_path: Path) -> None:
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        setup_logging(log_dir=tmp_path / "logs")

        added = [h for h in root.handlers if h not in before]
        assert len(added) == 2
        assert all(h in root.handlers for h in before)
        assert log_file == tmp_path / "logs" / LOG_FILE_NAME

        logging.getLogger("todostore.storage.gateway").debug("SELECT broken")
        for h in added:
            h.flush()
        assert "SELECT broken" in log_file.read_text("utf-8")
    finally:
        for h in list(root.handlers):
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(level)
