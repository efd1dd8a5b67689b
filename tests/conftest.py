# tests/conftest.py

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from todostore.core.state import AppState
from todostore.todos.store import TodoStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="todo004-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "todo.sqlite3",
        export_dir=tmp_path / "exports",
        export_filename="todo004.sqlite3",
        completed_page_size=100,
        suggestion_limit=10,
    )


@pytest_asyncio.fixture()
async def store(settings: SimpleNamespace) -> AsyncIterator[TodoStore]:
    """Initialized store on a fresh file (two default categories)."""
    s = TodoStore(settings.db_path, export_filename=settings.export_filename)
    await s.initialize()
    try:
        yield s
    finally:
        await s.close()


@pytest_asyncio.fixture()
async def state(settings: SimpleNamespace, store: TodoStore) -> AppState:
    return AppState(settings=settings, store=store)


def make_sqlite_file(path: Path, statements: Iterable[str | tuple[str, tuple]]) -> Path:
    """Build a database file synchronously (legacy layouts, broken layouts...)."""
    conn = sqlite3.connect(str(path))
    try:
        for stmt in statements:
            if isinstance(stmt, tuple):
                conn.execute(stmt[0], stmt[1])
            else:
                conn.execute(stmt)
        conn.commit()
    finally:
        conn.close()
    return path


def query_file(path: Path, sql: str, params: tuple = ()) -> list[tuple]:
    """Read rows straight from the file, bypassing the store."""
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


LEGACY_V1_TABLES = (
    "CREATE TABLE ms_category (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE tr_todo (id INTEGER PRIMARY KEY, id_category INTEGER, title TEXT, "
    "detail TEXT, do_at TEXT, created_at TEXT)",
)
