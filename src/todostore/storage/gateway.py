# src/todostore/storage/gateway.py

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import sqlite3
from collections.abc import AsyncIterator, Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from .errors import QueryError, StorageConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class QueryResult:
    rows: list[sqlite3.Row]
    rowcount: int
    lastrowid: int | None

    def scalar(self, default: Any = None) -> Any:
        """First column of the first row (or default when there are no rows)."""
        if not self.rows:
            return default
        value = self.rows[0][0]
        return default if value is None else value


class SQLiteGateway:
    """
    Owns the single SQLite connection of the process.

    Every statement runs on one dedicated worker thread, so the connection is
    never touched by two threads and at most one statement is in flight.
    Callers await each call before issuing the next one.

    The connection is opened in autocommit mode: a lone statement is atomic by
    itself, multi-statement work goes through transaction().
    """

    def __init__(self) -> None:
        self._conn: sqlite3.Connection | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._path: Path | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> Path | None:
        return self._path

    # ---- low-level helpers ----

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        if self._executor is None:
            raise StorageConnectionError("Database is not ready")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageConnectionError("Database is not ready")
        return self._conn

    @staticmethod
    def _connect(db_path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(str(db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            # sqlite opens lazily; touch the header so a corrupt file fails here.
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @staticmethod
    def _run(conn: sqlite3.Connection, sql: str, params: tuple[Any, ...]) -> QueryResult:
        cur = conn.execute(sql, params)
        try:
            rows = cur.fetchall()
            return QueryResult(rows=rows, rowcount=cur.rowcount, lastrowid=cur.lastrowid)
        finally:
            cur.close()

    # ---- public API ----

    async def open(self, db_path: str | Path) -> None:
        if self._conn is not None:
            await self.close()

        path = Path(db_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageConnectionError(f"Cannot create directory for {path}: {e}") from e

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="todostore-sqlite")
        try:
            self._conn = await self._call(self._connect, path)
        except sqlite3.Error as e:
            self._executor.shutdown(wait=False)
            self._executor = None
            raise StorageConnectionError(f"Cannot open database {path}: {e}") from e

        self._path = path
        logger.debug("SQLite opened db=%s", path)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        conn = self._require_conn()
        try:
            return await self._call(self._run, conn, sql, tuple(params))
        except sqlite3.Error as e:
            logger.debug("SQL failed: %s (%s)", e, " ".join(sql.split())[:200])
            raise QueryError(str(e), sql=sql) from e

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteGateway]:
        """BEGIN ... COMMIT; any exception inside the block rolls back and propagates."""
        await self.execute("BEGIN")
        try:
            yield self
            await self.execute("COMMIT")
        except BaseException:
            try:
                await self.execute("ROLLBACK")
            except QueryError:
                logger.warning("ROLLBACK failed after an aborted transaction.", exc_info=True)
            raise

    async def serialize(self) -> bytes:
        """Byte-for-byte image of the open database."""
        conn = self._require_conn()
        try:
            return bytes(await self._call(conn.serialize))
        except sqlite3.Error as e:
            raise QueryError(f"Cannot serialize database: {e}") from e

    async def close(self) -> None:
        """Best-effort: a failing close is logged and ignored."""
        conn, self._conn = self._conn, None
        executor = self._executor
        if conn is not None and executor is not None:
            try:
                await self._call(conn.close)
            except Exception:
                logger.debug("SQLite close failed.", exc_info=True)
        if executor is not None:
            executor.shutdown(wait=False)
            self._executor = None
        if conn is not None:
            logger.debug("SQLite closed db=%s", self._path)
