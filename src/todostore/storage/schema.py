# src/todostore/storage/schema.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from ..todos.dates import normalize_date_only, normalize_datetime, now_iso
from .errors import MigrationError, QueryError, StorageConnectionError

if TYPE_CHECKING:
    from ..core.ports import SqlGateway

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2"

CATEGORY_TABLE = "ms_category"
TODO_TABLE = "tr_todo"

# Executed one by one (not as a script) so they can share a transaction.
SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS app_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ms_category (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        category_type TEXT NOT NULL CHECK(category_type IN ('dated', 'plain')),
        sort_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        deleted_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tr_todo (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        id_category INTEGER NOT NULL,
        title TEXT NOT NULL,
        detail TEXT NOT NULL DEFAULT '',
        do_at TEXT,
        created_at TEXT NOT NULL,
        completed_at TEXT,
        deleted_at TEXT,
        FOREIGN KEY (id_category) REFERENCES ms_category(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_todo_category_doat ON tr_todo(id_category, do_at)",
    "CREATE INDEX IF NOT EXISTS idx_todo_category_completed ON tr_todo(id_category, completed_at)",
    "CREATE INDEX IF NOT EXISTS idx_category_type ON ms_category(category_type)",
)

# Children first: tr_todo references ms_category.
LEGACY_TABLES: tuple[str, ...] = (
    "tr_todo",
    "ms_category",
    "app_meta",
    "d_tr_todo",
    "d_ms_category",
    "test_table",
)

CATEGORY_V2_COLUMNS = frozenset({"category_type", "sort_order", "deleted_at"})
TODO_V2_COLUMNS = frozenset({"completed_at", "deleted_at"})

DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("General", "dated"),
    ("Someday", "plain"),
)


class SchemaState(StrEnum):
    EMPTY = "empty"
    PARTIAL = "partial"
    LEGACY = "legacy"
    CURRENT = "current"


@dataclass(frozen=True, slots=True)
class LegacyCategory:
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class LegacyTodo:
    id: int
    category_id: int
    title: str
    detail: str
    due_date: str
    created_at: str


def _as_row_id(value: object) -> int | None:
    """Integer id from a loosely typed legacy column; None when unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


class SchemaManager:
    """
    Brings whatever file the gateway has open to schema generation 2.

    - empty file      -> create + seed defaults
    - one table only  -> treat as legacy
    - legacy columns  -> read survivors, drop everything, recreate, re-insert
    - current         -> re-apply CREATE ... IF NOT EXISTS (no-op), re-stamp

    The legacy read and the rewrite transaction are separate steps: a crash
    between them loses the rows that were read.
    """

    def __init__(self, gateway: SqlGateway) -> None:
        self._db = gateway

    # ---- introspection ----

    async def table_exists(self, name: str) -> bool:
        res = await self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ? LIMIT 1",
            (name,),
        )
        return bool(res.rows)

    async def column_names(self, table: str) -> set[str]:
        res = await self._db.execute(f"PRAGMA table_info({table})")
        return {str(row["name"]) for row in res.rows}

    async def detect(self) -> SchemaState:
        has_category = await self.table_exists(CATEGORY_TABLE)
        has_todo = await self.table_exists(TODO_TABLE)

        if not has_category and not has_todo:
            return SchemaState.EMPTY
        if not has_category or not has_todo:
            return SchemaState.PARTIAL

        category_cols = await self.column_names(CATEGORY_TABLE)
        todo_cols = await self.column_names(TODO_TABLE)
        if CATEGORY_V2_COLUMNS <= category_cols and TODO_V2_COLUMNS <= todo_cols:
            return SchemaState.CURRENT
        return SchemaState.LEGACY

    async def schema_version(self) -> str | None:
        if not await self.table_exists("app_meta"):
            return None
        res = await self._db.execute("SELECT value FROM app_meta WHERE key = 'schema_version'")
        value = res.scalar()
        return None if value is None else str(value)

    # ---- entry point ----

    async def ensure_schema(self) -> SchemaState:
        """
        Detect and, if needed, migrate. Returns the state that was found.

        Raises MigrationError (chained to the engine failure) on any failure.
        """
        try:
            state = await self.detect()
            logger.debug("Schema state detected: %s", state.value)

            if state is SchemaState.EMPTY:
                async with self._db.transaction():
                    await self._create_schema()
                    await self._upsert_meta("schema_version", SCHEMA_VERSION)
                    await self._seed_default_categories_if_empty()
                logger.info("Schema created (generation %s).", SCHEMA_VERSION)
            elif state is SchemaState.CURRENT:
                await self._create_schema()
                await self._upsert_meta("schema_version", SCHEMA_VERSION)
                await self._seed_default_categories_if_empty()
            else:
                await self._migrate_legacy()
            return state
        except MigrationError:
            raise
        except (QueryError, StorageConnectionError) as e:
            logger.error("Schema migration failed: %s", e)
            raise MigrationError(f"Schema migration failed: {e}") from e
        except Exception as e:
            logger.exception("Schema migration failed unexpectedly")
            raise MigrationError(f"Schema migration failed: {e!r}") from e

    # ---- helpers ----

    async def _create_schema(self) -> None:
        for sql in SCHEMA_STATEMENTS:
            await self._db.execute(sql)

    async def _upsert_meta(self, key: str, value: str) -> None:
        await self._db.execute(
            """
            INSERT INTO app_meta(key, value)
            VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )

    async def _seed_default_categories_if_empty(self) -> None:
        res = await self._db.execute("SELECT COUNT(1) FROM ms_category WHERE deleted_at IS NULL")
        if int(res.scalar(0)) > 0:
            return

        now = now_iso()
        for index, (name, kind) in enumerate(DEFAULT_CATEGORIES, start=1):
            await self._db.execute(
                """
                INSERT INTO ms_category(name, category_type, sort_order, created_at, deleted_at)
                VALUES(?, ?, ?, ?, NULL)
                """,
                (name, kind, index, now),
            )
        logger.info("Seeded default categories: %s", ", ".join(n for n, _ in DEFAULT_CATEGORIES))

    async def _read_legacy_categories(self) -> list[LegacyCategory]:
        if not await self.table_exists(CATEGORY_TABLE):
            return []

        if await self.table_exists("d_ms_category"):
            sql = """
                SELECT mc.id, mc.name
                FROM ms_category mc
                LEFT JOIN d_ms_category dc ON dc.id = mc.id
                WHERE dc.id IS NULL
                ORDER BY mc.id
            """
        else:
            sql = "SELECT id, name FROM ms_category ORDER BY id"

        res = await self._db.execute(sql)
        categories: list[LegacyCategory] = []
        for r in res.rows:
            category_id = _as_row_id(r[0])
            if category_id is None:
                logger.warning("Legacy migration: dropped category with unreadable id %r", r[0])
                continue
            categories.append(LegacyCategory(id=category_id, name=str(r[1] or "")))
        return categories

    async def _read_legacy_todos(self, valid_category_ids: set[int]) -> list[LegacyTodo]:
        if not await self.table_exists(TODO_TABLE):
            return []

        if await self.table_exists("d_tr_todo"):
            sql = """
                SELECT tt.id, tt.id_category, tt.title, tt.detail, tt.do_at, tt.created_at
                FROM tr_todo tt
                LEFT JOIN d_tr_todo dt ON dt.id = tt.id
                WHERE dt.id IS NULL
                ORDER BY tt.id
            """
        else:
            sql = "SELECT id, id_category, title, detail, do_at, created_at FROM tr_todo ORDER BY id"

        res = await self._db.execute(sql)
        todos: list[LegacyTodo] = []
        dropped = 0
        for r in res.rows:
            todo_id = _as_row_id(r[0])
            category_id = _as_row_id(r[1])
            due_date = normalize_date_only(r[4])
            if todo_id is None or category_id not in valid_category_ids or due_date is None:
                dropped += 1
                continue
            todos.append(
                LegacyTodo(
                    id=todo_id,
                    category_id=category_id,
                    title=str(r[2] or ""),
                    detail=str(r[3] or ""),
                    due_date=due_date,
                    created_at=normalize_datetime(r[5]),
                )
            )
        if dropped:
            logger.warning("Legacy migration: dropped %d unreadable todo rows", dropped)
        return todos

    async def _migrate_legacy(self) -> None:
        categories = await self._read_legacy_categories()
        todos = await self._read_legacy_todos({c.id for c in categories})
        logger.info(
            "Migrating legacy schema: categories=%d todos=%d", len(categories), len(todos)
        )

        now = now_iso()
        async with self._db.transaction():
            for table in LEGACY_TABLES:
                await self._db.execute(f"DROP TABLE IF EXISTS {table}")
            await self._create_schema()

            if categories:
                for index, c in enumerate(categories, start=1):
                    await self._db.execute(
                        """
                        INSERT INTO ms_category(id, name, category_type, sort_order, created_at, deleted_at)
                        VALUES(?, ?, 'dated', ?, ?, NULL)
                        """,
                        (c.id, c.name, index, now),
                    )
            else:
                await self._seed_default_categories_if_empty()

            for t in todos:
                await self._db.execute(
                    """
                    INSERT INTO tr_todo(id, id_category, title, detail, do_at, created_at, completed_at, deleted_at)
                    VALUES(?, ?, ?, ?, ?, ?, NULL, NULL)
                    """,
                    (t.id, t.category_id, t.title, t.detail, t.due_date, t.created_at),
                )

            await self._upsert_meta("schema_version", SCHEMA_VERSION)

        logger.info("Legacy migration finished (generation %s).", SCHEMA_VERSION)
