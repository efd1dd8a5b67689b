# src/todostore/todos/store.py

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path

from ..core.ports import SqlGateway
from ..storage import backup
from ..storage.errors import MigrationError, StorageConnectionError, ValidationError
from ..storage.gateway import SQLiteGateway
from ..storage.schema import SchemaManager
from . import views
from .dates import normalize_date_only, now_iso
from .models import Category, CategoryKind, TodoItem, TodoSnapshot

logger = logging.getLogger(__name__)

DEFAULT_COMPLETED_PAGE_SIZE = 100
DEFAULT_SUGGESTION_LIMIT = 10
DEFAULT_EXPORT_FILENAME = "todo004.sqlite3"

_TODO_COLUMNS = "id, id_category, title, detail, do_at, created_at, completed_at, deleted_at"


def escape_like_pattern(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TodoStore:
    """
    Categories + todo items on top of one SQLite file.

    Every mutating call ends with a full reload into a fresh TodoSnapshot;
    nothing is patched incrementally. Read the results through `snapshot`
    (or the convenience properties) after the call returns.

    Not safe for overlapping calls: await each operation before the next.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        gateway: SqlGateway | None = None,
        completed_page_size: int = DEFAULT_COMPLETED_PAGE_SIZE,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
        export_filename: str = DEFAULT_EXPORT_FILENAME,
    ) -> None:
        self._db_path = Path(db_path)
        self._db: SqlGateway = gateway if gateway is not None else SQLiteGateway()
        self._schema = SchemaManager(self._db)
        self._snapshot = TodoSnapshot()
        self._sort = views.SortState()
        self._initialized = False

        self.completed_page_size = completed_page_size
        self.suggestion_limit = suggestion_limit
        self.export_filename = export_filename
        self.suggestions: list[str] = []

    # ---- lifecycle ----

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """Open the file, bring the schema up to date, load the first snapshot."""
        if self._initialized:
            return True

        try:
            await self._db.open(self._db_path)
            await self._schema.ensure_schema()
        except (StorageConnectionError, MigrationError):
            await self._db.close()
            raise

        self._initialized = True
        await self.refresh()
        logger.info(
            "TodoStore ready db=%s categories=%d", self._db_path, len(self._snapshot.categories)
        )
        return True

    async def close(self) -> None:
        await self._db.close()
        self._initialized = False

    async def _ensure_ready(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ---- row mapping ----

    @staticmethod
    def _row_to_category(row: sqlite3.Row) -> Category:
        return Category(
            id=int(row["id"]),
            name=str(row["name"]),
            kind=CategoryKind.from_db(row["category_type"]),
            sort_order=int(row["sort_order"] or 0),
            created_at=str(row["created_at"] or ""),
            deleted_at=None if row["deleted_at"] is None else str(row["deleted_at"]),
        )

    @staticmethod
    def _row_to_todo(row: sqlite3.Row) -> TodoItem:
        return TodoItem(
            id=int(row["id"]),
            category_id=int(row["id_category"]),
            title=str(row["title"] or ""),
            detail=str(row["detail"] or ""),
            due_date=normalize_date_only(row["do_at"]),
            created_at=str(row["created_at"] or now_iso()),
            completed_at=None if row["completed_at"] is None else str(row["completed_at"]),
            deleted_at=None if row["deleted_at"] is None else str(row["deleted_at"]),
        )

    # ---- snapshot loading ----

    async def _load_categories(self) -> list[Category]:
        res = await self._db.execute(
            """
            SELECT id, name, category_type, sort_order, created_at, deleted_at
            FROM ms_category
            WHERE deleted_at IS NULL
            ORDER BY sort_order ASC, id ASC
            """
        )
        return [self._row_to_category(r) for r in res.rows]

    async def refresh(
        self,
        *,
        include_completed: bool = False,
        limit: int = 0,
        offset: int = 0,
    ) -> TodoSnapshot:
        """
        Reload categories and items into a new snapshot.

        With include_completed, also loads one page of the completion log
        (limit <= 0 means the configured page size).
        """
        await self._ensure_ready()

        categories = await self._load_categories()
        current: dict[int, list[TodoItem]] = {c.id: [] for c in categories}
        completed: dict[int, list[TodoItem]] = {c.id: [] for c in categories}

        res = await self._db.execute(
            f"""
            SELECT {_TODO_COLUMNS}
            FROM tr_todo
            WHERE deleted_at IS NULL
            ORDER BY
                CASE WHEN completed_at IS NULL THEN 0 ELSE 1 END,
                CASE WHEN do_at IS NULL THEN 1 ELSE 0 END,
                do_at ASC,
                created_at DESC
            """
        )
        for r in res.rows:
            item = self._row_to_todo(r)
            if item.category_id in current:
                current[item.category_id].append(item)

        if include_completed:
            page_size = limit if limit > 0 else self.completed_page_size
            res = await self._db.execute(
                f"""
                SELECT {_TODO_COLUMNS}
                FROM tr_todo
                WHERE completed_at IS NOT NULL
                ORDER BY completed_at DESC
                LIMIT ? OFFSET ?
                """,
                (page_size, max(0, offset)),
            )
            for r in res.rows:
                item = self._row_to_todo(r)
                if item.category_id in completed:
                    completed[item.category_id].append(item)

        self._snapshot = TodoSnapshot.build(
            version=self._snapshot.version + 1,
            categories=categories,
            current=current,
            completed=completed,
        )
        return self._snapshot

    # ---- read API ----

    @property
    def snapshot(self) -> TodoSnapshot:
        return self._snapshot

    @property
    def list_category(self) -> list[Category]:
        return list(self._snapshot.categories)

    @property
    def current_todo(self):
        return self._snapshot.current

    @property
    def completed_todo(self):
        return self._snapshot.completed

    @property
    def calendar_todo(self) -> views.CalendarView:
        return views.calendar_todo(self._snapshot)

    @property
    def date_span(self) -> list[str]:
        return views.date_span(self._snapshot)

    def category_kind(self, category_id: int) -> CategoryKind:
        category = self._snapshot.category(category_id)
        return category.kind if category is not None else CategoryKind.DATED

    def max_items_per_category(self) -> int:
        return max((len(self._snapshot.current.get(c.id, ())) for c in self._snapshot.categories), default=0)

    # ---- categories ----

    async def add_category(self, name: str, kind: str | CategoryKind = CategoryKind.DATED) -> int | None:
        """Append a category at the end of the order. Blank names are ignored."""
        normalized = (name or "").strip()
        if not normalized:
            return None
        category_kind = CategoryKind.parse(kind)
        await self._ensure_ready()

        res = await self._db.execute(
            "SELECT IFNULL(MAX(sort_order), 0) FROM ms_category WHERE deleted_at IS NULL"
        )
        next_sort_order = int(res.scalar(0)) + 1

        res = await self._db.execute(
            """
            INSERT INTO ms_category(name, category_type, sort_order, created_at, deleted_at)
            VALUES(?, ?, ?, ?, NULL)
            """,
            (normalized, category_kind.value, next_sort_order, now_iso()),
        )
        category_id = int(res.lastrowid) if res.lastrowid is not None else None
        logger.debug("Category added id=%s kind=%s sort=%s", category_id, category_kind.value, next_sort_order)

        await self.refresh()
        return category_id

    async def change_category_kind(self, category_id: int, kind: str | CategoryKind) -> None:
        """
        Switching to plain clears the due date of every open item in the
        category; completed items keep theirs as history.
        """
        category_kind = CategoryKind.parse(kind)
        await self._ensure_ready()

        async with self._db.transaction():
            res = await self._db.execute(
                """
                UPDATE ms_category
                SET category_type = ?
                WHERE id = ?
                  AND deleted_at IS NULL
                """,
                (category_kind.value, int(category_id)),
            )
            if res.rowcount != 1:
                raise ValidationError(f"Category not found: {category_id}")

            if category_kind is CategoryKind.PLAIN:
                await self._db.execute(
                    """
                    UPDATE tr_todo
                    SET do_at = NULL
                    WHERE id_category = ?
                      AND deleted_at IS NULL
                      AND completed_at IS NULL
                    """,
                    (int(category_id),),
                )

        logger.info("Category %s kind -> %s", category_id, category_kind.value)
        await self.refresh()

    async def soft_delete_category(self, category_id: int) -> None:
        """Mark the category and all of its live items deleted with one timestamp."""
        await self._ensure_ready()
        now = now_iso()

        async with self._db.transaction():
            res = await self._db.execute(
                """
                UPDATE ms_category
                SET deleted_at = ?
                WHERE id = ?
                  AND deleted_at IS NULL
                """,
                (now, int(category_id)),
            )
            if res.rowcount != 1:
                raise ValidationError(f"Category not found: {category_id}")

            res = await self._db.execute(
                """
                UPDATE tr_todo
                SET deleted_at = ?
                WHERE id_category = ?
                  AND deleted_at IS NULL
                """,
                (now, int(category_id)),
            )

        logger.info("Category %s deleted (items cascaded=%d)", category_id, res.rowcount)
        await self.refresh()

    async def reorder_categories(self, ordered_ids: list[int]) -> None:
        """ordered_ids must be a permutation of the live category ids."""
        await self._ensure_ready()

        current_ids = [c.id for c in self._snapshot.categories]
        requested = [int(x) for x in ordered_ids]
        if (
            len(requested) != len(current_ids)
            or len(set(requested)) != len(requested)
            or set(requested) != set(current_ids)
        ):
            raise ValidationError("Invalid category order")

        async with self._db.transaction():
            for index, category_id in enumerate(requested, start=1):
                await self._db.execute(
                    """
                    UPDATE ms_category
                    SET sort_order = ?
                    WHERE id = ?
                      AND deleted_at IS NULL
                    """,
                    (index, category_id),
                )

        await self.refresh()

    # ---- todos ----

    async def add_todo(
        self,
        category_id: int,
        title: str,
        detail: str = "",
        due_date_input: object = None,
    ) -> int:
        await self._ensure_ready()

        category = self._snapshot.category(int(category_id))
        if category is None:
            raise ValidationError("Category not found")

        normalized_title = (title or "").strip()
        if not normalized_title:
            raise ValidationError("Title is required")

        due_date: str | None = None
        if category.kind is CategoryKind.DATED:
            due_date = normalize_date_only(due_date_input)
            if due_date is None:
                raise ValidationError("Date is required for dated category")

        res = await self._db.execute(
            """
            INSERT INTO tr_todo(id_category, title, detail, do_at, created_at, completed_at, deleted_at)
            VALUES(?, ?, ?, ?, ?, NULL, NULL)
            """,
            (category.id, normalized_title, (detail or "").strip(), due_date, now_iso()),
        )
        if res.lastrowid is None:
            raise RuntimeError("SQLite did not return lastrowid for todo insert")
        todo_id = int(res.lastrowid)
        logger.debug("Todo added id=%s category=%s due=%s", todo_id, category.id, due_date)

        await self.refresh()
        return todo_id

    async def toggle_completion(self, todo_id: int) -> None:
        """Open <-> completed. Deleted items are left alone."""
        await self._ensure_ready()
        res = await self._db.execute(
            """
            UPDATE tr_todo
            SET completed_at = CASE
                WHEN completed_at IS NULL THEN ?
                ELSE NULL
            END
            WHERE id = ?
              AND deleted_at IS NULL
            """,
            (now_iso(), int(todo_id)),
        )
        if res.rowcount == 0:
            logger.debug("toggle_completion: no live todo id=%s", todo_id)
        await self.refresh()

    async def discard(self, todo_id: int) -> None:
        """Soft-delete a completed item. Open or already deleted items are rejected."""
        await self._ensure_ready()
        res = await self._db.execute(
            """
            UPDATE tr_todo
            SET deleted_at = ?
            WHERE id = ?
              AND deleted_at IS NULL
              AND completed_at IS NOT NULL
            """,
            (now_iso(), int(todo_id)),
        )
        if res.rowcount == 0:
            raise ValidationError(f"Todo {todo_id} must be completed (and not deleted) before it is discarded")
        await self.refresh()

    async def restore(self, todo_id: int) -> None:
        """Undo a completion or a discard: clears both timestamps."""
        await self._ensure_ready()
        await self._db.execute(
            """
            UPDATE tr_todo
            SET completed_at = NULL,
                deleted_at = NULL
            WHERE id = ?
            """,
            (int(todo_id),),
        )
        await self.refresh()

    async def erase_uncompleted(self, todo_id: int) -> bool:
        """Undo an add: hard-delete the row while it is still open. Returns True if a row went away."""
        await self._ensure_ready()
        res = await self._db.execute(
            """
            DELETE FROM tr_todo
            WHERE id = ?
              AND completed_at IS NULL
              AND deleted_at IS NULL
            """,
            (int(todo_id),),
        )
        await self.refresh()
        return res.rowcount == 1

    # ---- suggestions ----

    async def search_titles(self, prefix: str, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[str]:
        """
        Distinct live titles starting with prefix (case-sensitive), the most
        recently added row first.
        """
        keyword = (prefix or "").strip()
        if not keyword or limit <= 0:
            return []
        await self._ensure_ready()

        # LIKE folds ASCII case in sqlite; the substr() check keeps it exact.
        res = await self._db.execute(
            """
            SELECT title
            FROM (
                SELECT title, MAX(id) AS latest_id
                FROM tr_todo
                WHERE deleted_at IS NULL
                  AND title LIKE ? ESCAPE '\\'
                  AND substr(title, 1, ?) = ?
                GROUP BY title
            ) grouped
            ORDER BY latest_id DESC
            LIMIT ?
            """,
            (f"{escape_like_pattern(keyword)}%", len(keyword), keyword, int(limit)),
        )
        return [str(r[0]) for r in res.rows]

    async def make_suggestions(self, prefix: str) -> list[str]:
        self.suggestions = await self.search_titles(prefix, self.suggestion_limit)
        return self.suggestions

    # ---- ordering ----

    def sort_by_date(self, category_id: int) -> list[TodoItem]:
        """Flip the date direction and re-sort one category's current list."""
        ascending = self._sort.next_date_direction()
        items = self._snapshot.current.get(category_id)
        if items is None:
            return []
        ordered = views.sort_by_date(items, self.category_kind(category_id), ascending=ascending)
        self._snapshot = self._snapshot.with_current(category_id, ordered)
        return ordered

    def sort_by_title(self, category_id: int) -> list[TodoItem]:
        """Flip the title direction and re-sort one category's current list."""
        ascending = self._sort.next_title_direction()
        items = self._snapshot.current.get(category_id)
        if items is None:
            return []
        ordered = views.sort_by_title(items, ascending=ascending)
        self._snapshot = self._snapshot.with_current(category_id, ordered)
        return ordered

    # ---- export / import ----

    async def export_snapshot(self) -> bytes:
        """The whole database file as bytes."""
        await self._ensure_ready()
        return await self._db.serialize()

    async def export_to(self, directory: str | Path) -> Path:
        data = await self.export_snapshot()
        target = await asyncio.to_thread(backup.write_export, directory, self.export_filename, data)
        logger.info("Exported %d bytes to %s", len(data), target)
        return target

    async def import_snapshot(self, source: bytes | str | Path) -> None:
        """
        Replace the database with source, then migrate it.

        If the replacement cannot be opened or migrated and a database existed
        before (open or only on disk), the previous image is written back and
        re-initialized; the original error is raised either way.
        """
        data = await asyncio.to_thread(backup.read_import_source, source)

        if self._db.is_open:
            backup_blob: bytes | None = await self._db.serialize()
        else:
            backup_blob = await asyncio.to_thread(backup.read_database_file, self._db_path)

        await self.close()
        await asyncio.to_thread(backup.write_database_file, self._db_path, data)

        try:
            await self._db.open(self._db_path)
            await self._schema.ensure_schema()
        except (StorageConnectionError, MigrationError) as e:
            await self._db.close()
            if backup_blob is None:
                logger.error("Import failed and there is no backup to restore: %s", e)
                raise
            logger.warning("Import failed (%s); restoring the previous database.", e)
            await asyncio.to_thread(backup.write_database_file, self._db_path, backup_blob)
            await self._db.open(self._db_path)
            await self._schema.ensure_schema()
            self._initialized = True
            await self.refresh()
            raise

        self._initialized = True
        await self.refresh()
        logger.info(
            "Imported %d bytes into %s (categories=%d)",
            len(data),
            self._db_path,
            len(self._snapshot.categories),
        )
