# src/todostore/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from pathlib import Path
from typing import cast

from ..core.state import AppState
from ..storage.errors import TodoStoreError
from ..todos.dates import weekday_text
from ..todos.models import TodoItem

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Store refusals (validation, missing file, failed import) become the
        reply text; anything else propagates.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except TodoStoreError as e:
            logger.info("/%s refused: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def _format_item(item: TodoItem) -> str:
    mark = "x" if item.is_completed else " "
    due = f" ({item.due_date})" if item.due_date else ""
    detail = f" - {item.detail}" if item.detail else ""
    return f"  [{mark}] #{item.id} {item.title}{due}{detail}"


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_cats(state: AppState, args: list[str]) -> str:
    cats = state.store.list_category
    if not cats:
        return "No categories."
    lines = ["Categories:"]
    for c in cats:
        lines.append(f"  #{c.id} {c.name} [{c.kind.value}] (order {c.sort_order})")
    return "\n".join(lines)


async def cmd_addcat(state: AppState, args: list[str]) -> str:
    """
    /addcat <dated|plain> <name...>
    """
    if len(args) < 2:
        return "Usage: /addcat <dated|plain> <name>"
    category_id = await state.store.add_category(" ".join(args[1:]), args[0])
    return f"Category added: #{category_id}" if category_id is not None else "Nothing added."


async def cmd_kind(state: AppState, args: list[str]) -> str:
    if len(args) != 2 or _parse_int(args[0]) is None:
        return "Usage: /kind <category_id> <dated|plain>"
    await state.store.change_category_kind(int(args[0]), args[1])
    return f"Category #{args[0]} is now {args[1].lower()}."


async def cmd_delcat(state: AppState, args: list[str]) -> str:
    if len(args) != 1 or _parse_int(args[0]) is None:
        return "Usage: /delcat <category_id>"
    await state.store.soft_delete_category(int(args[0]))
    return f"Category #{args[0]} deleted."


async def cmd_order(state: AppState, args: list[str]) -> str:
    ids = [_parse_int(a) for a in args]
    if not ids or any(i is None for i in ids):
        return "Usage: /order <id> <id> ..."
    await state.store.reorder_categories([int(i) for i in ids if i is not None])
    return "Categories reordered."


async def cmd_list(state: AppState, args: list[str]) -> str:
    snap = state.store.snapshot
    lines: list[str] = []
    for c in snap.categories:
        lines.append(f"#{c.id} {c.name} [{c.kind.value}]")
        items = snap.current.get(c.id, ())
        if not items:
            lines.append("  (empty)")
        lines.extend(_format_item(i) for i in items)
    return "\n".join(lines) if lines else "No categories."


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <category_id> <YYYY-MM-DD|-> <title...>
    """
    if len(args) < 3 or _parse_int(args[0]) is None:
        return "Usage: /add <category_id> <YYYY-MM-DD|-> <title>"
    due = None if args[1] == "-" else args[1]
    todo_id = await state.store.add_todo(int(args[0]), " ".join(args[2:]), "", due)
    return f"Todo added: #{todo_id}"


def _todo_command(action: str):
    async def handler(state: AppState, args: list[str]) -> str:
        if len(args) != 1 or _parse_int(args[0]) is None:
            return f"Usage: /{action} <todo_id>"
        todo_id = int(args[0])
        if action == "done":
            await state.store.toggle_completion(todo_id)
            return f"Todo #{todo_id} toggled."
        if action == "discard":
            await state.store.discard(todo_id)
            return f"Todo #{todo_id} discarded."
        if action == "restore":
            await state.store.restore(todo_id)
            return f"Todo #{todo_id} restored."
        erased = await state.store.erase_uncompleted(todo_id)
        return f"Todo #{todo_id} erased." if erased else f"Todo #{todo_id} is not an open item."

    return handler


async def cmd_cal(state: AppState, args: list[str]) -> str:
    calendar = state.store.calendar_todo
    if not calendar:
        return "Nothing scheduled."
    names = {c.id: c.name for c in state.store.list_category}
    lines: list[str] = []
    for day, buckets in calendar.items():
        lines.append(f"{day} {weekday_text(date.fromisoformat(day))}")
        for category_id, items in buckets.items():
            for item in items:
                lines.append(f"  {names.get(category_id, category_id)}: {item.title}")
    return "\n".join(lines)


async def cmd_log(state: AppState, args: list[str]) -> str:
    """
    /log [limit] [offset] -> completion log
    """
    limit = _parse_int(args[0]) if args else 0
    offset = _parse_int(args[1]) if len(args) > 1 else 0
    snap = await state.store.refresh(include_completed=True, limit=limit or 0, offset=offset or 0)
    lines = ["Completed:"]
    for c in snap.categories:
        for item in snap.completed.get(c.id, ()):
            lines.append(f"  {item.completed_at} {c.name}: {item.title}")
    return "\n".join(lines) if len(lines) > 1 else "Nothing completed yet."


async def cmd_suggest(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /suggest <prefix>"
    titles = await state.store.make_suggestions(" ".join(args))
    return "\n".join(titles) if titles else "No suggestions."


async def cmd_sortdate(state: AppState, args: list[str]) -> str:
    if len(args) != 1 or _parse_int(args[0]) is None:
        return "Usage: /sortdate <category_id>"
    items = state.store.sort_by_date(int(args[0]))
    return "\n".join(_format_item(i) for i in items) or "(empty)"


async def cmd_sorttitle(state: AppState, args: list[str]) -> str:
    if len(args) != 1 or _parse_int(args[0]) is None:
        return "Usage: /sorttitle <category_id>"
    items = state.store.sort_by_title(int(args[0]))
    return "\n".join(_format_item(i) for i in items) or "(empty)"


async def cmd_export(state: AppState, args: list[str]) -> str:
    target_dir = Path(args[0]) if args else getattr(state.settings, "export_dir", Path("."))
    path = await state.store.export_to(target_dir)
    return f"Exported to {path}"


async def cmd_import(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    if len(args) != 1:
        return "Usage: /import <file.sqlite3>"
    if emit:
        with contextlib.suppress(Exception):
            emit("[IMPORT] Replacing the database; the current one is kept as a backup...")
    await state.store.import_snapshot(Path(args[0]))
    return f"Imported {args[0]}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("cats", cmd_cats, help_text="List categories.")
registry.register("addcat", cmd_addcat, help_text="Add a category: /addcat <dated|plain> <name>.")
registry.register("kind", cmd_kind, help_text="Change category kind: /kind <id> <dated|plain>.")
registry.register("delcat", cmd_delcat, help_text="Delete a category and its items: /delcat <id>.")
registry.register("order", cmd_order, help_text="Reorder categories: /order <id> <id> ...")
registry.register("list", cmd_list, help_text="Show open and completed items.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a todo: /add <category_id> <YYYY-MM-DD|-> <title>.")
registry.register("done", _todo_command("done"), help_text="Toggle completion: /done <id>.")
registry.register("discard", _todo_command("discard"), help_text="Discard a completed todo: /discard <id>.")
registry.register("restore", _todo_command("restore"), help_text="Restore a todo: /restore <id>.")
registry.register("undo", _todo_command("undo"), help_text="Erase a todo that was never completed: /undo <id>.")
registry.register("cal", cmd_cal, help_text="Calendar of dated items.")
registry.register("log", cmd_log, help_text="Completion log: /log [limit] [offset].")
registry.register("suggest", cmd_suggest, help_text="Title suggestions: /suggest <prefix>.")
registry.register("sortdate", cmd_sortdate, help_text="Sort a category by date (toggles): /sortdate <id>.")
registry.register("sorttitle", cmd_sorttitle, help_text="Sort a category by title (toggles): /sorttitle <id>.")
registry.register("export", cmd_export, help_text="Export the database: /export [dir].")
registry.register("import", cmd_import, help_text="Import a database file: /import <path>.")
