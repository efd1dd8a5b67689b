# src/todostore/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete store into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..todos.store import TodoStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def build_store(settings) -> TodoStore:
    return TodoStore(
        settings.db_path,
        completed_page_size=settings.completed_page_size,
        suggestion_limit=settings.suggestion_limit,
        export_filename=settings.export_filename,
    )


async def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState and initialize the store.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = build_store(settings)
    await store.initialize()
    return AppState(settings=settings, store=store)
