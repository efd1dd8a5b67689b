# src/todostore/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..todos.store import TodoStore


@dataclass
class AppState:
    # Settings object (real Settings or a test SimpleNamespace).
    settings: object
    store: TodoStore
