# src/todostore/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the store.

The schema manager and the todo store depend on this Protocol, not on the
concrete SQLite gateway, so the transport (in-process thread, remote worker)
stays swappable and tests can wrap it.
"""

from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any, Protocol, Sequence

from ..storage.gateway import QueryResult


class SqlGateway(Protocol):
    """One logical connection with a single in-flight request at a time."""

    @property
    def is_open(self) -> bool: ...

    @property
    def path(self) -> Path | None: ...

    async def open(self, db_path: str | Path) -> None: ...

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> QueryResult: ...

    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    async def serialize(self) -> bytes: ...

    async def close(self) -> None: ...
