# src/todostore/storage/errors.py

"""
Typed failures raised by the store.

Callers catch TodoStoreError for "anything the store refused or could not do";
the subclasses say which layer decided.
"""

from __future__ import annotations


class TodoStoreError(Exception):
    """Base class for all store failures."""


class StorageConnectionError(TodoStoreError):
    """The backing file could not be opened, probed or is not open."""


class QueryError(TodoStoreError):
    """A single SQL statement failed inside the engine."""

    def __init__(self, message: str, *, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


class ValidationError(TodoStoreError):
    """Caller-supplied arguments violate a store invariant."""


class MigrationError(TodoStoreError):
    """Schema detection or migration could not bring the file to the current generation."""
