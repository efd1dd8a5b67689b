# src/todostore/storage/__init__.py

from .errors import (
    MigrationError,
    QueryError,
    StorageConnectionError,
    TodoStoreError,
    ValidationError,
)

__all__ = [
    "MigrationError",
    "QueryError",
    "StorageConnectionError",
    "TodoStoreError",
    "ValidationError",
]
