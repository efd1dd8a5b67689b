# src/todostore/todos/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping

from ..storage.errors import ValidationError


class CategoryKind(StrEnum):
    """
    Whether items of a category carry a due date.

    DATED items always have one, PLAIN items never do.
    """

    DATED = "dated"
    PLAIN = "plain"

    @classmethod
    def from_db(cls, raw: str | None) -> CategoryKind:
        if not raw:
            return cls.DATED
        try:
            return cls(raw)
        except ValueError:
            return cls.DATED

    @classmethod
    def parse(cls, raw: str | CategoryKind) -> CategoryKind:
        """Strict variant of from_db() for caller input."""
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown category kind: {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Category:
    id: int
    name: str
    kind: CategoryKind
    sort_order: int
    created_at: str = ""
    deleted_at: str | None = None


@dataclass(frozen=True, slots=True)
class TodoItem:
    id: int
    category_id: int
    title: str
    detail: str
    due_date: str | None  # YYYY-MM-DD
    created_at: str
    completed_at: str | None = None
    deleted_at: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


def _freeze(items: Mapping[int, list[TodoItem]]) -> Mapping[int, tuple[TodoItem, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in items.items()})


@dataclass(frozen=True, slots=True)
class TodoSnapshot:
    """
    Point-in-time copy of what the store loaded.

    Never patched in place: each reload or re-sort builds a new snapshot with
    a higher version, so a consumer holding an old one keeps a consistent view.

    current:   live (not deleted) items per category, open ones first.
    completed: a page of the completion log per category (may include discarded items).
    """

    version: int = 0
    categories: tuple[Category, ...] = ()
    current: Mapping[int, tuple[TodoItem, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    completed: Mapping[int, tuple[TodoItem, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        *,
        version: int,
        categories: list[Category],
        current: Mapping[int, list[TodoItem]],
        completed: Mapping[int, list[TodoItem]],
    ) -> TodoSnapshot:
        return cls(
            version=version,
            categories=tuple(categories),
            current=_freeze(current),
            completed=_freeze(completed),
        )

    def category(self, category_id: int) -> Category | None:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    def with_current(self, category_id: int, items: list[TodoItem]) -> TodoSnapshot:
        current = dict(self.current)
        current[category_id] = tuple(items)
        return TodoSnapshot(
            version=self.version + 1,
            categories=self.categories,
            current=MappingProxyType(current),
            completed=self.completed,
        )
