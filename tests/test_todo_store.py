# tests/test_todo_store.py

from __future__ import annotations

import pytest

from todostore.storage.errors import ValidationError
from todostore.todos.models import CategoryKind
from todostore.todos.store import TodoStore

from .conftest import query_file


def _ids(store: TodoStore) -> dict[str, int]:
    return {c.name: c.id for c in store.list_category}


@pytest.mark.asyncio
async def test_add_category_appends_and_ignores_blank_names(store: TodoStore) -> None:
    assert await store.add_category("   ", "dated") is None
    assert len(store.list_category) == 2

    new_id = await store.add_category("  Work ", CategoryKind.PLAIN)
    last = store.list_category[-1]
    assert (last.id, last.name, last.kind, last.sort_order) == (new_id, "Work", CategoryKind.PLAIN, 3)
    assert last.created_at.endswith("Z")
    assert last.deleted_at is None

    with pytest.raises(ValidationError):
        await store.add_category("Weird", "weekly")


@pytest.mark.asyncio
async def test_add_todo_validation(store: TodoStore) -> None:
    ids = _ids(store)

    with pytest.raises(ValidationError):
        await store.add_todo(999, "Ghost", "", "2025-06-01")
    with pytest.raises(ValidationError):
        await store.add_todo(ids["General"], "   ", "", "2025-06-01")
    with pytest.raises(ValidationError):
        await store.add_todo(ids["General"], "No date", "", None)
    with pytest.raises(ValidationError):
        await store.add_todo(ids["General"], "Bad date", "", "2025-02-30")

    assert query_file(store.db_path, "SELECT COUNT(*) FROM tr_todo") == [(0,)]


@pytest.mark.asyncio
async def test_plain_category_never_stores_a_due_date(store: TodoStore) -> None:
    someday = _ids(store)["Someday"]
    todo_id = await store.add_todo(someday, " Learn piano ", "  slowly ", "2025-06-01")

    (item,) = store.current_todo[someday]
    assert (item.id, item.title, item.detail, item.due_date) == (todo_id, "Learn piano", "slowly", None)
    assert store.date_span == []


@pytest.mark.asyncio
async def test_dated_item_shows_up_in_calendar_and_span(store: TodoStore) -> None:
    general = _ids(store)["General"]
    todo_id = await store.add_todo(general, "Dentist", "", "2025-06-01T09:30:00")

    assert store.date_span == ["2025-06-01"]
    bucket = store.calendar_todo["2025-06-01"]
    assert [t.id for t in bucket[general]] == [todo_id]
    assert _ids(store)["Someday"] not in bucket


@pytest.mark.asyncio
async def test_toggle_completion_flips_back_and_forth(store: TodoStore) -> None:
    general = _ids(store)["General"]
    todo_id = await store.add_todo(general, "Call mom", "", "2025-06-01")

    await store.toggle_completion(todo_id)
    (item,) = store.current_todo[general]
    assert item.completed_at is not None

    await store.toggle_completion(todo_id)
    (item,) = store.current_todo[general]
    assert item.completed_at is None


@pytest.mark.asyncio
async def test_discard_requires_completion(store: TodoStore) -> None:
    general = _ids(store)["General"]
    todo_id = await store.add_todo(general, "Taxes", "", "2025-04-15")
    before = query_file(store.db_path, "SELECT * FROM tr_todo")

    with pytest.raises(ValidationError):
        await store.discard(todo_id)
    assert query_file(store.db_path, "SELECT * FROM tr_todo") == before

    await store.toggle_completion(todo_id)
    await store.discard(todo_id)
    assert store.current_todo[general] == ()
    ((completed_at, deleted_at),) = query_file(
        store.db_path, "SELECT completed_at, deleted_at FROM tr_todo WHERE id = ?", (todo_id,)
    )
    assert completed_at is not None and deleted_at is not None

    # already discarded
    with pytest.raises(ValidationError):
        await store.discard(todo_id)

    # a deleted item can no longer be toggled
    await store.toggle_completion(todo_id)
    assert query_file(
        store.db_path, "SELECT completed_at FROM tr_todo WHERE id = ?", (todo_id,)
    ) == [(completed_at,)]


@pytest.mark.asyncio
async def test_restore_clears_completion_and_discard(store: TodoStore) -> None:
    general = _ids(store)["General"]
    todo_id = await store.add_todo(general, "Plants", "", "2025-06-01")
    await store.toggle_completion(todo_id)
    await store.discard(todo_id)

    await store.restore(todo_id)
    (item,) = store.current_todo[general]
    assert item.id == todo_id
    assert item.completed_at is None and item.deleted_at is None


@pytest.mark.asyncio
async def test_erase_uncompleted_only_removes_open_rows(store: TodoStore) -> None:
    general = _ids(store)["General"]
    open_id = await store.add_todo(general, "Oops", "", "2025-06-01")
    done_id = await store.add_todo(general, "Done", "", "2025-06-01")
    await store.toggle_completion(done_id)

    assert await store.erase_uncompleted(open_id) is True
    assert await store.erase_uncompleted(done_id) is False
    assert query_file(store.db_path, "SELECT id FROM tr_todo ORDER BY id") == [(done_id,)]


@pytest.mark.asyncio
async def test_switching_to_plain_clears_open_due_dates_only(store: TodoStore) -> None:
    general = _ids(store)["General"]
    open_id = await store.add_todo(general, "Open", "", "2025-06-01")
    done_id = await store.add_todo(general, "Done", "", "2025-06-02")
    await store.toggle_completion(done_id)

    await store.change_category_kind(general, "plain")

    assert store.category_kind(general) is CategoryKind.PLAIN
    rows = dict(query_file(store.db_path, "SELECT id, do_at FROM tr_todo"))
    assert rows == {open_id: None, done_id: "2025-06-02"}
    assert store.date_span == []

    # back to dated: nothing comes back, new items need a date again
    await store.change_category_kind(general, CategoryKind.DATED)
    with pytest.raises(ValidationError):
        await store.add_todo(general, "Needs date", "", "")

    with pytest.raises(ValidationError):
        await store.change_category_kind(12345, "plain")


@pytest.mark.asyncio
async def test_soft_delete_category_cascades_one_timestamp(store: TodoStore) -> None:
    general = _ids(store)["General"]
    open_id = await store.add_todo(general, "Open", "", "2025-06-01")
    done_id = await store.add_todo(general, "Done", "", "2025-06-02")
    await store.toggle_completion(done_id)

    await store.soft_delete_category(general)

    assert general not in _ids(store).values()
    assert general not in store.current_todo
    ((cat_deleted,),) = query_file(
        store.db_path, "SELECT deleted_at FROM ms_category WHERE id = ?", (general,)
    )
    rows = query_file(store.db_path, "SELECT id, completed_at, deleted_at FROM tr_todo ORDER BY id")
    assert [(r[0], r[2]) for r in rows] == [(open_id, cat_deleted), (done_id, cat_deleted)]
    # cascade reaches open items too, bypassing the completed-first rule
    assert rows[0][1] is None

    with pytest.raises(ValidationError):
        await store.soft_delete_category(general)


@pytest.mark.asyncio
async def test_reorder_categories_requires_a_permutation(store: TodoStore) -> None:
    work = await store.add_category("Work", "dated")
    ids = [c.id for c in store.list_category]
    general, someday = ids[0], ids[1]

    for bad in ([general, someday], [general, someday, someday], [general, someday, 999], []):
        with pytest.raises(ValidationError):
            await store.reorder_categories(bad)
        assert [c.id for c in store.list_category] == ids
        assert [c.sort_order for c in store.list_category] == [1, 2, 3]

    await store.reorder_categories([work, general, someday])
    assert [(c.id, c.sort_order) for c in store.list_category] == [(work, 1), (general, 2), (someday, 3)]

    # new categories still go to the end
    late = await store.add_category("Late", "plain")
    assert store.list_category[-1].id == late
    assert store.list_category[-1].sort_order == 4


@pytest.mark.asyncio
async def test_search_titles_prefix_recency_and_escaping(store: TodoStore) -> None:
    someday = _ids(store)["Someday"]
    for title in ("Buy milk", "buy shoes", "Buy bread", "Buy milk", "100% done", "100 push-ups", "a_b", "axb"):
        await store.add_todo(someday, title, "", None)

    assert await store.search_titles("Buy") == ["Buy milk", "Buy bread"]
    assert await store.search_titles("buy") == ["buy shoes"]
    assert await store.search_titles("Buy", limit=1) == ["Buy milk"]
    assert await store.search_titles("100%") == ["100% done"]
    assert await store.search_titles("a_") == ["a_b"]
    assert await store.search_titles("   ") == []
    assert await store.search_titles("Buy", limit=0) == []

    assert await store.make_suggestions("Buy b") == ["Buy bread"]
    assert store.suggestions == ["Buy bread"]


@pytest.mark.asyncio
async def test_search_titles_skips_discarded_rows(store: TodoStore) -> None:
    someday = _ids(store)["Someday"]
    todo_id = await store.add_todo(someday, "Secret plan", "", None)
    await store.toggle_completion(todo_id)
    assert await store.search_titles("Secret") == ["Secret plan"]

    await store.discard(todo_id)
    assert await store.search_titles("Secret") == []


@pytest.mark.asyncio
async def test_mutations_publish_new_snapshots(store: TodoStore) -> None:
    general = _ids(store)["General"]
    old = store.snapshot

    await store.add_todo(general, "Fresh", "", "2025-06-01")

    assert store.snapshot.version > old.version
    assert old.current[general] == ()
    assert [t.title for t in store.snapshot.current[general]] == ["Fresh"]


@pytest.mark.asyncio
async def test_current_lists_open_items_before_completed(store: TodoStore) -> None:
    general = _ids(store)["General"]
    late = await store.add_todo(general, "Late", "", "2025-06-09")
    early = await store.add_todo(general, "Early", "", "2025-06-01")
    done = await store.add_todo(general, "Done", "", "2025-05-01")
    await store.toggle_completion(done)

    assert [t.id for t in store.current_todo[general]] == [early, late, done]
    assert store.max_items_per_category() == 3


@pytest.mark.asyncio
async def test_completed_log_is_paged(store: TodoStore) -> None:
    someday = _ids(store)["Someday"]
    ids = [await store.add_todo(someday, f"Task {i}", "", None) for i in range(3)]
    for todo_id in ids:
        await store.toggle_completion(todo_id)
    await store.discard(ids[0])

    snap = await store.refresh(include_completed=True)
    assert {t.id for t in snap.completed[someday]} == set(ids)

    snap = await store.refresh(include_completed=True, limit=2, offset=0)
    assert len(snap.completed[someday]) == 2

    snap = await store.refresh()
    assert snap.completed[someday] == ()


@pytest.mark.asyncio
async def test_sort_toggles_direction_on_each_call(store: TodoStore) -> None:
    general = _ids(store)["General"]
    await store.add_todo(general, "B", "", "2025-06-02")
    await store.add_todo(general, "A", "", "2025-06-01")
    await store.add_todo(general, "C", "", "2025-06-03")

    # first call flips to descending
    assert [t.title for t in store.sort_by_date(general)] == ["C", "B", "A"]
    assert [t.title for t in store.sort_by_date(general)] == ["A", "B", "C"]
    assert [t.title for t in store.current_todo[general]] == ["A", "B", "C"]

    assert [t.title for t in store.sort_by_title(general)] == ["C", "B", "A"]
    assert [t.title for t in store.sort_by_title(general)] == ["A", "B", "C"]

    assert store.sort_by_date(424242) == []


@pytest.mark.asyncio
async def test_invariants_hold_after_mixed_operations(store: TodoStore) -> None:
    ids = _ids(store)
    general, someday = ids["General"], ids["Someday"]
    work = await store.add_category("Work", "dated")

    a = await store.add_todo(general, "A", "", "2025-06-01")
    b = await store.add_todo(general, "B", "", "2025-06-02")
    await store.add_todo(someday, "C", "", "2025-06-03")
    w = await store.add_todo(work, "W", "", "2025-06-04")
    await store.toggle_completion(a)
    await store.discard(a)
    await store.toggle_completion(b)
    await store.toggle_completion(b)
    await store.change_category_kind(general, "plain")
    await store.add_todo(general, "D", "", "2025-06-05")
    await store.soft_delete_category(work)

    open_plain_dates = query_file(
        store.db_path,
        """
        SELECT t.do_at FROM tr_todo t JOIN ms_category c ON c.id = t.id_category
        WHERE c.category_type = 'plain' AND t.completed_at IS NULL
        """,
    )
    assert open_plain_dates and all(r[0] is None for r in open_plain_dates)

    deleted = query_file(
        store.db_path,
        """
        SELECT t.id, t.completed_at, c.deleted_at FROM tr_todo t
        JOIN ms_category c ON c.id = t.id_category
        WHERE t.deleted_at IS NOT NULL
        """,
    )
    assert {r[0] for r in deleted} == {a, w}
    assert all(r[1] is not None or r[2] is not None for r in deleted)
