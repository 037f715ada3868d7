"""Tests for the store proxy's SQLAlchemy row storage."""

import pytest

from currents.store_proxy.storage import (
    KeyMismatchError,
    RowStorage,
    UnknownCollectionError,
)


@pytest.fixture
def rows():
    return RowStorage()


def test_health_check(rows):
    assert rows.health_check() is True


def test_upsert_new_then_merge(rows):
    is_new, stored = rows.upsert("chat_threads", "t1", {"id": "t1", "title": "A"})
    assert is_new is True
    assert stored == {"id": "t1", "title": "A"}

    is_new, stored = rows.upsert("chat_threads", "t1", {"id": "t1", "metadata": {"x": 1}})
    assert is_new is False
    assert stored == {"id": "t1", "title": "A", "metadata": {"x": 1}}


def test_upsert_fills_missing_key_column(rows):
    _, stored = rows.upsert("chat_drafts", "t1", {"draft_text": "wip"})
    assert stored == {"draft_text": "wip", "thread_id": "t1"}


def test_replayed_upsert_is_stable(rows):
    row = {"border_id": "b1", "axis": "y", "position": 0.4}
    rows.upsert("layout_borders", "b1", row)
    rows.upsert("layout_borders", "b1", row)

    assert rows.list_rows("layout_borders") == [row]


def test_key_mismatch(rows):
    with pytest.raises(KeyMismatchError):
        rows.upsert("chat_threads", "t1", {"id": "t2"})


def test_unknown_collection(rows):
    with pytest.raises(UnknownCollectionError):
        rows.upsert("users", "u1", {})
    with pytest.raises(UnknownCollectionError):
        rows.list_rows("users")


def test_update(rows):
    assert rows.update("chat_messages", "m1", {"content": "x"}) is None

    rows.upsert("chat_messages", "m1", {"id": "m1", "content": "a"})
    updated = rows.update("chat_messages", "m1", {"content": "b", "id": "ignored"})
    assert updated == {"id": "m1", "content": "b"}


def test_delete(rows):
    rows.upsert("chat_messages", "m1", {"id": "m1"})

    assert rows.delete("chat_messages", "m1") is True
    assert rows.delete("chat_messages", "m1") is False
    assert rows.get("chat_messages", "m1") is None


def test_collections_are_separate(rows):
    rows.upsert("chat_threads", "same", {"id": "same", "title": "thread"})
    rows.upsert("chat_messages", "same", {"id": "same", "content": "message"})

    assert rows.get("chat_threads", "same")["title"] == "thread"
    assert rows.list_rows("chat_messages") == [{"id": "same", "content": "message"}]


def test_file_database_persists(tmp_path):
    url = f"sqlite:///{tmp_path / 'store.db'}"
    RowStorage(url).upsert("chat_threads", "t1", {"id": "t1", "title": "kept"})

    assert RowStorage(url).get("chat_threads", "t1")["title"] == "kept"
