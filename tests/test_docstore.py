"""Tests for internly/docstore.py — paths, sentinels, queries and batches."""

import pytest

from internly.docstore import (
    DELETE_FIELD,
    MAX_BATCH_OPERATIONS,
    SERVER_TIMESTAMP,
    ArrayRemove,
    Increment,
    MemoryDocumentStore,
    check_collection_path,
    check_document_path,
    doc_path,
    open_document_store,
)
from internly.errors import NotFoundError
from internly.workspace import Settings, store_path


def test_path_helpers():
    assert doc_path("users", "u1", "dailyLogs") == "users/u1/dailyLogs"
    assert check_document_path("users/u1") == "users/u1"
    assert check_collection_path("users/u1/dailyLogs") == "users/u1/dailyLogs"
    with pytest.raises(ValueError):
        check_document_path("users")
    with pytest.raises(ValueError):
        check_collection_path("users/u1")
    with pytest.raises(ValueError):
        doc_path("users", "")


def test_get_missing_is_none():
    db = MemoryDocumentStore()
    assert db.get("users/nobody") is None
    assert db.exists("users/nobody") is False


def test_set_and_merge():
    db = MemoryDocumentStore()
    db.set("users/u1", {"name": "Ana", "prefs": {"a": 1}})
    db.set("users/u1", {"email": "ana@example.com", "prefs": {"b": 2}}, merge=True)
    assert db.get("users/u1") == {"name": "Ana", "email": "ana@example.com", "prefs": {"a": 1, "b": 2}}
    db.set("users/u1", {"name": "Bea"})
    assert db.get("users/u1") == {"name": "Bea"}


def test_reads_are_copies():
    db = MemoryDocumentStore()
    db.set("users/u1", {"supervisors": ["Cruz"]})
    db.get("users/u1")["supervisors"].append("Lim")
    assert db.get("users/u1")["supervisors"] == ["Cruz"]


def test_update_missing_raises():
    db = MemoryDocumentStore()
    with pytest.raises(NotFoundError):
        db.update("users/u1", {"name": "Ana"})


def test_update_dotted_paths_and_sentinels():
    db = MemoryDocumentStore()
    db.set("conversations/c1", {
        "participants": ["a", "b", "c"],
        "unreadCount": {"a": 0, "b": 2},
        "typing": {"a": "2025-01-06T00:00:00+00:00"},
    })
    db.update("conversations/c1", {
        "unreadCount.b": Increment(1),
        "unreadCount.c": Increment(1),
        "typing.a": DELETE_FIELD,
        "participants": ArrayRemove("c"),
        "lastMessageTime": SERVER_TIMESTAMP,
    })
    doc = db.get("conversations/c1")
    assert doc["unreadCount"] == {"a": 0, "b": 3, "c": 1}
    assert doc["typing"] == {}
    assert doc["participants"] == ["a", "b"]
    assert isinstance(doc["lastMessageTime"], str)


def test_delete_is_idempotent():
    db = MemoryDocumentStore()
    db.set("users/u1", {"name": "Ana"})
    db.delete("users/u1")
    db.delete("users/u1")
    assert db.get("users/u1") is None


def test_query_scopes_to_direct_children():
    db = MemoryDocumentStore()
    db.set("dailyLogs/l1", {"userId": "u1"})
    db.set("users/u1/dailyLogs/l2", {"userId": "u1"})
    assert [s.id for s in db.query("dailyLogs")] == ["l1"]
    assert [s.path for s in db.query("users/u1/dailyLogs")] == ["users/u1/dailyLogs/l2"]


def test_query_filters_orders_and_limits():
    db = MemoryDocumentStore()
    db.set("logs/a", {"userId": "u1", "entryDate": "2025-01-07", "tags": ["x"]})
    db.set("logs/b", {"userId": "u1", "entryDate": "2025-01-09", "tags": ["y"]})
    db.set("logs/c", {"userId": "u2", "entryDate": "2025-01-08", "tags": ["x"]})
    db.set("logs/d", {"userId": "u1"})

    mine = db.query("logs", where=[("userId", "==", "u1")], order_by="entryDate", descending=True)
    assert [s.id for s in mine] == ["b", "a"]
    tagged = db.query("logs", where=[("tags", "array_contains", "x")], order_by="entryDate")
    assert [s.id for s in tagged] == ["a", "c"]
    assert len(db.query("logs", order_by="entryDate", limit=1)) == 1


def test_query_rejects_unknown_operator():
    db = MemoryDocumentStore()
    db.set("logs/a", {"hours": 3})
    with pytest.raises(ValueError):
        db.query("logs", where=[("hours", ">", 2)])


def test_add_generates_id():
    db = MemoryDocumentStore()
    doc_id = db.add("supervisors", {"name": "Cruz"})
    assert db.get(f"supervisors/{doc_id}") == {"name": "Cruz"}


# ── Batches ───────────────────────────────────────────────────


def test_batch_commits_together():
    db = MemoryDocumentStore()
    db.set("logs/a", {"read": False})
    batch = db.batch()
    batch.set("logs/b", {"read": False})
    batch.update("logs/a", {"read": True})
    batch.delete("logs/zzz")
    assert len(batch) == 3
    assert db.get("logs/b") is None
    assert batch.commit() == 3
    assert db.get("logs/a") == {"read": True}
    assert db.get("logs/b") == {"read": False}
    assert len(batch) == 0


def test_empty_batch_commit():
    assert MemoryDocumentStore().batch().commit() == 0


def test_batch_operation_cap():
    batch = MemoryDocumentStore().batch()
    for i in range(MAX_BATCH_OPERATIONS):
        batch.set(f"logs/{i}", {"n": i})
    with pytest.raises(ValueError):
        batch.set("logs/one-too-many", {})


def test_failed_batch_writes_nothing():
    db = MemoryDocumentStore()
    batch = db.batch()
    batch.set("logs/a", {"n": 1})
    batch.update("logs/missing", {"n": 2})
    with pytest.raises(NotFoundError):
        batch.commit()
    assert db.get("logs/a") is None


def test_update_after_set_in_same_batch():
    db = MemoryDocumentStore()
    batch = db.batch()
    batch.set("logs/a", {"n": 1})
    batch.update("logs/a", {"n": Increment(2)})
    batch.commit()
    assert db.get("logs/a") == {"n": 3}


# ── Persistence ───────────────────────────────────────────────


def test_json_backend_persists(workspace):
    settings = Settings(store_backend="json")
    db = open_document_store(settings, workspace)
    db.set("users/u1", {"name": "Ana"})
    assert store_path(workspace).exists()

    reopened = open_document_store(settings, workspace)
    assert reopened.get("users/u1") == {"name": "Ana"}


def test_memory_backend_is_ephemeral(workspace):
    db = open_document_store(Settings(store_backend="memory"), workspace)
    db.set("users/u1", {"name": "Ana"})
    assert not store_path(workspace).exists()
