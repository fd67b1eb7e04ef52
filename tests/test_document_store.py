import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from conftest import at
from models.database_models import UserRole
from models.document_store import (
    DocumentNotFoundError, DocumentStore, MAX_IN_VALUES, QueryLimitError,
    SERVER_TIMESTAMP, UnknownCollectionError, where
)
from models.records import ProfileRecord
from services import coursework


def test_in_filter_rejects_more_than_ten_values():
    where("id", "in", [str(i) for i in range(MAX_IN_VALUES)])
    with pytest.raises(QueryLimitError):
        where("id", "in", [str(i) for i in range(MAX_IN_VALUES + 1)])


def test_unsupported_operator():
    with pytest.raises(ValueError):
        where("id", ">", 3)


def test_empty_in_filter_matches_nothing(store, make_profile):
    make_profile("s1")
    assert store.query("profiles", where("id", "in", [])) == []
    assert store.count("profiles", where("id", "in", [])) == 0


def test_set_then_get_returns_validated_record(store, make_profile):
    make_profile("s1", UserRole.STUDENT, "Student One")
    profile = store.get("profiles", "s1")
    assert isinstance(profile, ProfileRecord)
    assert profile.full_name == "Student One"
    assert profile.role == UserRole.STUDENT
    assert profile.created_at.tzinfo is not None


def test_server_timestamp_is_resolved_on_write(store, make_profile):
    make_profile("s1")
    profile = store.update("profiles", "s1", {"last_notification_read_at": SERVER_TIMESTAMP})
    assert profile.last_notification_read_at is not None
    assert profile.last_notification_read_at.tzinfo is not None


def test_add_generates_ids_and_query_orders(store):
    first = store.add("comments", {"submission_id": "sub1", "user_id": "u1", "content": "a", "created_at": at(2)})
    second = store.add("comments", {"submission_id": "sub1", "user_id": "u2", "content": "b", "created_at": at(1)})
    assert first.id != second.id

    newest_first = store.query("comments", where("submission_id", "==", "sub1"), order_by="created_at", descending=True)
    assert [c.content for c in newest_first] == ["a", "b"]


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFoundError):
        store.update("profiles", "nobody", {"full_name": "X"})


def test_delete_reports_whether_anything_was_removed(store, make_profile):
    make_profile("s1")
    assert store.delete("profiles", "s1") is True
    assert store.delete("profiles", "s1") is False


def test_unknown_collection(store):
    with pytest.raises(UnknownCollectionError):
        store.get("grades", "x")


async def test_subscription_pushes_initial_and_later_snapshots(store, feed):
    subscription = store.subscribe("comments", where("submission_id", "in", ["sub1"]))
    assert feed.active_count() == 1

    store.add("comments", {"submission_id": "sub1", "user_id": "u1", "content": "hi", "created_at": at(1)})
    store.add("comments", {"submission_id": "other", "user_id": "u1", "content": "no", "created_at": at(2)})

    initial = await subscription.__anext__()
    after_first = await subscription.__anext__()
    after_second = await subscription.__anext__()
    assert initial == []
    assert [c.content for c in after_first] == ["hi"]
    assert [c.content for c in after_second] == ["hi"]

    subscription.cancel()
    assert feed.active_count() == 0
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(subscription.__anext__(), timeout=1)


def test_subscribe_requires_a_change_feed(db):
    with pytest.raises(RuntimeError):
        DocumentStore(db).subscribe("comments")


def test_offset_datetimes_are_stored_as_utc(store, teacher):
    due = datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=7)))
    assignment, _ = coursework.create_assignment(
        store, teacher, "A1", due_date=due,
        files=[{"file_url": "https://f/brief.pdf", "file_name": "brief.pdf", "uploaded_at": due}],
    )

    stored = store.get("assignments", assignment.id)
    assert stored.due_date == datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)
    assert stored.due_date.utcoffset() == timedelta(0)
    assert stored.files[0].uploaded_at == datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)


async def test_failed_subscribe_leaves_nothing_registered(store, feed, monkeypatch):
    def unavailable(*args, **kwargs):
        raise ConnectionError("backend unavailable")

    monkeypatch.setattr(store, "_run_query", unavailable)
    with pytest.raises(ConnectionError):
        store.subscribe("comments", where("submission_id", "==", "sub1"))
    assert feed.active_count() == 0

    monkeypatch.undo()
    store.add("comments", {"submission_id": "sub1", "user_id": "u1", "content": "hi", "created_at": at(1)})
    assert feed.active_count() == 0


async def test_snapshots_arrive_in_commit_order_across_threads(store, feed, session_factory):
    subscription = store.subscribe("comments", where("submission_id", "==", "sub1"))
    assert await subscription.__anext__() == []

    worker_db = session_factory()
    worker_store = DocumentStore(worker_db, feed)
    queried = threading.Event()
    release = threading.Event()
    run_query = worker_store._run_query

    def slow_query(*args, **kwargs):
        # the worker's snapshot is taken, then it stalls before pushing
        snapshot = run_query(*args, **kwargs)
        queried.set()
        release.wait(timeout=5)
        return snapshot

    worker_store._run_query = slow_query
    worker = threading.Thread(target=worker_store.add, args=("comments", {
        "submission_id": "sub1", "user_id": "u1", "content": "from worker", "created_at": at(1),
    }))
    worker.start()
    assert await asyncio.to_thread(queried.wait, 5)

    threading.Timer(0.1, release.set).start()
    store.add("comments", {"submission_id": "sub1", "user_id": "u2", "content": "from loop", "created_at": at(2)})
    await asyncio.to_thread(worker.join, 5)
    worker_db.close()

    first = await asyncio.wait_for(subscription.__anext__(), timeout=1)
    second = await asyncio.wait_for(subscription.__anext__(), timeout=1)
    assert [len(first), len(second)] == [1, 2]
    assert {c.content for c in second} == {"from worker", "from loop"}
    subscription.cancel()
