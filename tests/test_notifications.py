import asyncio
from datetime import timedelta

import pytest

from conftest import at
from models.database_models import UserRole
from models.records import CommentRecord, ProfileRecord
from services.notifications import (
    Notification, NotificationFeed, collect_notifications, count_unread, merge_slices
)


async def settle():
    for _ in range(20):
        await asyncio.sleep(0)


def comment(cid, minute, submission_id="sub1", user_id="t1"):
    return CommentRecord(id=cid, submission_id=submission_id, user_id=user_id, content=cid, created_at=at(minute))


def add_comment(store, submission_id, user_id, minute, content=None):
    return store.add("comments", {
        "submission_id": submission_id,
        "user_id": user_id,
        "content": content or f"comment at {minute}",
        "created_at": at(minute),
    })


@pytest.fixture
def coursework(store, teacher, students):
    """Teacher t1 with 12 submissions from s1 across 12 assignments"""
    submission_ids = []
    for i in range(12):
        store.set("assignments", f"a{i}", {"title": f"A{i}", "teacher_id": teacher.uid})
        submission = store.add("submissions", {
            "assignment_id": f"a{i}", "student_id": students[0].uid, "file_url": "https://f/x.pdf",
        })
        submission_ids.append(submission.id)
    return submission_ids


def test_merge_dedupes_sorts_and_caps():
    slice_a = [Notification(comment(f"a{i}", i)) for i in range(8)]
    slice_b = [Notification(comment(f"b{i}", 100 + i)) for i in range(8)] + [Notification(comment("a7", 7))]

    merged = merge_slices([slice_a, slice_b], limit=10)

    assert len(merged) == 10
    assert [n.id for n in merged[:8]] == [f"b{i}" for i in reversed(range(8))]
    assert [n.id for n in merged[8:]] == ["a7", "a6"]


def test_unread_is_strictly_newer_than_watermark():
    notifications = [Notification(comment(f"c{i}", i)) for i in range(5)]
    assert count_unread(notifications, None) == 5
    assert count_unread(notifications, at(2)) == 2
    assert count_unread(notifications, at(10)) == 0


def test_collect_skips_own_comments_and_resolves_authors(store, teacher, students, coursework):
    add_comment(store, coursework[0], teacher.uid, 1)
    add_comment(store, coursework[0], students[0].uid, 2)
    add_comment(store, coursework[11], students[0].uid, 3)

    state = collect_notifications(store, teacher)

    assert [n.created_at for n in state.notifications] == [at(3), at(2)]
    assert all(n.author.id == students[0].uid for n in state.notifications)
    assert state.unread_count == 2
    assert state.complete


def test_missing_author_leaves_author_empty(store, teacher, coursework):
    add_comment(store, coursework[0], "ghost", 1)
    state = collect_notifications(store, teacher)
    assert len(state.notifications) == 1
    assert state.notifications[0].author is None


async def test_feed_stays_capped_and_sorted_across_batches(store, feed, teacher, students, coursework):
    observed = []
    live = NotificationFeed(store, teacher)
    live.add_listener(lambda state: observed.append(state))

    async with live:
        assert live.batch_count == 2
        for minute, submission_id in enumerate(coursework * 2):
            add_comment(store, submission_id, students[0].uid, minute)
        await settle()

        assert len(live.notifications) == 10
        assert [n.created_at for n in live.notifications] == [at(m) for m in range(23, 13, -1)]
        assert live.unread_count == 10

    assert observed
    for state in observed:
        assert len(state.notifications) <= 10
        times = [n.created_at for n in state.notifications]
        assert times == sorted(times, reverse=True)
    assert feed.active_count() == 0


async def test_mark_all_read_moves_the_watermark(store, teacher, students, coursework):
    add_comment(store, coursework[0], students[0].uid, 1)
    add_comment(store, coursework[5], students[0].uid, 2)

    async with NotificationFeed(store, teacher) as live:
        await settle()
        assert live.unread_count == 2

        state = live.mark_all_read()
        assert state.unread_count == 0
        watermark = store.get("profiles", teacher.uid).last_notification_read_at
        assert watermark is not None
        assert state.last_read_at == watermark

        store.add("comments", {
            "submission_id": coursework[3], "user_id": students[0].uid,
            "content": "after", "created_at": watermark + timedelta(minutes=5),
        })
        await settle()
        assert live.unread_count == 1

    # earlier comments stay read for the next session as well
    reopened = collect_notifications(store, teacher)
    assert reopened.unread_count == 1


async def test_own_comments_never_notify(store, teacher, students, coursework):
    async with NotificationFeed(store, teacher) as live:
        add_comment(store, coursework[0], teacher.uid, 1)
        await settle()
        assert live.notifications == []
        assert live.unread_count == 0


async def test_principal_without_submissions_gets_an_empty_state(store, make_profile, session_for):
    lonely = session_for(make_profile("t9", UserRole.TEACHER))
    observed = []
    live = NotificationFeed(store, lonely)
    live.add_listener(observed.append)
    async with live:
        assert live.batch_count == 0
    assert len(observed) == 1
    assert observed[0].notifications == []


async def test_feed_runs_against_a_fake_snapshot_stream(store, teacher):
    live = NotificationFeed(store, teacher)
    author = ProfileRecord(id="s1", email="s1@example.com", full_name="S1", role=UserRole.STUDENT)
    store.set("profiles", author.id, author.model_dump(exclude={"id"}))

    live.apply_snapshot(0, [comment("x1", 5, user_id="s1"), comment("x2", 1, user_id="s1")])
    live.apply_snapshot(1, [comment("y1", 3, user_id="s1")])
    assert [n.id for n in live.notifications] == ["x1", "y1", "x2"]

    live.apply_snapshot(0, [])
    assert [n.id for n in live.notifications] == ["y1"]
    assert live.unread_count == 1


async def test_failed_start_releases_the_batches_already_open(store, feed, teacher, coursework, monkeypatch):
    subscribe = store.subscribe
    opened = []

    def second_batch_fails(*args, **kwargs):
        if opened:
            raise ConnectionError("backend unavailable")
        opened.append(subscribe(*args, **kwargs))
        return opened[-1]

    monkeypatch.setattr(store, "subscribe", second_batch_fails)
    with pytest.raises(ConnectionError):
        async with NotificationFeed(store, teacher):
            pass

    assert len(opened) == 1
    assert opened[0].cancelled
    assert feed.active_count() == 0
