"""
Notification feed (change aggregator)

Keeps a live, capped, newest-first view of the comments that concern the
signed-in principal (their own comments excluded) plus an unread count
measured against the `last_notification_read_at` watermark of their profile.

Submission ids are split into batches because membership queries are capped;
each batch gets its own live subscription. Every snapshot from a batch
replaces that batch's slice, then all slices are merged, sorted by creation
time (descending) and truncated to `limit` entries.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from models.document_store import DocumentStore, SERVER_TIMESTAMP, Subscription, where
from models.records import CommentRecord, ProfileRecord
from services.batching import chunked, fetch_in_batches, relevant_submission_ids
from services.identity import SessionContext

NOTIFICATION_LIMIT = 10

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class Notification:
    comment: CommentRecord
    author: Optional[ProfileRecord] = None

    @property
    def id(self) -> str:
        return self.comment.id

    @property
    def submission_id(self) -> str:
        return self.comment.submission_id

    @property
    def created_at(self) -> datetime:
        return self.comment.created_at or _EPOCH

    def as_dict(self) -> dict:
        return {
            "id": self.comment.id,
            "submission_id": self.comment.submission_id,
            "user_id": self.comment.user_id,
            "content": self.comment.content,
            "created_at": self.comment.created_at.isoformat() if self.comment.created_at else None,
            "user": {
                "id": self.author.id,
                "full_name": self.author.full_name,
                "role": self.author.role.value,
            } if self.author else None,
        }


@dataclass
class NotificationState:
    notifications: List[Notification] = field(default_factory=list)
    unread_count: int = 0
    last_read_at: Optional[datetime] = None
    complete: bool = True

    def as_dict(self) -> dict:
        return {
            "notifications": [n.as_dict() for n in self.notifications],
            "unread_count": self.unread_count,
            "last_read_at": self.last_read_at.isoformat() if self.last_read_at else None,
            "complete": self.complete,
        }


# ============= MERGE HELPERS =============

def merge_slices(slices: Iterable[List[Notification]], limit: int = NOTIFICATION_LIMIT) -> List[Notification]:
    """Merge per-batch slices into one newest-first list of at most `limit` entries"""
    seen = set()
    merged = []
    for notifications in slices:
        for notification in notifications:
            if notification.id not in seen:
                seen.add(notification.id)
                merged.append(notification)
    merged.sort(key=lambda n: n.created_at, reverse=True)
    return merged[:limit]


def count_unread(notifications: Iterable[Notification], last_read_at: Optional[datetime]) -> int:
    notifications = list(notifications)
    if last_read_at is None:
        return len(notifications)
    return sum(1 for n in notifications if n.created_at > last_read_at)


def resolve_authors(
    store: DocumentStore,
    comments: Iterable[CommentRecord],
    principal_id: str,
) -> List[Notification]:
    """Attach author profiles, skipping the principal's own comments"""
    authors: Dict[str, Optional[ProfileRecord]] = {}
    notifications = []
    for comment in comments:
        if comment.user_id == principal_id:
            continue
        if comment.user_id not in authors:
            try:
                authors[comment.user_id] = store.get("profiles", comment.user_id)
            except Exception as e:
                logger.error(f"Error fetching comment author {comment.user_id}: {e}")
                authors[comment.user_id] = None
        notifications.append(Notification(comment=comment, author=authors[comment.user_id]))
    return notifications


def collect_notifications(
    store: DocumentStore,
    session: SessionContext,
    limit: int = NOTIFICATION_LIMIT,
    batch_size: int = 10,
) -> NotificationState:
    """One-shot version of the feed, without subscriptions"""
    submission_ids = relevant_submission_ids(store, session.profile, batch_size, allow_partial=True)
    fetched = fetch_in_batches(
        store, "comments", "submission_id", submission_ids,
        batch_size=batch_size, allow_partial=True,
    )
    notifications = merge_slices([resolve_authors(store, fetched.records, session.uid)], limit)
    last_read_at = session.profile.last_notification_read_at
    return NotificationState(
        notifications=notifications,
        unread_count=count_unread(notifications, last_read_at),
        last_read_at=last_read_at,
        complete=fetched.complete,
    )


def mark_notifications_read(store: DocumentStore, session: SessionContext) -> datetime:
    """Persist the current time as the principal's watermark and return it"""
    profile = store.update("profiles", session.uid, {
        "last_notification_read_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
    })
    session.profile = profile
    logger.info(f"Notifications marked as read for {session.uid}")
    return profile.last_notification_read_at


# ============= LIVE FEED =============

Listener = Callable[[NotificationState], None]


class NotificationFeed:
    def __init__(
        self,
        store: DocumentStore,
        session: SessionContext,
        limit: int = NOTIFICATION_LIMIT,
        batch_size: int = 10,
    ):
        self.store = store
        self.session = session
        self.limit = limit
        self.batch_size = batch_size
        self.last_read_at: Optional[datetime] = session.profile.last_notification_read_at
        self._slices: Dict[int, List[Notification]] = {}
        self._failed: set = set()
        self._notifications: List[Notification] = []
        self._unread = 0
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []
        self._listeners: List[Listener] = []
        self._started = False

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return self._unread

    @property
    def batch_count(self) -> int:
        return len(self._subscriptions)

    @property
    def state(self) -> NotificationState:
        return NotificationState(
            notifications=list(self._notifications),
            unread_count=self._unread,
            last_read_at=self.last_read_at,
            complete=not self._failed,
        )

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _publish(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        submission_ids = relevant_submission_ids(
            self.store, self.session.profile, self.batch_size, allow_partial=True
        )
        batches = chunked(submission_ids, self.batch_size)
        try:
            for index, batch in enumerate(batches):
                subscription = self.store.subscribe("comments", where("submission_id", "in", batch))
                self._subscriptions.append(subscription)
                self._tasks.append(asyncio.create_task(self._pump(index, subscription)))
        except Exception as e:
            logger.error(f"Notification feed for {self.session.uid} failed to start: {e}")
            await self.close()
            raise
        logger.info(f"Notification feed for {self.session.uid}: {len(batches)} live batch(es)")
        if not batches:
            self._publish()

    async def _pump(self, index: int, subscription: Subscription) -> None:
        try:
            async for snapshot in subscription:
                self.apply_snapshot(index, snapshot)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Notification stream {index} for {self.session.uid} failed: {e}")
            self._failed.add(index)
            self._publish()

    def apply_snapshot(self, index: int, comments: Iterable[CommentRecord]) -> None:
        """Replace one batch's slice and recompute the merged view"""
        self._slices[index] = resolve_authors(self.store, comments, self.session.uid)
        self._recompute()

    def _recompute(self) -> None:
        self._notifications = merge_slices(self._slices.values(), self.limit)
        self._unread = count_unread(self._notifications, self.last_read_at)
        self._publish()

    def mark_all_read(self) -> NotificationState:
        self.last_read_at = mark_notifications_read(self.store, self.session)
        self._unread = 0
        self._publish()
        return self.state

    async def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._subscriptions.clear()
        self._tasks.clear()
        self._listeners.clear()

    async def __aenter__(self) -> "NotificationFeed":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
