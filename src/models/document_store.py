"""
Document store over the SQLAlchemy tables
Exposes the fixed client API the rest of the service talks to:
get, add, set, update, delete, query, count and live subscriptions.

Membership ("in") filters are capped at MAX_IN_VALUES values per query,
callers that need more must batch (see services.batching).
"""
import asyncio
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.database_models import (
    Base, Profile, Assignment, AssignmentStudent, Submission, Comment, Lesson,
    generate_id, utcnow
)
from models.records import (
    Record, ProfileRecord, AssignmentRecord, AssignmentStudentRecord,
    SubmissionRecord, CommentRecord, LessonRecord
)

MAX_IN_VALUES = 10

COLLECTIONS: Dict[str, Tuple[Type[Base], Type[Record]]] = {
    "profiles": (Profile, ProfileRecord),
    "assignments": (Assignment, AssignmentRecord),
    "assignment_students": (AssignmentStudent, AssignmentStudentRecord),
    "submissions": (Submission, SubmissionRecord),
    "comments": (Comment, CommentRecord),
    "lessons": (Lesson, LessonRecord),
}


class QueryLimitError(ValueError):
    """Raised when a membership filter carries more values than the backend accepts"""


class UnknownCollectionError(KeyError):
    pass


class DocumentNotFoundError(LookupError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Replaced with the current UTC time when the write reaches the store
SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any


def where(field: str, op: str, value: Any) -> Filter:
    """Build a query filter. Supported operators: '==' and 'in'."""
    if op == "==":
        return Filter(field, op, value)
    if op == "in":
        values = tuple(value)
        if len(values) > MAX_IN_VALUES:
            raise QueryLimitError(
                f"'in' filter on '{field}' accepts at most {MAX_IN_VALUES} values, got {len(values)}"
            )
        return Filter(field, op, values)
    raise ValueError(f"Unsupported filter operator: {op}")


# ============= LIVE SUBSCRIPTIONS =============

_CLOSED = object()


class Subscription:
    """
    A live query. Iterate it to receive snapshots (full result lists);
    the first snapshot is the current result, later ones follow each committed
    write to the collection. cancel() ends the iteration.
    """

    def __init__(self, feed: "ChangeFeed", collection: str, filters: Sequence[Filter],
                 order_by: Optional[str] = None):
        self.collection = collection
        self.filters = tuple(filters)
        self.order_by = order_by
        self.cancelled = False
        self._feed = feed
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()

    def _deliver(self, item: Any) -> None:
        # Always through the loop's callback queue: deliveries from the loop
        # thread and from worker threads keep the order they were issued in
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def push(self, snapshot: List[Record]) -> None:
        if not self.cancelled:
            self._deliver(list(snapshot))

    def push_error(self, exc: Exception) -> None:
        if not self.cancelled:
            self._deliver(exc)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self._feed.unregister(self)
        self._deliver(_CLOSED)
        self.cancelled = True

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[Record]:
        if self.cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class ChangeFeed:
    """Registry of live subscriptions, shared by every store in the process"""

    def __init__(self):
        self._lock = threading.Lock()
        # Held from a snapshot query until its push, so snapshots reach
        # each subscription in commit order whichever thread wrote
        self.publish_lock = threading.RLock()
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)

    def register(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions[subscription.collection].append(subscription)

    def unregister(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.collection, [])
            if subscription in subs:
                subs.remove(subscription)

    def subscriptions_for(self, collection: str) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(collection, []))

    def active_count(self) -> int:
        with self._lock:
            return sum(len(subs) for subs in self._subscriptions.values())


change_feed = ChangeFeed()


# ============= STORE =============

class DocumentStore:
    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    def _resolve(self, collection: str) -> Tuple[Type[Base], Type[Record]]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise UnknownCollectionError(collection)

    @staticmethod
    def _prepare(data: Dict[str, Any]) -> Dict[str, Any]:
        now = None
        values = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                now = now or utcnow()
                value = now
            elif isinstance(value, datetime) and value.tzinfo is not None:
                # stored without an offset, read back as UTC
                value = value.astimezone(timezone.utc)
            values[key] = value
        return values

    @staticmethod
    def _conditions(model: Type[Base], filters: Sequence[Filter]) -> Optional[list]:
        conditions = []
        for flt in filters:
            column = getattr(model, flt.field)
            if flt.op == "in":
                if not flt.value:
                    return None
                conditions.append(column.in_(flt.value))
            elif flt.value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == flt.value)
        return conditions

    def _run_query(self, collection: str, filters: Sequence[Filter],
                   order_by: Optional[str] = None, descending: bool = False) -> List[Record]:
        model, record_cls = self._resolve(collection)
        conditions = self._conditions(model, filters)
        if conditions is None:
            return []
        stmt = select(model).where(*conditions).execution_options(populate_existing=True)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        rows = self.db.execute(stmt).scalars().all()
        return [record_cls.model_validate(row) for row in rows]

    def _publish(self, collection: str) -> None:
        if self.feed is None:
            return
        with self.feed.publish_lock:
            for subscription in self.feed.subscriptions_for(collection):
                try:
                    snapshot = self._run_query(collection, subscription.filters, subscription.order_by)
                except Exception as e:
                    logger.error(f"Failed to refresh live query on {collection}: {e}")
                    subscription.push_error(e)
                    continue
                subscription.push(snapshot)

    # Point operations

    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        model, record_cls = self._resolve(collection)
        if not doc_id:
            return None
        row = self.db.get(model, doc_id, populate_existing=True)
        return record_cls.model_validate(row) if row is not None else None

    def add(self, collection: str, data: Dict[str, Any]) -> Record:
        """Create a document with a generated id"""
        model, record_cls = self._resolve(collection)
        values = self._prepare(data)
        values["id"] = values.get("id") or generate_id()
        row = model(**values)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        record = record_cls.model_validate(row)
        self._publish(collection)
        return record

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Record:
        """Create or overwrite the document stored under doc_id"""
        model, record_cls = self._resolve(collection)
        values = self._prepare(data)
        row = self.db.get(model, doc_id)
        if row is None:
            row = model(id=doc_id, **values)
            self.db.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        record = record_cls.model_validate(row)
        self._publish(collection)
        return record

    def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> Record:
        model, record_cls = self._resolve(collection)
        row = self.db.get(model, doc_id)
        if row is None:
            raise DocumentNotFoundError(collection, doc_id)
        for key, value in self._prepare(changes).items():
            if not hasattr(model, key):
                raise AttributeError(f"{collection} has no field '{key}'")
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        record = record_cls.model_validate(row)
        self._publish(collection)
        return record

    def delete(self, collection: str, doc_id: str) -> bool:
        model, _ = self._resolve(collection)
        row = self.db.get(model, doc_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        self._publish(collection)
        return True

    # Queries

    def query(self, collection: str, *filters: Filter, order_by: Optional[str] = None,
              descending: bool = False) -> List[Record]:
        return self._run_query(collection, filters, order_by, descending)

    def count(self, collection: str, *filters: Filter) -> int:
        model, _ = self._resolve(collection)
        conditions = self._conditions(model, filters)
        if conditions is None:
            return 0
        stmt = select(func.count()).select_from(model).where(*conditions)
        return self.db.execute(stmt).scalar_one()

    def subscribe(self, collection: str, *filters: Filter,
                  order_by: Optional[str] = None) -> Subscription:
        """Open a live query; must be called from a running event loop"""
        if self.feed is None:
            raise RuntimeError("This store was created without a change feed")
        self._resolve(collection)
        subscription = Subscription(self.feed, collection, filters, order_by)
        with self.feed.publish_lock:
            initial = self._run_query(collection, filters, order_by)
            self.feed.register(subscription)
            subscription.push(initial)
        return subscription
