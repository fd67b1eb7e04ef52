"""
Batched reference resolver
Membership queries accept at most MAX_IN_VALUES values, so "all X whose
<field> is one of these ids" is split into disjoint batches and the results
are flattened.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from loguru import logger

from models.database_models import UserRole
from models.document_store import DocumentStore, MAX_IN_VALUES, where
from models.records import ProfileRecord, Record


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop empty and repeated ids, keeping first-seen order"""
    seen = set()
    result = []
    for value in ids:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def chunked(ids: Iterable[str], size: int = MAX_IN_VALUES) -> List[List[str]]:
    if size < 1 or size > MAX_IN_VALUES:
        raise ValueError(f"Batch size must be between 1 and {MAX_IN_VALUES}")
    values = unique_ids(ids)
    return [values[i:i + size] for i in range(0, len(values), size)]


@dataclass
class BatchedFetch:
    records: List[Record] = field(default_factory=list)
    failed_batches: List[List[str]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_batches


def fetch_in_batches(
    store: DocumentStore,
    collection: str,
    field_name: str,
    ids: Sequence[str],
    batch_size: int = MAX_IN_VALUES,
    allow_partial: bool = False,
) -> BatchedFetch:
    """
    Fetch every document of `collection` whose `field_name` is in `ids`.

    Issues one query per batch. A failing batch propagates unless
    allow_partial is set, in which case it is logged and reported in
    failed_batches while the other batches still contribute.
    """
    result = BatchedFetch()
    for batch in chunked(ids, batch_size):
        try:
            result.records.extend(store.query(collection, where(field_name, "in", batch)))
        except Exception as e:
            if not allow_partial:
                raise
            logger.warning(f"Batch query on {collection}.{field_name} failed ({len(batch)} ids): {e}")
            result.failed_batches.append(batch)
    return result


def relevant_submission_ids(
    store: DocumentStore,
    profile: ProfileRecord,
    batch_size: int = MAX_IN_VALUES,
    allow_partial: bool = False,
) -> List[str]:
    """Submissions whose comments concern this principal"""
    if profile.role == UserRole.STUDENT:
        submissions = store.query("submissions", where("student_id", "==", profile.id))
        return unique_ids(s.id for s in submissions)

    if profile.role == UserRole.TEACHER:
        assignments = store.query("assignments", where("teacher_id", "==", profile.id))
        fetched = fetch_in_batches(
            store, "submissions", "assignment_id", [a.id for a in assignments],
            batch_size=batch_size, allow_partial=allow_partial,
        )
        return unique_ids(s.id for s in fetched.records)

    return []
