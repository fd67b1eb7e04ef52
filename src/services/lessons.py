"""
Lesson service functions
Teachers manage their own lessons; students read the published ones.
"""
from typing import Any, Dict, List

from loguru import logger

from models.database_models import LessonType, UserRole
from models.document_store import DocumentStore, SERVER_TIMESTAMP, where
from models.records import LessonRecord
from services.errors import InvalidArgumentError, NotFoundError
from services.identity import SessionContext
from utils.media_links import extract_youtube_id

LESSON_FIELDS = {
    "title", "description", "type", "content", "file_url", "file_name", "youtube_url", "is_published"
}


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the type-specific fields and derive youtube_id"""
    values = dict(data)
    title = values.get("title")
    if title is None or not str(title).strip():
        raise InvalidArgumentError("Title is required")
    values["title"] = str(title).strip()

    try:
        lesson_type = LessonType(values.get("type") or LessonType.TEXT)
    except ValueError:
        raise InvalidArgumentError(f"Unknown lesson type: {values.get('type')}")
    values["type"] = lesson_type

    if lesson_type == LessonType.YOUTUBE:
        youtube_id = extract_youtube_id(values.get("youtube_url"))
        if not youtube_id:
            raise InvalidArgumentError("Invalid YouTube URL")
        values["youtube_id"] = youtube_id
    else:
        values["youtube_id"] = None
    if lesson_type == LessonType.FILE and not values.get("file_url"):
        raise InvalidArgumentError("A file is required for file lessons")
    return values


def _owned_lesson(store: DocumentStore, session: SessionContext, lesson_id: str) -> LessonRecord:
    session.require_role(UserRole.TEACHER)
    lesson = store.get("lessons", lesson_id)
    if lesson is None or lesson.teacher_id != session.uid:
        raise NotFoundError("Lesson not found")
    return lesson


def create_lesson(store: DocumentStore, session: SessionContext, data: Dict[str, Any]) -> LessonRecord:
    session.require_role(UserRole.TEACHER)
    unknown = set(data) - LESSON_FIELDS
    if unknown:
        raise InvalidArgumentError(f"Unknown lesson fields: {', '.join(sorted(unknown))}")
    values = _normalize(data)
    lesson = store.add("lessons", {
        **values,
        "teacher_id": session.uid,
        "created_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
    })
    logger.info(f"Lesson created: {lesson.title} (ID: {lesson.id})")
    return lesson


def update_lesson(
    store: DocumentStore, session: SessionContext, lesson_id: str, changes: Dict[str, Any]
) -> LessonRecord:
    lesson = _owned_lesson(store, session, lesson_id)
    unknown = set(changes) - LESSON_FIELDS
    if unknown:
        raise InvalidArgumentError(f"Unknown lesson fields: {', '.join(sorted(unknown))}")
    current = lesson.model_dump(include=LESSON_FIELDS)
    values = _normalize({**current, **changes})
    return store.update("lessons", lesson_id, {**values, "updated_at": SERVER_TIMESTAMP})


def delete_lesson(store: DocumentStore, session: SessionContext, lesson_id: str) -> bool:
    _owned_lesson(store, session, lesson_id)
    return store.delete("lessons", lesson_id)


def list_teacher_lessons(store: DocumentStore, session: SessionContext) -> List[LessonRecord]:
    session.require_role(UserRole.TEACHER)
    return store.query("lessons", where("teacher_id", "==", session.uid), order_by="created_at", descending=True)


def list_published_lessons(store: DocumentStore) -> List[LessonRecord]:
    return store.query("lessons", where("is_published", "==", True), order_by="created_at", descending=True)
