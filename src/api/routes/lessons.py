"""
Lesson management routes
Teachers manage their own lessons; any signed-in user can browse the published ones
"""
from typing import Optional
from fastapi import APIRouter
from pydantic import BaseModel

from api.dependencies import CurrentSession, Store, TeacherSession
from services import lessons as lesson_service
from utils.media_links import youtube_embed_url

router = APIRouter(prefix="/api/lessons", tags=["Lessons"])


class LessonCreate(BaseModel):
    title: str
    description: Optional[str] = None
    type: str = "text"
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    youtube_url: Optional[str] = None
    is_published: bool = True


class LessonUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    youtube_url: Optional[str] = None
    is_published: Optional[bool] = None


def lesson_payload(lesson) -> dict:
    payload = lesson.model_dump(mode="json")
    payload["embed_url"] = youtube_embed_url(lesson.youtube_id) if lesson.youtube_id else None
    return payload


@router.get("")
async def get_published_lessons(session: CurrentSession, store: Store):
    """Published lessons, newest first"""
    return [lesson_payload(l) for l in lesson_service.list_published_lessons(store)]


@router.get("/mine")
async def get_teacher_lessons(session: TeacherSession, store: Store):
    """Lessons created by the current teacher"""
    return [lesson_payload(l) for l in lesson_service.list_teacher_lessons(store, session)]


@router.post("")
async def create_new_lesson(data: LessonCreate, session: TeacherSession, store: Store):
    lesson = lesson_service.create_lesson(store, session, data.model_dump())
    return lesson_payload(lesson)


@router.put("/{lesson_id}")
async def update_lesson_endpoint(lesson_id: str, data: LessonUpdate, session: TeacherSession, store: Store):
    lesson = lesson_service.update_lesson(store, session, lesson_id, data.model_dump(exclude_unset=True))
    return lesson_payload(lesson)


@router.delete("/{lesson_id}")
async def delete_lesson_endpoint(lesson_id: str, session: TeacherSession, store: Store):
    lesson_service.delete_lesson(store, session, lesson_id)
    return {"message": "Lesson deleted successfully"}
