"""
Submission routes
Student submission history, grading and the per-submission discussion thread
"""
from typing import Any, Optional
from fastapi import APIRouter
from pydantic import BaseModel

from api.dependencies import CurrentSession, StudentSession, Store, TeacherSession
from services import coursework
from services.focus import focus_store

router = APIRouter(prefix="/api/submissions", tags=["Submissions"])


class GradeRequest(BaseModel):
    # Left untyped so out-of-range and non-integer grades reach the validator
    grade: Any
    feedback: Optional[str] = ""


class CommentCreate(BaseModel):
    content: str


@router.get("/mine")
async def get_my_submissions(session: StudentSession, store: Store):
    """
    Submission history of the current student

    Returns the submissions plus `focus_submission_id` when a notification
    pointed at one of them; the hand-off is consumed by this call.
    """
    submissions = coursework.list_student_submissions(store, session)
    focus_id = focus_store.consume(session.uid, [s.id for s in submissions])
    return {
        "submissions": submissions,
        "focus_submission_id": focus_id,
    }


@router.put("/{submission_id}/grade")
async def grade_submission_endpoint(
    submission_id: str, data: GradeRequest, session: TeacherSession, store: Store
):
    """Grade a submission (0-10)"""
    return coursework.grade_submission(store, session, submission_id, data.grade, data.feedback or "")


@router.get("/{submission_id}/comments")
async def get_submission_comments(submission_id: str, session: CurrentSession, store: Store):
    """Discussion thread of a submission, oldest first"""
    return [
        {
            **entry.comment.model_dump(mode="json"),
            "user": {
                "id": entry.author.id,
                "full_name": entry.author.full_name,
                "role": entry.author.role.value,
            } if entry.author else None,
        }
        for entry in coursework.list_comments(store, session, submission_id)
    ]


@router.post("/{submission_id}/comments")
async def add_submission_comment(
    submission_id: str, data: CommentCreate, session: CurrentSession, store: Store
):
    return coursework.add_comment(store, session, submission_id, data.content)
