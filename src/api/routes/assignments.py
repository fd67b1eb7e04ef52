"""
Assignment routes
Teachers manage their assignments; students see what is assigned to them and hand in work
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.dependencies import StudentSession, Store, TeacherSession
from models.records import FileAttachment
from services import coursework

router = APIRouter(prefix="/api/assignments", tags=["Assignments"])


class AssignmentCreate(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    files: List[FileAttachment] = Field(default_factory=list)
    student_ids: List[str] = Field(default_factory=list)


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    files: Optional[List[FileAttachment]] = None


class StudentSelection(BaseModel):
    student_ids: List[str]


class SubmissionCreate(BaseModel):
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    files: List[FileAttachment] = Field(default_factory=list)


@router.get("")
async def get_assignments(session: TeacherSession, store: Store):
    """Get all assignments of the current teacher"""
    return [
        {
            **o.assignment.model_dump(mode="json"),
            "student_count": o.student_count,
            "submission_count": o.submission_count,
            "graded_count": o.graded_count,
        }
        for o in coursework.list_teacher_assignments(store, session)
    ]


@router.post("")
async def create_new_assignment(data: AssignmentCreate, session: TeacherSession, store: Store):
    """Create an assignment and assign it to the selected students"""
    assignment, links = coursework.create_assignment(
        store, session,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        files=data.files,
        student_ids=data.student_ids,
    )
    return {
        **assignment.model_dump(mode="json"),
        "student_ids": [link.student_id for link in links],
    }


@router.get("/assigned")
async def get_assigned_assignments(session: StudentSession, store: Store):
    """Assignments given to the current student, with their submission if any"""
    return [
        {
            **item.assignment.model_dump(mode="json"),
            "assigned_at": item.assigned_at,
            "submission": item.submission.model_dump(mode="json") if item.submission else None,
        }
        for item in coursework.list_student_assignments(store, session)
    ]


@router.put("/{assignment_id}")
async def update_assignment_endpoint(
    assignment_id: str, data: AssignmentUpdate, session: TeacherSession, store: Store
):
    """Update an assignment"""
    return coursework.update_assignment(store, session, assignment_id, data.model_dump(exclude_unset=True))


@router.delete("/{assignment_id}")
async def delete_assignment_endpoint(assignment_id: str, session: TeacherSession, store: Store):
    """Delete an assignment with its links, submissions and comments"""
    deleted = coursework.delete_assignment(store, session, assignment_id)
    return {"message": "Assignment deleted successfully", "deletedData": deleted}


@router.post("/{assignment_id}/students")
async def assign_students_endpoint(
    assignment_id: str, data: StudentSelection, session: TeacherSession, store: Store
):
    """Assign an existing assignment to more students"""
    links = coursework.assign_students(store, session, assignment_id, data.student_ids)
    return {"assigned": [link.student_id for link in links]}


@router.get("/{assignment_id}/submissions")
async def get_assignment_submissions(assignment_id: str, session: TeacherSession, store: Store):
    """All submissions handed in for one of the teacher's assignments"""
    return coursework.list_assignment_submissions(store, session, assignment_id)


@router.post("/{assignment_id}/submissions")
async def submit_assignment_endpoint(
    assignment_id: str, data: SubmissionCreate, session: StudentSession, store: Store
):
    """Hand in work; file uploads go to the media host beforehand"""
    return coursework.submit_assignment(
        store, session, assignment_id,
        file_url=data.file_url,
        file_name=data.file_name,
        files=data.files,
    )
