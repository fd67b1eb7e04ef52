"""
Pydantic records for the document collections
Documents are validated into these records when read from storage
"""
from datetime import datetime, timezone
from typing import Annotated, List, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from models.database_models import UserRole, SubmissionStatus, LessonType


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    id: str


# ============= USER RECORDS =============

class ProfileRecord(Record):
    email: str
    full_name: str
    role: UserRole
    disabled: bool = False
    last_notification_read_at: Optional[UTCDateTime] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None


class UserInfo(BaseModel):
    """Short author/owner summary attached to other records"""
    name: str
    email: str
    role: UserRole


# ============= COURSEWORK RECORDS =============

class FileAttachment(BaseModel):
    file_url: str
    file_name: str
    description: str = ""
    uploaded_at: Optional[UTCDateTime] = None


class AssignmentRecord(Record):
    title: str
    description: Optional[str] = None
    teacher_id: str
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    files: Optional[List[FileAttachment]] = None
    due_date: Optional[UTCDateTime] = None
    created_at: Optional[UTCDateTime] = None


class AssignmentStudentRecord(Record):
    assignment_id: str
    student_id: str
    assigned_at: Optional[UTCDateTime] = None


class SubmissionRecord(Record):
    assignment_id: str
    student_id: str
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    files: Optional[List[FileAttachment]] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    grade: Optional[int] = Field(default=None, ge=0, le=10)
    feedback: Optional[str] = None
    submitted_at: Optional[UTCDateTime] = None
    graded_at: Optional[UTCDateTime] = None


class CommentRecord(Record):
    submission_id: str
    user_id: str
    content: str
    created_at: Optional[UTCDateTime] = None


class LessonRecord(Record):
    teacher_id: str
    title: str
    description: Optional[str] = None
    type: LessonType = LessonType.TEXT
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    youtube_url: Optional[str] = None
    youtube_id: Optional[str] = None
    is_published: bool = True
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None
