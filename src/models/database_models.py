"""
SQLAlchemy database models for the Classroom service
Each table backs one document collection of the store
"""
import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list:
    return [member.value for member in enum_cls]


# ============= USER MANAGEMENT =============

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    GRADED = "graded"


class LessonType(str, enum.Enum):
    TEXT = "text"
    FILE = "file"
    YOUTUBE = "youtube"


class AuthIdentity(Base):
    """Credential record of the authentication provider (keyed by uid)"""
    __tablename__ = "auth_identities"

    uid = Column(String(64), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(255))
    disabled = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, values_callable=_enum_values), nullable=False, default=UserRole.STUDENT)
    disabled = Column(Boolean, default=False)
    last_notification_read_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============= COURSEWORK =============

class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(String(64), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    teacher_id = Column(String(64), index=True, nullable=False)
    file_url = Column(String(1000))
    file_name = Column(String(500))
    files = Column(JSON)
    due_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)


class AssignmentStudent(Base):
    __tablename__ = "assignment_students"

    id = Column(String(64), primary_key=True, default=generate_id)
    assignment_id = Column(String(64), index=True, nullable=False)
    student_id = Column(String(64), index=True, nullable=False)
    assigned_at = Column(DateTime(timezone=True), default=utcnow)


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(64), primary_key=True, default=generate_id)
    assignment_id = Column(String(64), index=True, nullable=False)
    student_id = Column(String(64), index=True, nullable=False)
    file_url = Column(String(1000))
    file_name = Column(String(500))
    files = Column(JSON)
    status = Column(Enum(SubmissionStatus, values_callable=_enum_values), nullable=False, default=SubmissionStatus.SUBMITTED)
    grade = Column(Integer)
    feedback = Column(Text)
    submitted_at = Column(DateTime(timezone=True), default=utcnow)
    graded_at = Column(DateTime(timezone=True))


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(64), primary_key=True, default=generate_id)
    submission_id = Column(String(64), index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ============= LESSONS =============

class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(64), primary_key=True, default=generate_id)
    teacher_id = Column(String(64), index=True, nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    type = Column(Enum(LessonType, values_callable=_enum_values), nullable=False, default=LessonType.TEXT)
    content = Column(Text)
    file_url = Column(String(1000))
    file_name = Column(String(500))
    youtube_url = Column(String(1000))
    youtube_id = Column(String(32))
    is_published = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
