"""Domain service functions for assignments, submissions, grading and comments.

Role rules:
- Only teachers create, edit, delete and grade their own assignments.
- Only students assigned to an assignment submit to it, once.
- The owning teacher and the submitting student may comment on a submission.
Submission states: SUBMITTED -> GRADED (grading again overwrites, last write wins).
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from models.database_models import SubmissionStatus, UserRole, utcnow
from models.document_store import DocumentStore, SERVER_TIMESTAMP, where
from models.records import (
    AssignmentRecord, AssignmentStudentRecord, CommentRecord, FileAttachment,
    ProfileRecord, SubmissionRecord
)
from services.batching import fetch_in_batches, unique_ids
from services.errors import (
    AlreadyExistsError, InvalidArgumentError, NotFoundError, PermissionDeniedError
)
from services.identity import SessionContext

_LATEST = datetime.max.replace(tzinfo=timezone.utc)

MIN_GRADE = 0
MAX_GRADE = 10

ASSIGNMENT_FIELDS = {"title", "description", "due_date", "files"}


def _serialize_files(files: Optional[Iterable[Any]]) -> Optional[List[Dict[str, Any]]]:
    if not files:
        return None
    result = []
    for item in files:
        attachment = item if isinstance(item, FileAttachment) else FileAttachment.model_validate(item)
        if attachment.uploaded_at is None:
            attachment = attachment.model_copy(update={"uploaded_at": utcnow()})
        result.append(attachment.model_dump(mode="json"))
    return result


def _require_text(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{name} is required")
    return value.strip()


def validate_grade(grade: Any) -> int:
    """Grades are whole numbers from 0 to 10"""
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidArgumentError(f"Grade must be an integer from {MIN_GRADE} to {MAX_GRADE}")
    if not (MIN_GRADE <= grade <= MAX_GRADE):
        raise InvalidArgumentError(f"Grade must be an integer from {MIN_GRADE} to {MAX_GRADE}")
    return grade


def _owned_assignment(store: DocumentStore, session: SessionContext, assignment_id: str) -> AssignmentRecord:
    session.require_role(UserRole.TEACHER)
    assignment = store.get("assignments", assignment_id)
    if assignment is None or assignment.teacher_id != session.uid:
        raise NotFoundError("Assignment not found")
    return assignment


def _load_students(store: DocumentStore, student_ids: Sequence[str]) -> List[ProfileRecord]:
    ids = unique_ids(student_ids)
    profiles = {p.id: p for p in fetch_in_batches(store, "profiles", "id", ids).records}
    missing = [i for i in ids if i not in profiles]
    if missing:
        raise InvalidArgumentError(f"Unknown students: {', '.join(missing)}")
    not_students = [i for i in ids if profiles[i].role != UserRole.STUDENT]
    if not_students:
        raise InvalidArgumentError(f"Not students: {', '.join(not_students)}")
    return [profiles[i] for i in ids]


# ============= ASSIGNMENTS =============

def create_assignment(
    store: DocumentStore,
    session: SessionContext,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    files: Optional[Iterable[Any]] = None,
    student_ids: Sequence[str] = (),
) -> Tuple[AssignmentRecord, List[AssignmentStudentRecord]]:
    """Create an assignment and link it to the selected students (teacher only)"""
    session.require_role(UserRole.TEACHER)
    title = _require_text(title, "Title")
    students = _load_students(store, student_ids)

    assignment = store.add("assignments", {
        "title": title,
        "description": description or "",
        "teacher_id": session.uid,
        "files": _serialize_files(files),
        "due_date": due_date,
        "created_at": SERVER_TIMESTAMP,
    })
    links = [
        store.add("assignment_students", {
            "assignment_id": assignment.id,
            "student_id": student.id,
            "assigned_at": SERVER_TIMESTAMP,
        })
        for student in students
    ]
    logger.info(f"Assignment created: {assignment.title} (ID: {assignment.id}) for {len(links)} students")
    return assignment, links


def update_assignment(
    store: DocumentStore,
    session: SessionContext,
    assignment_id: str,
    changes: Dict[str, Any],
) -> AssignmentRecord:
    _owned_assignment(store, session, assignment_id)
    unknown = set(changes) - ASSIGNMENT_FIELDS
    if unknown:
        raise InvalidArgumentError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    updates = dict(changes)
    if "title" in updates:
        updates["title"] = _require_text(updates["title"], "Title")
    if "files" in updates:
        updates["files"] = _serialize_files(updates["files"])
    return store.update("assignments", assignment_id, updates)


def assign_students(
    store: DocumentStore,
    session: SessionContext,
    assignment_id: str,
    student_ids: Sequence[str],
) -> List[AssignmentStudentRecord]:
    """Link more students to an assignment; already-linked students are skipped"""
    _owned_assignment(store, session, assignment_id)
    students = _load_students(store, student_ids)
    linked = {
        link.student_id for link in
        store.query("assignment_students", where("assignment_id", "==", assignment_id))
    }
    return [
        store.add("assignment_students", {
            "assignment_id": assignment_id,
            "student_id": student.id,
            "assigned_at": SERVER_TIMESTAMP,
        })
        for student in students if student.id not in linked
    ]


def delete_assignment(store: DocumentStore, session: SessionContext, assignment_id: str) -> Dict[str, int]:
    """Delete an assignment with its links, submissions and their comments"""
    _owned_assignment(store, session, assignment_id)
    links = store.query("assignment_students", where("assignment_id", "==", assignment_id))
    submissions = store.query("submissions", where("assignment_id", "==", assignment_id))
    comments = fetch_in_batches(store, "comments", "submission_id", [s.id for s in submissions]).records

    deleted = {
        "assignmentStudents": sum(1 for l in links if store.delete("assignment_students", l.id)),
        "comments": sum(1 for c in comments if store.delete("comments", c.id)),
        "submissions": sum(1 for s in submissions if store.delete("submissions", s.id)),
        "assignments": int(store.delete("assignments", assignment_id)),
    }
    logger.info(f"Assignment {assignment_id} deleted: {deleted}")
    return deleted


@dataclass
class AssignmentOverview:
    assignment: AssignmentRecord
    student_count: int
    submission_count: int
    graded_count: int


def list_teacher_assignments(store: DocumentStore, session: SessionContext) -> List[AssignmentOverview]:
    session.require_role(UserRole.TEACHER)
    assignments = store.query(
        "assignments", where("teacher_id", "==", session.uid), order_by="created_at", descending=True
    )
    overviews = []
    for assignment in assignments:
        submissions = store.query("submissions", where("assignment_id", "==", assignment.id))
        overviews.append(AssignmentOverview(
            assignment=assignment,
            student_count=store.count("assignment_students", where("assignment_id", "==", assignment.id)),
            submission_count=len(submissions),
            graded_count=sum(1 for s in submissions if s.status == SubmissionStatus.GRADED),
        ))
    return overviews


# ============= STUDENT SIDE =============

def first_submission(submissions: Iterable[SubmissionRecord]) -> Optional[SubmissionRecord]:
    """Earliest submission wins when legacy duplicates exist"""
    ordered = sorted(submissions, key=lambda s: (s.submitted_at or _LATEST, s.id))
    return ordered[0] if ordered else None


def find_submission(store: DocumentStore, assignment_id: str, student_id: str) -> Optional[SubmissionRecord]:
    return first_submission(store.query(
        "submissions",
        where("assignment_id", "==", assignment_id),
        where("student_id", "==", student_id),
    ))


@dataclass
class StudentAssignment:
    assignment: AssignmentRecord
    assigned_at: Optional[datetime]
    submission: Optional[SubmissionRecord]


def list_student_assignments(store: DocumentStore, session: SessionContext) -> List[StudentAssignment]:
    session.require_role(UserRole.STUDENT)
    links = store.query("assignment_students", where("student_id", "==", session.uid))
    assignments = {
        a.id: a for a in
        fetch_in_batches(store, "assignments", "id", [l.assignment_id for l in links]).records
    }
    submissions: Dict[str, List[SubmissionRecord]] = {}
    for submission in store.query("submissions", where("student_id", "==", session.uid)):
        submissions.setdefault(submission.assignment_id, []).append(submission)

    result = []
    for link in links:
        assignment = assignments.get(link.assignment_id)
        if assignment is None:
            logger.warning(f"Assignment link {link.id} points to missing assignment {link.assignment_id}")
            continue
        result.append(StudentAssignment(
            assignment=assignment,
            assigned_at=link.assigned_at,
            submission=first_submission(submissions.get(assignment.id, [])),
        ))
    result.sort(key=lambda item: item.assignment.created_at or utcnow(), reverse=True)
    return result


def submit_assignment(
    store: DocumentStore,
    session: SessionContext,
    assignment_id: str,
    file_url: Optional[str] = None,
    file_name: Optional[str] = None,
    files: Optional[Iterable[Any]] = None,
) -> SubmissionRecord:
    """Hand in work for an assigned assignment; one submission per student"""
    session.require_role(UserRole.STUDENT)
    if store.get("assignments", assignment_id) is None:
        raise NotFoundError("Assignment not found")
    assigned = store.query(
        "assignment_students",
        where("assignment_id", "==", assignment_id),
        where("student_id", "==", session.uid),
    )
    if not assigned:
        raise PermissionDeniedError("Assignment is not assigned to you")
    if find_submission(store, assignment_id, session.uid) is not None:
        raise AlreadyExistsError("Assignment already submitted")

    serialized = _serialize_files(files)
    if not file_url and not serialized:
        raise InvalidArgumentError("A file is required")

    submission = store.add("submissions", {
        "assignment_id": assignment_id,
        "student_id": session.uid,
        "file_url": file_url,
        "file_name": file_name,
        "files": serialized,
        "status": SubmissionStatus.SUBMITTED,
        "submitted_at": SERVER_TIMESTAMP,
    })
    logger.info(f"Submission created: {submission.id} for assignment {assignment_id}")
    return submission


def list_student_submissions(store: DocumentStore, session: SessionContext) -> List[SubmissionRecord]:
    session.require_role(UserRole.STUDENT)
    return store.query(
        "submissions", where("student_id", "==", session.uid), order_by="submitted_at", descending=True
    )


# ============= TEACHER SIDE =============

def list_assignment_submissions(
    store: DocumentStore, session: SessionContext, assignment_id: str
) -> List[SubmissionRecord]:
    _owned_assignment(store, session, assignment_id)
    return store.query(
        "submissions", where("assignment_id", "==", assignment_id), order_by="submitted_at", descending=True
    )


def grade_submission(
    store: DocumentStore,
    session: SessionContext,
    submission_id: str,
    grade: Any,
    feedback: str = "",
) -> SubmissionRecord:
    """Grade a submission of one of the teacher's assignments.

    Validates:
        grade is an integer within 0-10 inclusive; nothing is written otherwise.
    """
    grade = validate_grade(grade)
    session.require_role(UserRole.TEACHER)
    submission = store.get("submissions", submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    _owned_assignment(store, session, submission.assignment_id)

    graded = store.update("submissions", submission_id, {
        "grade": grade,
        "feedback": (feedback or "").strip(),
        "status": SubmissionStatus.GRADED,
        "graded_at": SERVER_TIMESTAMP,
    })
    logger.info(f"Submission {submission_id} graded {grade}/{MAX_GRADE}")
    return graded


# ============= COMMENTS =============

def _participant_submission(store: DocumentStore, session: SessionContext, submission_id: str) -> SubmissionRecord:
    submission = store.get("submissions", submission_id)
    if submission is None:
        raise NotFoundError("Submission not found")
    if submission.student_id == session.uid:
        return submission
    assignment = store.get("assignments", submission.assignment_id)
    if assignment is not None and assignment.teacher_id == session.uid:
        return submission
    raise PermissionDeniedError("Not a participant of this submission")


def add_comment(
    store: DocumentStore,
    session: SessionContext,
    submission_id: str,
    content: str,
) -> CommentRecord:
    _participant_submission(store, session, submission_id)
    comment = store.add("comments", {
        "submission_id": submission_id,
        "user_id": session.uid,
        "content": _require_text(content, "Comment"),
        "created_at": SERVER_TIMESTAMP,
    })
    logger.info(f"Comment {comment.id} added to submission {submission_id}")
    return comment


@dataclass
class ThreadEntry:
    comment: CommentRecord
    author: Optional[ProfileRecord]


def list_comments(store: DocumentStore, session: SessionContext, submission_id: str) -> List[ThreadEntry]:
    """The discussion thread of a submission, oldest first"""
    if not session.has_role(UserRole.ADMIN):
        _participant_submission(store, session, submission_id)
    comments = store.query(
        "comments", where("submission_id", "==", submission_id), order_by="created_at"
    )
    authors = {
        p.id: p for p in
        fetch_in_batches(store, "profiles", "id", [c.user_id for c in comments]).records
    }
    return [ThreadEntry(comment=c, author=authors.get(c.user_id)) for c in comments]
