"""
Cascading user deletion and pre-deletion stats

A deletion plan is read first: every record that references the user,
directly or through the assignment -> submission -> comment chain. The stats
shown before deletion and the deletion itself are both derived from the same
plan, so the numbers in the confirmation dialog are the numbers deleted.

Deletes are issued one by one in dependency order without a transaction.
Re-running after a partial failure re-plans from what is left and finishes
the job.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from loguru import logger

from models.database_models import UserRole
from models.document_store import DocumentStore, where
from models.records import CommentRecord, ProfileRecord, UserInfo
from services.batching import fetch_in_batches
from services.errors import NotFoundError

ORPHANED_CREDENTIAL_WARNING = (
    "User data was deleted but the authentication account could not be removed"
)


class IdentityAdmin(Protocol):
    def delete_identity(self, uid: str) -> bool: ...


# ============= PLAN =============

@dataclass
class AssignmentCascade:
    assignment_id: str
    link_ids: List[str] = field(default_factory=list)
    submission_ids: List[str] = field(default_factory=list)
    comment_ids: List[str] = field(default_factory=list)


@dataclass
class DeletionPlan:
    profile: ProfileRecord
    assignments: List[AssignmentCascade] = field(default_factory=list)
    lesson_ids: List[str] = field(default_factory=list)
    student_link_ids: List[str] = field(default_factory=list)
    own_submission_ids: List[str] = field(default_factory=list)
    own_submission_comment_ids: List[str] = field(default_factory=list)
    # subset of own_submission_comment_ids written by other users
    others_comment_ids: List[str] = field(default_factory=list)
    authored_comment_ids: List[str] = field(default_factory=list)

    @property
    def assignment_student_count(self) -> int:
        return sum(len(a.link_ids) for a in self.assignments) + len(self.student_link_ids)

    @property
    def submission_count(self) -> int:
        return sum(len(a.submission_ids) for a in self.assignments) + len(self.own_submission_ids)

    @property
    def comment_count(self) -> int:
        return (sum(len(a.comment_ids) for a in self.assignments)
                + len(self.own_submission_comment_ids) + len(self.authored_comment_ids))


def _comments_on(store: DocumentStore, submission_ids: List[str], seen: set) -> List[CommentRecord]:
    fetched = fetch_in_batches(store, "comments", "submission_id", submission_ids)
    comments = [c for c in fetched.records if c.id not in seen]
    seen.update(c.id for c in comments)
    return comments


def build_deletion_plan(store: DocumentStore, profile: ProfileRecord) -> DeletionPlan:
    plan = DeletionPlan(profile=profile)
    user_id = profile.id
    seen_submissions: set = set()
    seen_comments: set = set()

    if profile.role == UserRole.TEACHER:
        for assignment in store.query("assignments", where("teacher_id", "==", user_id)):
            cascade = AssignmentCascade(assignment_id=assignment.id)
            cascade.link_ids = [
                link.id for link in
                store.query("assignment_students", where("assignment_id", "==", assignment.id))
            ]
            cascade.submission_ids = [
                s.id for s in store.query("submissions", where("assignment_id", "==", assignment.id))
            ]
            seen_submissions.update(cascade.submission_ids)
            cascade.comment_ids = [c.id for c in _comments_on(store, cascade.submission_ids, seen_comments)]
            plan.assignments.append(cascade)
        plan.lesson_ids = [l.id for l in store.query("lessons", where("teacher_id", "==", user_id))]

    if profile.role == UserRole.STUDENT:
        plan.student_link_ids = [
            link.id for link in store.query("assignment_students", where("student_id", "==", user_id))
        ]

    plan.own_submission_ids = [
        s.id for s in store.query("submissions", where("student_id", "==", user_id))
        if s.id not in seen_submissions
    ]
    own_comments = _comments_on(store, plan.own_submission_ids, seen_comments)
    plan.own_submission_comment_ids = [c.id for c in own_comments]
    plan.others_comment_ids = [c.id for c in own_comments if c.user_id != user_id]
    plan.authored_comment_ids = [
        c.id for c in store.query("comments", where("user_id", "==", user_id))
        if c.id not in seen_comments
    ]
    return plan


def _load_profile(store: DocumentStore, user_id: str) -> ProfileRecord:
    profile = store.get("profiles", user_id)
    if profile is None:
        raise NotFoundError("User not found")
    return profile


# ============= STATS =============

@dataclass
class DeleteStats:
    assignments: int
    assignment_students: int
    submissions: int
    comments: int
    comments_by_others: int
    lessons: int
    user_info: UserInfo

    def as_dict(self) -> dict:
        return {
            "assignments": self.assignments,
            "assignmentStudents": self.assignment_students,
            "submissions": self.submissions,
            "comments": self.comments,
            "commentsByOthers": self.comments_by_others,
            "lessons": self.lessons,
            "userInfo": {
                "name": self.user_info.name,
                "email": self.user_info.email,
                "role": self.user_info.role.value,
            },
        }


def get_user_delete_stats(store: DocumentStore, user_id: str) -> DeleteStats:
    """Count what deleting user_id would remove; read-only"""
    profile = _load_profile(store, user_id)
    plan = build_deletion_plan(store, profile)
    return DeleteStats(
        assignments=len(plan.assignments),
        assignment_students=plan.assignment_student_count,
        submissions=plan.submission_count,
        comments=plan.comment_count,
        comments_by_others=len(plan.others_comment_ids),
        lessons=len(plan.lesson_ids),
        user_info=UserInfo(name=profile.full_name, email=profile.email, role=profile.role),
    )


# ============= DELETION =============

@dataclass
class DeletionReport:
    user_id: str
    full_name: str
    assignments: int = 0
    assignment_students: int = 0
    submissions: int = 0
    comments: int = 0
    comments_by_others: int = 0
    lessons: int = 0
    profile_deleted: bool = False
    auth_identity_deleted: bool = False
    warning: Optional[str] = None

    @property
    def message(self) -> str:
        if self.auth_identity_deleted:
            return f"User {self.full_name} has been completely deleted"
        return f"User {self.full_name} data has been deleted"

    def deleted_data(self) -> dict:
        return {
            "assignments": self.assignments,
            "assignmentStudents": self.assignment_students,
            "submissions": self.submissions,
            "comments": self.comments,
            "commentsByOthers": self.comments_by_others,
            "lessons": self.lessons,
            "profile": int(self.profile_deleted),
            "authUser": int(self.auth_identity_deleted),
        }


def _delete_all(store: DocumentStore, collection: str, ids: List[str]) -> int:
    return sum(1 for doc_id in ids if store.delete(collection, doc_id))


def execute_deletion_plan(store: DocumentStore, plan: DeletionPlan) -> DeletionReport:
    report = DeletionReport(user_id=plan.profile.id, full_name=plan.profile.full_name)

    for cascade in plan.assignments:
        report.assignment_students += _delete_all(store, "assignment_students", cascade.link_ids)
        report.comments += _delete_all(store, "comments", cascade.comment_ids)
        report.submissions += _delete_all(store, "submissions", cascade.submission_ids)
        if store.delete("assignments", cascade.assignment_id):
            report.assignments += 1
    report.lessons += _delete_all(store, "lessons", plan.lesson_ids)

    report.assignment_students += _delete_all(store, "assignment_students", plan.student_link_ids)

    others = set(plan.others_comment_ids)
    removed = [c for c in plan.own_submission_comment_ids if store.delete("comments", c)]
    report.comments += len(removed)
    report.comments_by_others += sum(1 for c in removed if c in others)
    report.submissions += _delete_all(store, "submissions", plan.own_submission_ids)
    report.comments += _delete_all(store, "comments", plan.authored_comment_ids)

    report.profile_deleted = store.delete("profiles", plan.profile.id)
    return report


def delete_user_data(store: DocumentStore, user_id: str) -> DeletionReport:
    """
    Remove the user's profile and every dependent record, leaving the
    authentication identity in place (no privileged access to it here)
    """
    profile = _load_profile(store, user_id)
    report = execute_deletion_plan(store, build_deletion_plan(store, profile))
    report.warning = ORPHANED_CREDENTIAL_WARNING
    logger.warning(f"User {user_id} data deleted without removing the authentication account")
    return report


def delete_user_completely(
    store: DocumentStore,
    identity_admin: IdentityAdmin,
    user_id: str,
) -> DeletionReport:
    """Delete all of the user's data, then (best-effort) their authentication identity"""
    profile = _load_profile(store, user_id)
    report = execute_deletion_plan(store, build_deletion_plan(store, profile))

    try:
        report.auth_identity_deleted = identity_admin.delete_identity(user_id)
    except Exception as e:
        logger.error(f"Error deleting auth user {user_id}: {e}")
    if not report.auth_identity_deleted:
        report.warning = ORPHANED_CREDENTIAL_WARNING

    logger.info(
        f"User {user_id} deleted: {report.assignments} assignments, "
        f"{report.assignment_students} links, {report.submissions} submissions, "
        f"{report.comments} comments ({report.comments_by_others} by others on their submissions)"
    )
    return report


def delete_user_with_fallback(
    store: DocumentStore,
    identity_admin: Optional[IdentityAdmin],
    user_id: str,
) -> DeletionReport:
    """
    Use the privileged path when it is available; if it is missing or fails,
    fall back to deleting the data only and surface the orphaned credential
    as a warning.
    """
    if identity_admin is not None:
        try:
            return delete_user_completely(store, identity_admin, user_id)
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Privileged deletion of {user_id} failed, falling back: {e}")
    else:
        logger.warning("Privileged deletion unavailable, falling back to data-only deletion")
    return delete_user_data(store, user_id)
