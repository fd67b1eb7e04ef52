import pytest

from conftest import at
from models.database_models import LessonType, UserRole
from models.document_store import where
from services import coursework
from services.errors import NotFoundError
from services.user_deletion import (
    ORPHANED_CREDENTIAL_WARNING, delete_user_completely, delete_user_data,
    delete_user_with_fallback, get_user_delete_stats
)


class FakeIdentityAdmin:
    def __init__(self, fail=False):
        self.fail = fail
        self.deleted = []

    def delete_identity(self, uid):
        if self.fail:
            raise ConnectionError("identity service unreachable")
        self.deleted.append(uid)
        return True


COLLECTIONS = ("assignments", "assignment_students", "submissions", "comments", "lessons", "profiles")


def snapshot(store):
    return {name: store.query(name) for name in COLLECTIONS}


def assert_no_dangling_references(store):
    assignment_ids = {a.id for a in store.query("assignments")}
    submission_ids = {s.id for s in store.query("submissions")}
    profile_ids = {p.id for p in store.query("profiles")}
    for link in store.query("assignment_students"):
        assert link.assignment_id in assignment_ids
        assert link.student_id in profile_ids
    for submission in store.query("submissions"):
        assert submission.assignment_id in assignment_ids
        assert submission.student_id in profile_ids
    for comment in store.query("comments"):
        assert comment.submission_id in submission_ids
        assert comment.user_id in profile_ids
    for assignment in store.query("assignments"):
        assert assignment.teacher_id in profile_ids


def build_teacher_world(store, make_profile, session_for, assignments=3, students_each=4):
    teacher = session_for(make_profile("t1", UserRole.TEACHER))
    students = [session_for(make_profile(f"s{i}")) for i in range(students_each)]
    comment_count = 0
    submission_count = 0
    for n in range(assignments):
        assignment, _ = coursework.create_assignment(
            store, teacher, f"Essay {n}", student_ids=[s.uid for s in students]
        )
        # only the first n+1 students hand in
        for student in students[:n + 1]:
            submission = coursework.submit_assignment(
                store, student, assignment.id, file_url="https://files.example.com/e.pdf"
            )
            submission_count += 1
            coursework.add_comment(store, teacher, submission.id, "Please cite sources")
            coursework.add_comment(store, student, submission.id, "Done")
            comment_count += 2
    return teacher, students, submission_count, comment_count


def test_teacher_cascade_removes_exactly_the_dependent_records(store, make_profile, session_for):
    A, S = 3, 4
    teacher, students, K, C = build_teacher_world(store, make_profile, session_for, A, S)
    make_profile("t2", UserRole.TEACHER)
    other, _ = coursework.create_assignment(store, session_for(store.get("profiles", "t2")), "Other", student_ids=["s0"])
    before = snapshot(store)

    report = delete_user_completely(store, FakeIdentityAdmin(), teacher.uid)

    after = snapshot(store)
    assert report.assignments == A
    assert report.assignment_students == A * S
    assert report.submissions == K
    assert report.comments == C
    assert report.profile_deleted and report.auth_identity_deleted
    assert len(before["assignments"]) - len(after["assignments"]) == A
    assert len(before["assignment_students"]) - len(after["assignment_students"]) == A * S
    assert len(before["submissions"]) - len(after["submissions"]) == K
    assert len(before["comments"]) - len(after["comments"]) == C
    assert store.get("profiles", teacher.uid) is None
    assert [a.id for a in after["assignments"]] == [other.id]
    assert_no_dangling_references(store)


def test_student_cascade_removes_links_submissions_and_authored_comments(store, make_profile, session_for):
    teacher = session_for(make_profile("t1", UserRole.TEACHER))
    student = session_for(make_profile("s1"))
    classmate = session_for(make_profile("s2"))
    first, _ = coursework.create_assignment(store, teacher, "A1", student_ids=["s1", "s2"])
    second, _ = coursework.create_assignment(store, teacher, "A2", student_ids=["s1"])
    own = coursework.submit_assignment(store, student, first.id, file_url="https://f/1.pdf")
    theirs = coursework.submit_assignment(store, classmate, first.id, file_url="https://f/2.pdf")
    coursework.add_comment(store, student, own.id, "Is this ok?")
    coursework.add_comment(store, classmate, theirs.id, "Mine")

    stats = get_user_delete_stats(store, student.uid)
    report = delete_user_completely(store, FakeIdentityAdmin(), student.uid)

    assert stats.as_dict()["assignmentStudents"] == 2
    assert (report.assignments, report.assignment_students, report.submissions, report.comments) == (0, 2, 1, 1)
    assert store.query("assignment_students", where("student_id", "==", "s1")) == []
    assert store.get("submissions", own.id) is None
    assert store.get("submissions", theirs.id) is not None
    assert store.get("assignments", second.id) is not None
    assert_no_dangling_references(store)


def test_comments_by_others_on_a_deleted_students_submission_go_too(store, make_profile, session_for):
    teacher = session_for(make_profile("t1", UserRole.TEACHER))
    student = session_for(make_profile("s1"))
    assignment, _ = coursework.create_assignment(store, teacher, "A1", student_ids=["s1"])
    submission = coursework.submit_assignment(store, student, assignment.id, file_url="https://f/1.pdf")
    coursework.add_comment(store, teacher, submission.id, "See me")
    coursework.add_comment(store, student, submission.id, "Will do")

    stats = get_user_delete_stats(store, student.uid).as_dict()
    report = delete_user_completely(store, FakeIdentityAdmin(), student.uid)

    assert (stats["comments"], stats["commentsByOthers"]) == (2, 1)
    assert report.comments == 2
    assert report.deleted_data()["commentsByOthers"] == 1
    assert store.query("comments") == []
    assert_no_dangling_references(store)


def test_teacher_deletion_reports_no_comments_by_others(store, make_profile, session_for):
    teacher, _, _, C = build_teacher_world(store, make_profile, session_for, 1, 2)
    report = delete_user_completely(store, FakeIdentityAdmin(), teacher.uid)
    assert report.comments == C
    assert report.deleted_data()["commentsByOthers"] == 0


def test_example_scenario_stats_before_deleting_the_teacher(store, make_profile, session_for):
    teacher = session_for(make_profile("T", UserRole.TEACHER, "Teacher T"))
    s1 = session_for(make_profile("S1"))
    make_profile("S2")
    assignment, links = coursework.create_assignment(store, teacher, "A1", student_ids=["S1", "S2"])
    assert len(links) == 2

    submission = coursework.submit_assignment(store, s1, assignment.id, file_url="https://f/a1.pdf")
    assert submission.status.value == "submitted"
    graded = coursework.grade_submission(store, teacher, submission.id, 8, "Good job")
    assert graded.status.value == "graded"
    assert graded.grade == 8

    stats = get_user_delete_stats(store, teacher.uid).as_dict()
    assert {k: stats[k] for k in ("assignments", "assignmentStudents", "submissions", "comments")} == {
        "assignments": 1, "assignmentStudents": 2, "submissions": 1, "comments": 0,
    }
    assert stats["userInfo"] == {"name": "Teacher T", "email": "T@example.com", "role": "teacher"}


def test_stats_for_unknown_user(store):
    with pytest.raises(NotFoundError):
        get_user_delete_stats(store, "missing")


def test_stats_match_what_gets_deleted(store, make_profile, session_for):
    teacher, _, _, _ = build_teacher_world(store, make_profile, session_for, 2, 3)
    store.add("lessons", {"teacher_id": teacher.uid, "title": "Intro", "type": LessonType.TEXT, "created_at": at(0)})

    stats = get_user_delete_stats(store, teacher.uid)
    report = delete_user_completely(store, FakeIdentityAdmin(), teacher.uid)

    assert (stats.assignments, stats.assignment_students, stats.submissions, stats.comments, stats.lessons) == (
        report.assignments, report.assignment_students, report.submissions, report.comments, report.lessons
    )
    assert report.lessons == 1


def test_auth_failure_is_logged_not_raised(store, make_profile):
    make_profile("s1")
    report = delete_user_completely(store, FakeIdentityAdmin(fail=True), "s1")
    assert report.profile_deleted
    assert not report.auth_identity_deleted
    assert report.warning == ORPHANED_CREDENTIAL_WARNING
    assert report.message == "User S1 data has been deleted"


def test_fallback_without_privileged_access(store, make_profile):
    make_profile("s1")
    report = delete_user_with_fallback(store, None, "s1")
    assert report.profile_deleted
    assert report.warning == ORPHANED_CREDENTIAL_WARNING


def test_fallback_reraises_not_found(store):
    with pytest.raises(NotFoundError):
        delete_user_with_fallback(store, FakeIdentityAdmin(), "missing")


def test_rerun_after_partial_failure_finishes_the_job(store, make_profile, session_for, monkeypatch):
    teacher, _, _, _ = build_teacher_world(store, make_profile, session_for, 2, 2)
    real_delete = store.delete
    calls = {"n": 0}

    def flaky_delete(collection, doc_id):
        calls["n"] += 1
        if calls["n"] == 4:
            raise ConnectionError("write failed")
        return real_delete(collection, doc_id)

    monkeypatch.setattr(store, "delete", flaky_delete)
    with pytest.raises(ConnectionError):
        delete_user_data(store, teacher.uid)
    monkeypatch.setattr(store, "delete", real_delete)

    delete_user_data(store, teacher.uid)

    assert store.get("profiles", teacher.uid) is None
    assert store.query("assignments") == []
    assert store.query("submissions") == []
    assert store.query("comments") == []
    assert_no_dangling_references(store)
