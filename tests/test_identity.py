import pytest

from conftest import at

from models.database_models import UserRole
from services import user_admin
from services.errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from services.focus import FocusStore
from services.identity import default_full_name, open_session, resolve_profile
from utils.config_loader import build_settings


class FakeIdentities:
    def __init__(self):
        self.disabled = {}
        self.deleted = []

    def set_disabled(self, uid, disabled):
        self.disabled[uid] = disabled
        return True

    def delete_identity(self, uid):
        self.deleted.append(uid)
        return True


def test_first_sign_in_creates_a_student_profile(store, settings):
    profile = resolve_profile(store, "u1", "new@example.com", None, settings)
    assert profile.role == UserRole.STUDENT
    assert profile.full_name == "new"
    assert profile.created_at is not None
    assert store.get("profiles", "u1") == profile


def test_allowlisted_email_becomes_admin(store, settings):
    profile = resolve_profile(store, "u1", "Admin@Example.com", "Boss", settings)
    assert profile.role == UserRole.ADMIN
    assert profile.full_name == "Boss"


def test_existing_profile_is_returned_untouched(store, settings, make_profile):
    make_profile("u1", UserRole.TEACHER, "Ms. T")
    assert resolve_profile(store, "u1", "u1@example.com", "Other", settings).role == UserRole.TEACHER


def test_disabled_profiles_cannot_open_a_session(store, settings, make_profile):
    make_profile("u1", disabled=True)
    with pytest.raises(PermissionDeniedError):
        open_session(store, "u1", "u1@example.com", None, settings)


def test_default_full_name():
    assert default_full_name("  Ann  ", "a@example.com") == "Ann"
    assert default_full_name(None, "bob@example.com") == "bob"
    assert default_full_name(None, None) == "User"


def test_settings_from_yaml_and_environment(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "Root@example.com, ops@example.com")
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    settings = build_settings({"notifications": {"batch_size": 5}, "auth": {"jwt_secret_key": "from-yaml"}})
    assert settings.admin_emails == ["root@example.com", "ops@example.com"]
    assert settings.batch_size == 5
    assert settings.notification_limit == 10
    assert settings.jwt_secret_key == "from-yaml"


def test_focus_is_consumed_once_the_submission_is_listed():
    focus = FocusStore()
    focus.remember("s1", "sub9")
    assert focus.consume("s1", ["sub1"]) is None
    assert focus.peek("s1") == "sub9"
    assert focus.consume("s1", ["sub1", "sub9"]) == "sub9"
    assert focus.consume("s1", ["sub9"]) is None


def test_admin_lists_profiles_newest_first_with_filters(store, admin, make_profile):
    make_profile("s1", UserRole.STUDENT, "Alice", created_at=at(1))
    make_profile("s2", UserRole.STUDENT, "Bob", created_at=at(2))
    make_profile("t1", UserRole.TEACHER, "Alicia", created_at=at(3))

    assert [p.id for p in user_admin.list_profiles(store, admin, role="student")] == ["s2", "s1"]
    assert [p.id for p in user_admin.list_profiles(store, admin, search="ALI")] == ["t1", "s1"]
    with pytest.raises(InvalidArgumentError):
        user_admin.list_profiles(store, admin, role="janitor")


def test_only_admins_manage_users(store, teacher):
    with pytest.raises(PermissionDeniedError):
        user_admin.list_profiles(store, teacher)


def test_role_change_and_disable(store, admin, make_profile):
    make_profile("s1")
    identities = FakeIdentities()
    assert user_admin.update_role(store, admin, "s1", "teacher").role == UserRole.TEACHER
    assert user_admin.set_disabled(store, identities, admin, "s1", True).disabled is True
    assert identities.disabled == {"s1": True}
    with pytest.raises(InvalidArgumentError):
        user_admin.set_disabled(store, identities, admin, admin.uid, True)
    with pytest.raises(NotFoundError):
        user_admin.update_role(store, admin, "nobody", "student")


def test_admin_delete_goes_through_the_privileged_path(store, admin, make_profile):
    make_profile("s1")
    identities = FakeIdentities()
    report = user_admin.delete_user(store, identities, admin, "s1")
    assert identities.deleted == ["s1"]
    assert report.warning is None
    assert report.message == "User S1 has been completely deleted"
