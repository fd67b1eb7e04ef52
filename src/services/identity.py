"""
Identity resolver
Maps an authenticated principal to its role-tagged profile and wraps both
in the SessionContext handed to every service call.
"""
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from models.database_models import UserRole
from models.document_store import DocumentStore, SERVER_TIMESTAMP
from models.records import ProfileRecord
from services.errors import PermissionDeniedError
from utils.config_loader import Settings


@dataclass
class SessionContext:
    """The signed-in principal; created on sign-in, dropped on sign-out"""
    uid: str
    email: str
    profile: ProfileRecord

    @property
    def role(self) -> UserRole:
        return self.profile.role

    def has_role(self, *roles: UserRole) -> bool:
        return self.profile.role in roles

    def require_role(self, *roles: UserRole) -> None:
        if not self.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise PermissionDeniedError(f"Role '{allowed}' required")


def default_full_name(display_name: Optional[str], email: Optional[str]) -> str:
    if display_name and display_name.strip():
        return display_name.strip()
    if email and email.split("@")[0]:
        return email.split("@")[0]
    return "User"


def resolve_profile(
    store: DocumentStore,
    uid: str,
    email: str,
    display_name: Optional[str],
    settings: Settings,
) -> ProfileRecord:
    """Return the profile for uid, creating the default one at first sign-in"""
    profile = store.get("profiles", uid)
    if profile is not None:
        return profile

    role = UserRole.ADMIN if settings.is_admin_email(email) else UserRole.STUDENT
    profile = store.set("profiles", uid, {
        "email": email or "",
        "full_name": default_full_name(display_name, email),
        "role": role,
        "created_at": SERVER_TIMESTAMP,
        "updated_at": SERVER_TIMESTAMP,
    })
    logger.info(f"Profile created for {email} with role {role.value}")
    return profile


def open_session(
    store: DocumentStore,
    uid: str,
    email: str,
    display_name: Optional[str],
    settings: Settings,
) -> SessionContext:
    profile = resolve_profile(store, uid, email, display_name, settings)
    if profile.disabled:
        raise PermissionDeniedError("Account is disabled")
    return SessionContext(uid=uid, email=email, profile=profile)
