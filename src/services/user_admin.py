"""
User administration (admin only): listing, role changes, enable/disable, deletion
"""
from typing import List, Optional, Protocol

from loguru import logger

from models.database_models import UserRole
from models.document_store import DocumentStore, DocumentNotFoundError, SERVER_TIMESTAMP, where
from models.records import ProfileRecord
from services.errors import InvalidArgumentError, NotFoundError
from services.identity import SessionContext
from services.user_deletion import DeletionReport, delete_user_with_fallback


class IdentityAccess(Protocol):
    def delete_identity(self, uid: str) -> bool: ...

    def set_disabled(self, uid: str, disabled: bool) -> bool: ...


def _parse_role(role: str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise InvalidArgumentError(f"Unknown role: {role}")


def list_profiles(
    store: DocumentStore,
    session: SessionContext,
    search: Optional[str] = None,
    role: Optional[str] = None,
) -> List[ProfileRecord]:
    """All profiles, newest first, filtered by name/email substring and role"""
    session.require_role(UserRole.ADMIN)
    filters = [where("role", "==", _parse_role(role))] if role and role != "all" else []
    profiles = store.query("profiles", *filters, order_by="created_at", descending=True)
    if search:
        term = search.strip().lower()
        profiles = [
            p for p in profiles
            if term in p.full_name.lower() or term in p.email.lower()
        ]
    return profiles


def update_role(store: DocumentStore, session: SessionContext, user_id: str, role: str) -> ProfileRecord:
    session.require_role(UserRole.ADMIN)
    new_role = _parse_role(role)
    try:
        profile = store.update("profiles", user_id, {"role": new_role, "updated_at": SERVER_TIMESTAMP})
    except DocumentNotFoundError:
        raise NotFoundError("User not found")
    logger.info(f"Role of {user_id} changed to {new_role.value} by {session.uid}")
    return profile


def set_disabled(
    store: DocumentStore,
    identities: IdentityAccess,
    session: SessionContext,
    user_id: str,
    disabled: bool,
) -> ProfileRecord:
    session.require_role(UserRole.ADMIN)
    if user_id == session.uid and disabled:
        raise InvalidArgumentError("Admins cannot disable their own account")
    try:
        profile = store.update("profiles", user_id, {"disabled": disabled, "updated_at": SERVER_TIMESTAMP})
    except DocumentNotFoundError:
        raise NotFoundError("User not found")
    if not identities.set_disabled(user_id, disabled):
        logger.warning(f"No authentication account found for {user_id}")
    logger.info(f"User {user_id} {'disabled' if disabled else 'enabled'} by {session.uid}")
    return profile


def delete_user(
    store: DocumentStore,
    identities: Optional[IdentityAccess],
    session: SessionContext,
    user_id: str,
) -> DeletionReport:
    session.require_role(UserRole.ADMIN)
    return delete_user_with_fallback(store, identities, user_id)
