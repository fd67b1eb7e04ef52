"""
User administration routes (admin only)
"""
from typing import Optional
from fastapi import APIRouter
from pydantic import BaseModel

from api.auth import IdentityAdmin
from api.dependencies import AdminSession, DBSession, Store
from services import user_admin
from services.user_deletion import get_user_delete_stats

router = APIRouter(prefix="/api/users", tags=["Users"])


class RoleUpdate(BaseModel):
    role: str


class DisabledUpdate(BaseModel):
    disabled: bool


@router.get("")
async def list_users(
    session: AdminSession,
    store: Store,
    search: Optional[str] = None,
    role: Optional[str] = None,
):
    """All profiles, newest first; `search` matches name or email, `role` filters"""
    return user_admin.list_profiles(store, session, search=search, role=role)


@router.put("/{user_id}/role")
async def update_user_role(user_id: str, data: RoleUpdate, session: AdminSession, store: Store):
    return user_admin.update_role(store, session, user_id, data.role)


@router.put("/{user_id}/disabled")
async def update_user_disabled(
    user_id: str, data: DisabledUpdate, session: AdminSession, store: Store, db: DBSession
):
    return user_admin.set_disabled(store, IdentityAdmin(db), session, user_id, data.disabled)


@router.get("/{user_id}/delete-stats")
async def user_delete_stats(user_id: str, session: AdminSession, store: Store):
    """What deleting this user would remove"""
    return get_user_delete_stats(store, user_id).as_dict()


@router.delete("/{user_id}")
async def delete_user_endpoint(user_id: str, session: AdminSession, store: Store, db: DBSession):
    report = user_admin.delete_user(store, IdentityAdmin(db), session, user_id)
    return {
        "success": True,
        "message": report.message,
        "deletedData": report.deleted_data(),
        "warning": report.warning,
    }
