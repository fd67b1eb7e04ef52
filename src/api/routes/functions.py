"""
Privileged callable functions
Admin-only operations that need access beyond the client's: user deletion
(including the authentication identity) and the deletion preview.

Errors are reported as `{"error": {"status": code, "message": ...}}`.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends
from fastapi.security import HTTPAuthorizationCredentials
from loguru import logger

from api.auth import IdentityAdmin, security, session_from_token
from api.dependencies import AppSettings, DBSession, Store
from models.database_models import UserRole
from models.document_store import DocumentStore
from services.errors import CallableError, ServiceError
from services.identity import SessionContext
from services.user_deletion import delete_user_completely, get_user_delete_stats
from utils.config_loader import Settings

router = APIRouter(prefix="/api/functions", tags=["Functions"])


def require_admin_caller(
    store: DocumentStore,
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> SessionContext:
    if credentials is None:
        raise CallableError("unauthenticated", "User must be authenticated")
    try:
        session = session_from_token(store, credentials.credentials, settings)
    except ServiceError as e:
        raise CallableError.from_service_error(e)
    if not session.has_role(UserRole.ADMIN):
        raise CallableError("permission-denied", "Only admins can perform this action")
    return session


def require_user_id(payload: Optional[Dict[str, Any]]) -> str:
    user_id = (payload or {}).get("userId")
    if not isinstance(user_id, str) or not user_id:
        raise CallableError("invalid-argument", "userId is required")
    return user_id


@router.post("/deleteUserCompletely")
def delete_user_completely_callable(
    store: Store,
    db: DBSession,
    settings: AppSettings,
    payload: Optional[Dict[str, Any]] = Body(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """
    Delete a user and everything that references them

    - **userId**: profile / identity id of the user to delete

    Returns: `{success, message, deletedData}`
    """
    session = require_admin_caller(store, credentials, settings)
    user_id = require_user_id(payload)
    try:
        report = delete_user_completely(store, IdentityAdmin(db), user_id)
    except ServiceError as e:
        raise CallableError.from_service_error(e)
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {e}")
        raise CallableError("internal", f"Failed to delete user: {e}")

    logger.info(f"User {user_id} deleted by admin {session.uid}")
    return {
        "success": True,
        "message": report.message,
        "deletedData": report.deleted_data(),
    }


@router.post("/getUserDeleteStats")
def get_user_delete_stats_callable(
    store: Store,
    settings: AppSettings,
    payload: Optional[Dict[str, Any]] = Body(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """Preview of what deleteUserCompletely would remove"""
    require_admin_caller(store, credentials, settings)
    user_id = require_user_id(payload)
    try:
        return get_user_delete_stats(store, user_id).as_dict()
    except ServiceError as e:
        raise CallableError.from_service_error(e)
    except Exception as e:
        logger.error(f"Error getting user stats {user_id}: {e}")
        raise CallableError("internal", f"Failed to get user stats: {e}")
