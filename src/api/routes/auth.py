"""
Authentication routes
Handles sign-up, sign-in, sign-out and the current profile
"""
from fastapi import APIRouter
from api.auth import (
    Token, LoginRequest, RegisterRequest, ProfileResponse,
    login_for_access_token, profile_response, register_user
)
from api.dependencies import AppSettings, CurrentSession, DBSession, Store
from services.focus import focus_store

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login", response_model=Token)
async def login(login_data: LoginRequest, db: DBSession, settings: AppSettings):
    """Login endpoint"""
    return login_for_access_token(db, login_data, settings)


@router.post("/register", response_model=ProfileResponse)
async def register(register_data: RegisterRequest, db: DBSession, store: Store, settings: AppSettings):
    """Register a new user; the profile gets the default role"""
    session = register_user(db, store, register_data, settings)
    return profile_response(session)


@router.get("/me", response_model=ProfileResponse)
async def get_current_user_info(session: CurrentSession):
    """Get current user profile"""
    return profile_response(session)


@router.post("/logout")
async def logout(session: CurrentSession):
    """Drop the per-session state kept for the principal"""
    focus_store.clear(session.uid)
    return {"message": "Signed out"}
