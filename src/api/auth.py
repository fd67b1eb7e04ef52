"""
Authentication and Authorization Module
Email + password identities, JWT bearer tokens, and the session context
resolved from them on every request
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from models.database import get_db
from models.database_models import AuthIdentity, UserRole
from models.document_store import ChangeFeed, DocumentStore, change_feed
from services.errors import (
    AlreadyExistsError, PermissionDeniedError, UnauthenticatedError
)
from services.identity import SessionContext, open_session
from utils.config_loader import Settings, get_settings

ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# HTTP Bearer token; missing credentials are reported by the dependencies below
security = HTTPBearer(auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if '@' not in v:
            raise ValueError('Invalid email format')
        return v.strip().lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters long')
        return v

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        if len(v.strip()) < 2:
            raise ValueError('Full name must be at least 2 characters long')
        return v.strip()


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: str
    disabled: bool
    last_notification_read_at: Optional[datetime] = None


def profile_response(session: SessionContext) -> ProfileResponse:
    profile = session.profile
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        role=profile.role.value,
        disabled=profile.disabled,
        last_notification_read_at=profile.last_notification_read_at,
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


# ============= IDENTITY PROVIDER =============

def get_identity_by_email(db: Session, email: str) -> Optional[AuthIdentity]:
    return db.query(AuthIdentity).filter(AuthIdentity.email == email.strip().lower()).first()


def get_identity(db: Session, uid: str) -> Optional[AuthIdentity]:
    return db.query(AuthIdentity).filter(AuthIdentity.uid == uid).first()


def create_identity(db: Session, email: str, password: str, display_name: Optional[str] = None) -> AuthIdentity:
    """Register a new email + password identity"""
    if get_identity_by_email(db, email):
        raise AlreadyExistsError("Email already registered")
    identity = AuthIdentity(
        email=email.strip().lower(),
        hashed_password=get_password_hash(password),
        display_name=display_name,
    )
    db.add(identity)
    db.commit()
    db.refresh(identity)
    logger.info(f"Identity created: {identity.email} (UID: {identity.uid})")
    return identity


def authenticate_identity(db: Session, email: str, password: str) -> Optional[AuthIdentity]:
    identity = get_identity_by_email(db, email)
    if not identity:
        return None
    if not verify_password(password, identity.hashed_password):  # type: ignore
        return None
    return identity


class IdentityAdmin:
    """Privileged operations on identities; only reachable server-side"""

    def __init__(self, db: Session):
        self.db = db

    def delete_identity(self, uid: str) -> bool:
        identity = get_identity(self.db, uid)
        if identity is None:
            return False
        self.db.delete(identity)
        self.db.commit()
        logger.info(f"Identity deleted: {uid}")
        return True

    def set_disabled(self, uid: str, disabled: bool) -> bool:
        identity = get_identity(self.db, uid)
        if identity is None:
            return False
        identity.disabled = disabled  # type: ignore
        self.db.commit()
        return True


# ============= TOKENS =============

def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> str:
    """Return the uid carried by a token"""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
    except JWTError:
        raise UnauthenticatedError("Could not validate credentials")
    uid = payload.get("sub")
    if not uid:
        raise UnauthenticatedError("Could not validate credentials")
    return uid


def login_for_access_token(db: Session, login_data: LoginRequest, settings: Settings) -> Token:
    """Login endpoint logic"""
    identity = authenticate_identity(db, login_data.email, login_data.password)
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if identity.disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")
    access_token = create_access_token(data={"sub": identity.uid}, settings=settings)
    return Token(access_token=access_token, token_type="bearer")


# ============= SESSION DEPENDENCIES =============

def get_change_feed() -> ChangeFeed:
    return change_feed


def get_store(db: Session = Depends(get_db), feed: ChangeFeed = Depends(get_change_feed)) -> DocumentStore:
    return DocumentStore(db, feed)


def session_from_token(store: DocumentStore, token: str, settings: Settings) -> SessionContext:
    uid = decode_access_token(token, settings)
    identity = get_identity(store.db, uid)
    if identity is None:
        raise UnauthenticatedError("Could not validate credentials")
    if identity.disabled:
        raise PermissionDeniedError("Account is disabled")
    return open_session(store, identity.uid, identity.email, identity.display_name, settings)


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Optional[SessionContext]:
    """Session for the bearer token, or None when no token was sent"""
    if credentials is None:
        return None
    return session_from_token(store, credentials.credentials, settings)


async def get_current_session(session: Optional[SessionContext] = Depends(get_optional_session)) -> SessionContext:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def require_role(*roles: UserRole):
    """Dependency requiring one of the given roles"""
    async def role_checker(session: SessionContext = Depends(get_current_session)) -> SessionContext:
        if not session.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{', '.join(r.value for r in roles)}' required"
            )
        return session
    return role_checker


def register_user(db: Session, store: DocumentStore, data: RegisterRequest, settings: Settings) -> SessionContext:
    """Create the identity and its default profile"""
    identity = create_identity(db, data.email, data.password, data.full_name)
    return open_session(store, identity.uid, identity.email, identity.display_name, settings)
