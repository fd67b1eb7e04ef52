"""
Shared dependencies for API routes
"""
from fastapi import Depends
from typing import Annotated
from sqlalchemy.orm import Session

from api.auth import get_current_session, get_store, require_role
from models.database import get_db
from models.database_models import UserRole
from models.document_store import DocumentStore
from services.identity import SessionContext
from utils.config_loader import Settings, get_settings

# Dependency shortcuts
CurrentSession = Annotated[SessionContext, Depends(get_current_session)]
TeacherSession = Annotated[SessionContext, Depends(require_role(UserRole.TEACHER))]
StudentSession = Annotated[SessionContext, Depends(require_role(UserRole.STUDENT))]
AdminSession = Annotated[SessionContext, Depends(require_role(UserRole.ADMIN))]
DBSession = Annotated[Session, Depends(get_db)]
Store = Annotated[DocumentStore, Depends(get_store)]
AppSettings = Annotated[Settings, Depends(get_settings)]
