from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models.database_models import Base, UserRole
from models.document_store import ChangeFeed, DocumentStore
from services.identity import SessionContext
from utils.config_loader import Settings

BASE_TIME = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(db, feed):
    return DocumentStore(db, feed)


@pytest.fixture
def settings():
    return Settings(admin_emails=["admin@example.com"], jwt_secret_key="test-secret")


@pytest.fixture
def make_profile(store):
    def _make(uid, role=UserRole.STUDENT, full_name=None, **extra):
        return store.set("profiles", uid, {
            "email": f"{uid}@example.com",
            "full_name": full_name or uid.upper(),
            "role": role,
            "created_at": extra.pop("created_at", BASE_TIME),
            **extra,
        })
    return _make


@pytest.fixture
def session_for():
    def _session(profile):
        return SessionContext(uid=profile.id, email=profile.email, profile=profile)
    return _session


@pytest.fixture
def teacher(make_profile, session_for):
    return session_for(make_profile("t1", UserRole.TEACHER, "Teacher T"))


@pytest.fixture
def admin(make_profile, session_for):
    return session_for(make_profile("admin1", UserRole.ADMIN, "Admin"))


@pytest.fixture
def students(make_profile, session_for):
    return [session_for(make_profile(uid, UserRole.STUDENT)) for uid in ("s1", "s2")]


@pytest.fixture
def client(session_factory, feed, settings):
    from api.auth import get_change_feed
    from api.main import app
    from models.database import get_db
    from utils.config_loader import get_settings

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
