"""Shared fixtures.

- Environment is fixed before any application import (no Redis throttling,
  no scheduler, no SMTP).
- Each test gets a fresh in-memory SQLite database shared by the test's own
  session and the app's request sessions.
- The app is driven through TestClient without entering its lifespan, so
  migrations and seeding never run.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-session-tracking"
os.environ["OTP_RATE_LIMIT_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from deps import get_db
from main import app
from Login_module.User.user_crud import create_user
from Login_module.User.user_model import UserRole
from Login_module.Utils.security import create_access_token

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


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
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, headers={"User-Agent": CHROME_WINDOWS_UA})
    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db):
    return create_user(db, email="admin@example.com", name="Asha Admin", role=UserRole.ADMIN.value)


@pytest.fixture
def sales_user(db):
    return create_user(db, email="sales@example.com", name="Sam Sales", role=UserRole.SALES.value)


@pytest.fixture
def support_user(db):
    return create_user(db, email="support@example.com", name="Sid Support", role=UserRole.SUPPORT.value)


@pytest.fixture
def make_token():
    """Signed credential for a user; a negative expires_delta gives an already expired one."""

    def _make(user, expires_delta=None):
        return create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role},
            expires_delta,
        )

    return _make


@pytest.fixture
def auth_header(make_token):
    def _header(user, expires_delta=None):
        return {"Authorization": f"Bearer {make_token(user, expires_delta)}"}

    return _header


@pytest.fixture
def start_page(client, auth_header):
    """Open a page view through the API and return its JSON body."""

    def _start(user, session_token="session_1718000000000_abc123xyz", page_path="/leads", referrer=None):
        resp = client.post(
            "/page-tracking/start",
            json={
                "sessionToken": session_token,
                "pagePath": page_path,
                "pageTitle": "Lead Management",
                "referrer": referrer,
            },
            headers=auth_header(user),
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _start
