"""Pytest fixtures for console tests."""

import os
import tempfile
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session, sessionmaker

# Set test environment variables before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-0123456789"
os.environ["JWT_ISSUER"] = "radius-console"
os.environ["JWT_AUDIENCE"] = "radius-console"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["AUDIT_ARCHIVE_PATH"] = tempfile.mkdtemp(prefix="radius_console_archive_")

# Import after setting env vars
from radius_console.config import reset_settings  # noqa: E402
from radius_console.core.security import create_access_token  # noqa: E402
from radius_console.core.tokens import get_token_store  # noqa: E402
from radius_console.core.users import UserManager  # noqa: E402
from radius_console.db.database import build_engine  # noqa: E402
from radius_console.db.init_schema import (  # noqa: E402
    DEFAULT_ROLES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_USER,
)
from radius_console.db.models import AppUser, Base, RadAcct, RadPostAuth, RbacRole  # noqa: E402
from tests.utils.helpers import HISTORY_DAY, TEST_PASSWORD, naive_utc  # noqa: E402

reset_settings()

# In-memory SQLite on one shared connection, foreign keys enforced
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Session:
    """Create a fresh database with the default roles for each test."""
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    for name, (description, permissions) in DEFAULT_ROLES.items():
        session.add(RbacRole(name=name, description=description, permissions=permissions))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def clear_token_store():
    """Every test starts with no refresh tokens or revoked access tokens."""
    get_token_store().clear()
    yield
    get_token_store().clear()


@pytest.fixture
def client(db: Session):
    """Create FastAPI test client with database dependency override.

    The lifespan is not run; the ``db`` fixture has already created the schema.
    """
    from fastapi.testclient import TestClient

    from radius_console.db.database import get_db
    from radius_console.main import app

    def get_db_override():
        """Override database dependency to use test database."""
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = get_db_override

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create_console_user(db: Session, username: str, roles: list[str], **kwargs) -> AppUser:
    user = UserManager(db).create(
        username=username,
        email=kwargs.pop("email", f"{username}@example.com"),
        password=kwargs.pop("password", TEST_PASSWORD),
        roles=roles,
        **kwargs,
    )
    db.commit()
    db.refresh(user)
    return user


def auth_headers_for(db: Session, user: AppUser) -> dict:
    token, _ = create_access_token(user, UserManager(db).get_roles(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db: Session):
    """Factory for extra console users."""

    def _make(username: str, roles: list[str] | None = None, **kwargs) -> AppUser:
        return create_console_user(db, username, roles or [ROLE_USER], **kwargs)

    return _make


@pytest.fixture
def headers_for(db: Session):
    """Factory for Bearer headers of any user."""

    def _headers(user: AppUser) -> dict:
        return auth_headers_for(db, user)

    return _headers


@pytest.fixture
def admin_user(db: Session) -> AppUser:
    return create_console_user(db, "admin", [ROLE_ADMIN], first_name="Ada", last_name="Admin")


@pytest.fixture
def manager_user(db: Session) -> AppUser:
    return create_console_user(db, "manager", [ROLE_MANAGER])


@pytest.fixture
def regular_user(db: Session) -> AppUser:
    return create_console_user(db, "operator", [ROLE_USER])


@pytest.fixture
def admin_headers(db: Session, admin_user: AppUser) -> dict:
    return auth_headers_for(db, admin_user)


@pytest.fixture
def manager_headers(db: Session, manager_user: AppUser) -> dict:
    return auth_headers_for(db, manager_user)


@pytest.fixture
def user_headers(db: Session, regular_user: AppUser) -> dict:
    return auth_headers_for(db, regular_user)


@pytest.fixture
def sample_sessions(db: Session) -> list[RadAcct]:
    """Two active sessions and one finished session on two NAS devices."""
    sessions = [
        RadAcct(
            acctsessionid="sess-001",
            acctuniqueid="uniq-001",
            username="alice",
            nasipaddress="10.0.0.1",
            acctstarttime=naive_utc(minutes=-30),
            acctinputoctets=1000,
            acctoutputoctets=2000,
            framedipaddress="192.168.1.10",
        ),
        RadAcct(
            acctsessionid="sess-002",
            acctuniqueid="uniq-002",
            username="bob",
            nasipaddress="10.0.0.2",
            acctstarttime=naive_utc(minutes=-10),
            acctinputoctets=500,
            acctoutputoctets=700,
        ),
        RadAcct(
            acctsessionid="sess-003",
            acctuniqueid="uniq-003",
            username="alice",
            nasipaddress="10.0.0.1",
            acctstarttime=naive_utc(hours=-3),
            acctstoptime=naive_utc(hours=-2),
            acctsessiontime=3600,
            acctinputoctets=4000,
            acctoutputoctets=8000,
            acctterminatecause="User-Request",
        ),
    ]
    db.add_all(sessions)
    db.commit()
    return sessions


@pytest.fixture
def sample_auth_logs(db: Session) -> list[RadPostAuth]:
    """Three accepts and two rejects from the last few minutes."""
    logs = [
        RadPostAuth(username="alice", pass_="secret", reply="Access-Accept", authdate=naive_utc(minutes=-5)),
        RadPostAuth(username="alice", pass_="secret", reply="Access-Accept", authdate=naive_utc(minutes=-4)),
        RadPostAuth(username="bob", pass_="secret", reply="Access-Accept", authdate=naive_utc(minutes=-3)),
        RadPostAuth(username="mallory", pass_="guess", reply="Access-Reject", authdate=naive_utc(minutes=-2)),
        RadPostAuth(username="mallory", pass_="guess2", reply="Access-Reject", authdate=naive_utc(minutes=-1)),
    ]
    db.add_all(logs)
    db.commit()
    return logs


@pytest.fixture
def history(db: Session) -> None:
    """Sessions and authentications on two fixed days, for bucketed statistics."""
    day = HISTORY_DAY.replace(tzinfo=None)
    db.add_all([
        RadAcct(acctsessionid="h-1", acctuniqueid="h-1", username="alice", nasipaddress="10.0.0.1",
                acctstarttime=day + timedelta(hours=9, minutes=5), acctstoptime=day + timedelta(hours=10),
                acctsessiontime=3300, acctinputoctets=100, acctoutputoctets=200),
        RadAcct(acctsessionid="h-2", acctuniqueid="h-2", username="bob", nasipaddress="10.0.0.1",
                acctstarttime=day + timedelta(hours=9, minutes=40), acctstoptime=day + timedelta(hours=11),
                acctsessiontime=4800, acctinputoctets=300, acctoutputoctets=400),
        RadAcct(acctsessionid="h-3", acctuniqueid="h-3", username="alice", nasipaddress="10.0.0.2",
                acctstarttime=day + timedelta(days=1, hours=14), acctstoptime=day + timedelta(days=1, hours=15),
                acctsessiontime=3600, acctinputoctets=1000, acctoutputoctets=1000),
        RadPostAuth(username="alice", reply="Access-Accept", authdate=day + timedelta(hours=9, minutes=4)),
        RadPostAuth(username="bob", reply="Access-Accept", authdate=day + timedelta(hours=9, minutes=39)),
        RadPostAuth(username="eve", reply="Access-Reject", authdate=day + timedelta(hours=9, minutes=50)),
        RadPostAuth(username="alice", reply="Access-Accept", authdate=day + timedelta(days=1, hours=14)),
    ])
    db.commit()
