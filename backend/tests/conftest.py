"""
Pytest fixtures for watchshop backend tests.

Provides an in-memory database, test client, default users per role and
auth header helpers. Business dates use Asia/Kolkata (UTC+05:30, no DST).
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from watchshop import create_app
from watchshop.extensions import db
from watchshop.models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF
from watchshop.services import auth_service


BUSINESS_TZ = "Asia/Kolkata"
PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BUSINESS_TIMEZONE': BUSINESS_TZ,
        'COB_RECHECK_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """bcrypt cost 12 is too slow for a test suite."""
    monkeypatch.setattr(auth_service, "BCRYPT_ROUNDS", 4)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def seed(db_session):
    """One user per role: admin, manager, staff (password PASSWORD)."""
    users = {}
    for username, role in (("admin", ROLE_ADMIN), ("manager", ROLE_MANAGER), ("staff", ROLE_STAFF)):
        users[role] = auth_service.create_user(
            username=username,
            email=f"{username}@watchshop.test",
            password=PASSWORD,
            role=role,
        )
    return users


def local_dt(day: str, hour: int, minute: int = 0) -> datetime:
    """UTC-naive timestamp for a local (business timezone) wall-clock time."""
    local = datetime.combine(date.fromisoformat(day), time(hour, minute), tzinfo=ZoneInfo(BUSINESS_TZ))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_iso(day: str, hour: int, minute: int = 0) -> str:
    """ISO-8601 string with explicit offset, as a client would send it."""
    return local_dt(day, hour, minute).isoformat() + "Z"


def business_today() -> date:
    return datetime.now(ZoneInfo(BUSINESS_TZ)).date()


def days_from_today(n: int) -> date:
    return business_today() + timedelta(days=n)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, seed):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture
def manager_headers(client, seed):
    return auth_headers(get_auth_token(client, "manager"))


@pytest.fixture
def staff_headers(client, seed):
    return auth_headers(get_auth_token(client, "staff"))
