"""Shared pytest fixtures.

The application settings are read once, so the test environment is set up
before anything from ``app`` is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("SMTP_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.database import Base, get_db  # noqa: E402
from app.dependencies import get_notifier  # noqa: E402
from app.main import app  # noqa: E402
from app.models.group import Group  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.budget_engine import BudgetEngine  # noqa: E402
from app.services.ledger_store import InMemoryLedgerStore, UserRecord  # noqa: E402
from app.services.notification_service import Notifier  # noqa: E402
from app.services.sql_ledger_store import SqlAlchemyLedgerStore  # noqa: E402
from app.utils.constants import Role  # noqa: E402
from app.utils.security import create_access_token, hash_password, user_claims  # noqa: E402

PASSWORD = "password123"

# id, name, email, role; ids match insertion order in a fresh database
DIRECTORY_USERS = [
    (1, "Alice", "alice@example.com", Role.MANAGER),
    (2, "Bob", "bob@example.com", Role.USER),
    (3, "Charlie", "charlie@example.com", Role.USER),
    (4, "Diana", "diana@example.com", Role.USER),
]
# id, name, member ids
DIRECTORY_GROUPS = [
    (1, "Marketing Team", [2, 3]),
    (2, "Engineering Team", [4]),
]

ALICE, BOB, CHARLIE, DIANA = (
    UserRecord(id=uid, name=name, email=email, role=role)
    for uid, name, email, role in DIRECTORY_USERS
)
MARKETING_GROUP, ENGINEERING_GROUP = 1, 2


class RecordingNotifier(Notifier):
    """Keeps every notification instead of delivering it."""

    def __init__(self):
        self.sent = []

    def send(self, trigger, variables, recipient_emails):
        self.sent.append((trigger, dict(variables), list(recipient_emails)))

    def of(self, trigger):
        return [(variables, recipients) for t, variables, recipients in self.sent if t is trigger]


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=datetime(2024, 7, 4, 16, 20, 5)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _insert_directory(session, password_hash="x"):
    for uid, name, email, role in DIRECTORY_USERS:
        session.add(
            User(id=uid, name=name, email=email, password_hash=password_hash, role=role.value)
        )
    for gid, name, member_ids in DIRECTORY_GROUPS:
        session.add(Group(id=gid, name=name, member_ids=member_ids))
    session.commit()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Budget engine, against both store implementations
# ---------------------------------------------------------------------------


def build_memory_store():
    """In-memory store holding the directory users and groups."""
    store = InMemoryLedgerStore()
    for user in (ALICE, BOB, CHARLIE, DIANA):
        store.add_user(user)
    for gid, _name, member_ids in DIRECTORY_GROUPS:
        store.add_group(gid, member_ids)
    return store


@pytest.fixture
def memory_store():
    return build_memory_store()


@pytest.fixture
def sql_store(db_session):
    _insert_directory(db_session)
    return SqlAlchemyLedgerStore(db_session)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def budget_engine(store, notifier, clock):
    return BudgetEngine(store, notifier, clock=clock)


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client(session_factory, notifier):
    seed_session = session_factory()
    _insert_directory(seed_session, password_hash=hash_password(PASSWORD))
    seed_session.close()

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth_headers(user):
    token = create_access_token(user_claims(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers():
    return _auth_headers(ALICE)


@pytest.fixture
def user_headers():
    return _auth_headers(BOB)
