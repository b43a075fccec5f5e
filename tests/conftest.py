"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of mypts.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from mypts.clock import FixedClock  # noqa: E402
from mypts.config import MyPtsConfig  # noqa: E402
from mypts.database.models import Base, Profile, User  # noqa: E402
from mypts.database.seed import seed_defaults  # noqa: E402
from mypts.services.context import EconomyContext  # noqa: E402

_jsonb_sqlite_registered = False

START = datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so the Hub supply columns behave on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# ---------------------------------------------------------------------------
# Recording notifier
# ---------------------------------------------------------------------------
class RecordingNotifier:
    """Collects every notification as ``(kind, kwargs)``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def badge_earned(self, **kwargs) -> None:
        self.calls.append(("badge_earned", kwargs))

    def milestone_achieved(self, **kwargs) -> None:
        self.calls.append(("milestone_achieved", kwargs))

    def reward_issued(self, **kwargs) -> None:
        self.calls.append(("reward_issued", kwargs))

    def of(self, kind: str) -> list[dict]:
        return [kwargs for k, kwargs in self.calls if k == kind]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all MyPts tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by the worker's ``asyncio.to_thread`` and the threaded
    concurrency tests).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Economy context
# ---------------------------------------------------------------------------
@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config() -> MyPtsConfig:
    return MyPtsConfig(retry_wait_min_seconds=0.001, retry_wait_max_seconds=0.01)


@pytest.fixture
def ctx(db_engine, config, clock, notifier) -> EconomyContext:
    """Economy context over the seeded in-memory database."""
    seed_defaults(db_engine, config)
    return EconomyContext(engine=db_engine, config=config, clock=clock, notifier=notifier)


def make_context(engine: Engine, clock: FixedClock | None = None, **config) -> EconomyContext:
    """Seeded context with custom config, e.g. a tiny Hub reserve."""
    cfg = MyPtsConfig(retry_wait_min_seconds=0.001, retry_wait_max_seconds=0.01, **config)
    seed_defaults(engine, cfg)
    return EconomyContext(
        engine=engine,
        config=cfg,
        clock=clock or FixedClock(START),
        notifier=RecordingNotifier(),
    )


def add_profiles(engine: Engine, profiles: dict[str, str | None], users: list[str]) -> None:
    """Insert directory rows: ``profiles`` maps profile id → owner id."""
    with Session(engine) as session:
        for user_id in users:
            session.add(User(id=user_id, email=f"{user_id}@example.com"))
        for profile_id, owner_id in profiles.items():
            session.add(Profile(id=profile_id, owner_id=owner_id, username=profile_id))
        session.commit()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


@pytest.fixture
def service_token():
    return make_service_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from mypts.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_service_token(sub: str = "referral-service") -> str:
    import jwt

    from mypts.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "is_service": True}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def client(ctx):
    """FastAPI TestClient wired to the in-memory economy context."""
    from fastapi.testclient import TestClient

    import mypts.api.main as main_mod

    main_mod.app.dependency_overrides[main_mod.get_context] = lambda: ctx
    yield TestClient(main_mod.app, raise_server_exceptions=False)
    main_mod.app.dependency_overrides.clear()
