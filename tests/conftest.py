"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database. The engine uses a single
shared connection so sessions opened by the code under test (the audit
logger, request handlers) see the rows written through ``db_session``.
"""

import os

# Must be set before sinoman modules build their engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdefghijklmnop")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sinoman.db.models  # noqa: F401  (registers models on Base.metadata)
from sinoman.core.config import Settings
from sinoman.core.ratelimit import MemoryStore, RateLimiter
from sinoman.db.base import Base
from sinoman.services.audit import AuditLogger


class FakeClock:
    """Controllable millisecond clock for rate limiter tests."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


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
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        secret_key="test-secret-key-0123456789abcdefghijklmnop",
        database_url="sqlite://",
        monitoring_webhook_url=None,
        rate_limit_backend="memory",
    )


@pytest.fixture
def audit_logger(session_factory, settings):
    return AuditLogger(session_factory, settings)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(MemoryStore(), clock=clock)


@pytest.fixture
def app(settings, session_factory, rate_limiter, audit_logger):
    from sinoman.api.main import create_app

    return create_app(
        settings=settings,
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        audit_logger=audit_logger,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
