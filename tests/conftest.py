"""Shared fixtures: throwaway SQLite databases and seed helpers."""

import os

# Must be set before signal_admin.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REALTIME_ENABLED", "false")

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool

from signal_admin.db.models import Admin, Base, Signal, UserStats
from signal_admin.db.session import create_engine, create_session_factory

ADMIN_EMAIL = "admin@example.org"


@pytest.fixture
async def engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed database, for tests that need truly concurrent connections."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'signals.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


def make_signal(**fields) -> Signal:
    values = {
        "description": "Bags of construction waste by the river path",
        "status": "pending",
        "priority": "normal",
        "user_id": "user-1",
        "user_email": "reporter@example.org",
        "created_at": datetime(2024, 1, 1, 10, 0),
    }
    values.update(fields)
    if values["status"] == "resolved" and "resolved_at" not in fields:
        values["resolved_at"] = values["created_at"]
    return Signal(**values)


def make_stats(user_id: str = "user-1", **counts) -> UserStats:
    values = {
        "total_reports": 0,
        "pending_reports": 0,
        "in_progress_reports": 0,
        "resolved_reports": 0,
    }
    values.update(counts)
    return UserStats(user_id=user_id, **values)


@pytest.fixture
def seed(db_session):
    """Add rows and commit, returning them in order."""

    async def _seed(*rows):
        db_session.add_all(rows)
        await db_session.commit()
        return rows

    return _seed


@pytest.fixture
async def admin(db_session):
    db_session.add(Admin(email=ADMIN_EMAIL))
    await db_session.commit()
    return ADMIN_EMAIL
