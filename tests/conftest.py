"""Pytest configuration and shared fixtures.

Tests run against a throwaway SQLite file through aiosqlite, so no database
server is needed. Every test gets a fresh schema.

Time is always injected: the `clock` fixture is a FixedClock set to
2026-03-01 08:00 UTC, and tests move it with clock.advance().
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from pathlib import Path

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bmsjobs.core.clock import FixedClock
from bmsjobs.core.config import DatabaseSettings, Settings
from bmsjobs.db import create_engine_from_settings, create_session_factory
from bmsjobs.db.models import Base
from tests.fakes import FakeDispatcher

START = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Settings and clock
# ---------------------------------------------------------------------------
@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'bmsjobs_test.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    """Default settings pointed at the test database."""
    return Settings(database=DatabaseSettings(url=database_url))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def today(clock: FixedClock) -> date:
    return clock.today()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with the schema created.

    pysqlite's own transaction handling breaks SAVEPOINT; SQLAlchemy is
    told to emit BEGIN itself instead.
    """
    engine = create_engine_from_settings(settings.database)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Dispatcher double
# ---------------------------------------------------------------------------
@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()
